"""
Unit tests for KeyFetcher.
"""

import httpx
import pytest

from conftest import (
    FETCH_URL,
    NOW_MILLIS,
    SAMPLE_RESPONSE_HEADERS,
    SAMPLE_RESPONSE_PAYLOAD,
    KeyServer,
)
from keyfetch.config import ConfigurationError
from keyfetch.http_client import HttpClient, TransportError
from keyfetch.http_messages import HttpResponse
from keyfetch.key_fetcher import KeyFetcher
from keyfetch.models import KeyType

DEFAULT_MAX_AGE_SECONDS = 86400


@pytest.fixture
def make_fetcher(executor):
    clients = []

    def _make(*responses):
        server = KeyServer(*responses)
        client = HttpClient(3, executor, transport=server.transport)
        clients.append(client)
        return KeyFetcher(client, DEFAULT_MAX_AGE_SECONDS, executor), server

    yield _make
    for client in clients:
        client.close()


class TestFetchKeys:
    """Test cases for the full fetch pipeline."""

    def test_parses_keys_with_server_ttl(self, make_fetcher):
        fetcher, server = make_fetcher(httpx.Response(
            200, content=SAMPLE_RESPONSE_PAYLOAD, headers=SAMPLE_RESPONSE_HEADERS
        ))

        keys = fetcher.fetch_keys(FETCH_URL, KeyType.ENCRYPTION, NOW_MILLIS)

        assert [key.key_identifier for key in keys] == [
            "0cc9b4c9-08bd-4aad-8c3a-1b0c5d1f7c11",
            "7a1e2f44-5c8c-4b7e-9d0e-2f3a4b5c6d7e",
        ]
        assert [key.public_key for key in keys] == ["dGVzdGtleTE=", "dGVzdGtleTI="]
        for key in keys:
            assert key.key_type == KeyType.ENCRYPTION
            assert key.creation_time == NOW_MILLIS
            assert key.expiry_time == NOW_MILLIS + 3500 * 1000
        assert len(server.requests) == 1
        assert server.requests[0].method == "GET"
        assert server.requests[0].content == b""

    def test_default_max_age_without_cache_control(self, make_fetcher):
        fetcher, _ = make_fetcher(httpx.Response(200, content=SAMPLE_RESPONSE_PAYLOAD))

        keys = fetcher.fetch_keys(FETCH_URL, KeyType.ENCRYPTION, NOW_MILLIS)

        assert len(keys) == 2
        assert all(key.expiry_time == NOW_MILLIS + DEFAULT_MAX_AGE_SECONDS * 1000 for key in keys)

    def test_default_max_age_when_age_exceeds_max_age(self, make_fetcher):
        fetcher, _ = make_fetcher(httpx.Response(
            200,
            content=SAMPLE_RESPONSE_PAYLOAD,
            headers={"Cache-Control": "max-age=100", "Age": "500"},
        ))

        keys = fetcher.fetch_keys(FETCH_URL, KeyType.ENCRYPTION, NOW_MILLIS)

        assert all(key.expiry_time == NOW_MILLIS + DEFAULT_MAX_AGE_SECONDS * 1000 for key in keys)

    def test_retries_server_errors(self, make_fetcher):
        fetcher, server = make_fetcher(
            httpx.Response(503),
            httpx.Response(200, content=SAMPLE_RESPONSE_PAYLOAD, headers=SAMPLE_RESPONSE_HEADERS),
        )

        keys = fetcher.fetch_keys(FETCH_URL, KeyType.ENCRYPTION, NOW_MILLIS)

        assert len(keys) == 2
        assert len(server.requests) == 2

    @pytest.mark.parametrize("payload", [
        b"not json",
        b"{\"keys\": [{\"id\": \"a\"}]}",
        b"{\"data\": []}",
        b"",
    ])
    def test_malformed_payload_returns_empty(self, make_fetcher, payload):
        fetcher, _ = make_fetcher(httpx.Response(200, content=payload))

        assert fetcher.fetch_keys(FETCH_URL, KeyType.ENCRYPTION, NOW_MILLIS) == []

    def test_empty_key_list(self, make_fetcher):
        fetcher, _ = make_fetcher(httpx.Response(200, content=b"{\"keys\": []}"))

        assert fetcher.fetch_keys(FETCH_URL, KeyType.ENCRYPTION, NOW_MILLIS) == []

    def test_exhausted_non_success_returns_empty(self, make_fetcher):
        fetcher, server = make_fetcher(
            *[httpx.Response(500, content=SAMPLE_RESPONSE_PAYLOAD) for _ in range(3)]
        )

        assert fetcher.fetch_keys(FETCH_URL, KeyType.ENCRYPTION, NOW_MILLIS) == []
        assert len(server.requests) == 3

    def test_transport_error_propagated(self, make_fetcher):
        fetcher, server = make_fetcher(httpx.ConnectError("connection refused"))

        with pytest.raises(TransportError):
            fetcher.fetch_keys(FETCH_URL, KeyType.ENCRYPTION, NOW_MILLIS)
        assert len(server.requests) == 3

    @pytest.mark.parametrize("fetch_url", [None, "", "1", "http://keys.example.com/v1/keys", "https://[::1/keys"])
    def test_invalid_url_fails_without_request(self, make_fetcher, fetch_url):
        fetcher, server = make_fetcher(httpx.Response(200, content=SAMPLE_RESPONSE_PAYLOAD))

        future = fetcher.fetch_keys_async(fetch_url, KeyType.ENCRYPTION, NOW_MILLIS)

        assert future.done()
        assert isinstance(future.exception(), ConfigurationError)
        assert server.requests == []


class TestParseFetchEncryptionKeyPayload:
    """Test cases for response parsing."""

    @pytest.fixture
    def fetcher(self, executor):
        client = HttpClient(3, executor)
        yield KeyFetcher(client, DEFAULT_MAX_AGE_SECONDS, executor)
        client.close()

    def test_no_response(self, fetcher):
        assert fetcher.parse_fetch_encryption_key_payload(None, KeyType.ENCRYPTION, NOW_MILLIS) == []

    def test_created_status_accepted(self, fetcher):
        response = HttpResponse(
            status_code=201,
            headers={"cache-control": ["max-age=10"]},
            payload=SAMPLE_RESPONSE_PAYLOAD.encode(),
        )

        keys = fetcher.parse_fetch_encryption_key_payload(response, KeyType.ENCRYPTION, NOW_MILLIS)

        assert [key.expiry_time for key in keys] == [NOW_MILLIS + 10000, NOW_MILLIS + 10000]
