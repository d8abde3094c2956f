"""
Shared fixtures for keyfetch tests.
"""

import json
from concurrent.futures import Future, ThreadPoolExecutor

import httpx
import pytest

from keyfetch.database import create_db_engine, create_session_factory, init_db
from keyfetch.key_store import SqlKeyStore
from keyfetch.models import EncryptionKey, KeyType

FETCH_URL = "https://keys.example.com/v1/keys"

NOW_MILLIS = 1_700_000_000_000

SAMPLE_RESPONSE_PAYLOAD = json.dumps({
    "keys": [
        {"id": "0cc9b4c9-08bd-4aad-8c3a-1b0c5d1f7c11", "key": "dGVzdGtleTE="},
        {"id": "7a1e2f44-5c8c-4b7e-9d0e-2f3a4b5c6d7e", "key": "dGVzdGtleTI="},
    ]
})

SAMPLE_RESPONSE_HEADERS = {"Cache-Control": "public, max-age=3600", "Age": "100"}


class FakeClock:
    """Settable clock returning epoch millis."""

    def __init__(self, now: int = NOW_MILLIS):
        self.now = now

    def __call__(self) -> int:
        return self.now


def make_key(key_identifier: str, expiry_time: int, creation_time: int = 0) -> EncryptionKey:
    return EncryptionKey(
        key_identifier=key_identifier,
        public_key=f"{key_identifier}-public",
        key_type=KeyType.ENCRYPTION,
        creation_time=creation_time,
        expiry_time=expiry_time,
    )


def immediate_future(value) -> Future:
    """Return an already completed future holding value."""
    future = Future()
    future.set_result(value)
    return future

class KeyServer:
    """
    httpx.MockTransport handler serving a queue of canned responses.

    Each entry is an httpx.Response or an exception to raise. The last entry
    is repeated once the queue runs out.
    """

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        index = min(len(self.requests), len(self.responses)) - 1
        outcome = self.responses[index]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def executor():
    pool = ThreadPoolExecutor(max_workers=4, thread_name_prefix="keyfetch-test")
    yield pool
    pool.shutdown(wait=True)


@pytest.fixture
def session_factory():
    engine = create_db_engine("sqlite://")
    init_db(engine)
    yield create_session_factory(engine)
    engine.dispose()


@pytest.fixture
def key_store(session_factory, clock):
    return SqlKeyStore(session_factory, clock)
