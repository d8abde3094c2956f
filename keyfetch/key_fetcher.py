"""
Fetches the active key list from the key server and parses it.
"""

import logging
from concurrent.futures import Executor, Future
from typing import List, Optional

from pydantic import ValidationError

from keyfetch.config import ConfigurationError
from keyfetch.futures import immediate_failed_future, transform
from keyfetch.http_client import HttpClient
from keyfetch.http_messages import EMPTY_BODY, HttpMethod, HttpRequest, HttpResponse
from keyfetch.models import EncryptionKey, KeyFetchResponse, KeyType
from keyfetch.ttl import resolve_ttl_seconds

logger = logging.getLogger(__name__)


class KeyFetcher:
    """
    Key fetch pipeline: GET the key list, derive its TTL and build keys.

    A key server response that cannot be parsed yields no keys instead of
    an error, so one bad response does not fail a scheduled refresh.
    """

    def __init__(self, http_client: HttpClient, default_max_age_seconds: int, executor: Executor):
        """
        Initialize key fetcher.

        Args:
            http_client: Retrying HTTP client
            default_max_age_seconds: Key lifetime used when the server gives no usable TTL
            executor: Background executor the parse stage runs on
        """
        self.http_client = http_client
        self.default_max_age_seconds = default_max_age_seconds
        self.executor = executor

    def fetch_keys(
        self,
        fetch_url: Optional[str],
        key_type: KeyType,
        fetch_time_millis: int
    ) -> List[EncryptionKey]:
        """
        Fetch and parse the active keys, blocking until done.

        Raises:
            ConfigurationError: If the URL is missing or the request is invalid
            TransportError: If every attempt failed with a transport error
        """
        return self.fetch_keys_async(fetch_url, key_type, fetch_time_millis).result()

    def fetch_keys_async(
        self,
        fetch_url: Optional[str],
        key_type: KeyType,
        fetch_time_millis: int
    ) -> Future:
        """
        Fetch and parse the active keys on the background executor.

        Args:
            fetch_url: Key server URL
            key_type: Type assigned to every fetched key
            fetch_time_millis: Creation time of the fetched keys

        Returns:
            Future resolving to a list of EncryptionKey. Fails immediately
            with ConfigurationError when the request cannot be built.
        """
        if not fetch_url:
            return immediate_failed_future(
                ConfigurationError("Url to fetch active encryption keys is null")
            )

        try:
            request = HttpRequest.create(fetch_url, HttpMethod.GET, {}, EMPTY_BODY)
        except ValueError as e:
            return immediate_failed_future(ConfigurationError(str(e)))

        return transform(
            self.http_client.perform_request_async_with_retry(request),
            lambda response: self.parse_fetch_encryption_key_payload(
                response, key_type, fetch_time_millis
            ),
            self.executor,
        )

    def parse_fetch_encryption_key_payload(
        self,
        response: Optional[HttpResponse],
        key_type: KeyType,
        fetch_time_millis: int
    ) -> List[EncryptionKey]:
        """
        Build keys from a key server response.

        Args:
            response: Response of the key list request
            key_type: Type assigned to every key
            fetch_time_millis: Creation time of the keys

        Returns:
            Parsed keys, or an empty list for a failed or malformed response
        """
        if response is None:
            logger.warning("No response received from key server")
            return []
        if not response.is_success:
            logger.warning("Key server returned status %d", response.status_code)
            return []

        ttl_seconds = resolve_ttl_seconds(response.headers)
        if ttl_seconds <= 0:
            ttl_seconds = self.default_max_age_seconds

        try:
            payload = KeyFetchResponse.model_validate_json(response.payload or EMPTY_BODY)
        except ValidationError as e:
            logger.warning("Invalid Json response: %s", e)
            return []

        return [
            EncryptionKey(
                key_identifier=entry.id,
                public_key=entry.key,
                key_type=key_type,
                creation_time=fetch_time_millis,
                expiry_time=fetch_time_millis + ttl_seconds * 1000,  # convert to milliseconds
            )
            for entry in payload.keys
        ]
