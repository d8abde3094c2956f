"""
HTTP client with bounded retries, used to talk to the key server.
"""

import logging
import os
import tempfile
from concurrent.futures import Executor, Future
from typing import Callable, Dict, List, Optional

import httpx

from keyfetch.futures import submit
from keyfetch.http_messages import CONTENT_ENCODING_HDR, HttpRequest, HttpResponse, HTTP_OK_STATUS

logger = logging.getLogger(__name__)

NETWORK_CONNECT_TIMEOUT_SECONDS = 5.0
NETWORK_READ_TIMEOUT_SECONDS = 30.0


class TransportError(IOError):
    """Connection or I/O failure during a single HTTP attempt."""
    pass


class HttpClient:
    """
    HTTP client that retries requests up to a fixed limit.

    Requests run on the background executor; callers get a Future back.
    Transport errors are retried and re-raised after the last attempt.
    Non-success statuses are retried too, but the last response is
    returned rather than raised, so callers must check status_code.
    """

    def __init__(
        self,
        retry_limit: int,
        executor: Executor,
        transport: Optional[httpx.BaseTransport] = None
    ):
        """
        Initialize HTTP client.

        Args:
            retry_limit: Maximum number of attempts per request
            executor: Background executor requests are submitted to
            transport: Optional httpx transport (used to stub the network)
        """
        self.retry_limit = retry_limit
        self.executor = executor
        self.client = httpx.Client(
            timeout=httpx.Timeout(NETWORK_READ_TIMEOUT_SECONDS, connect=NETWORK_CONNECT_TIMEOUT_SECONDS),
            follow_redirects=True,
            transport=transport,
        )

    def close(self):
        """Close HTTP client."""
        self.client.close()

    def perform_request_async_with_retry(self, request: HttpRequest) -> Future:
        """
        Perform a request on the background executor with retries.

        Args:
            request: Request to send

        Returns:
            Future resolving to the HttpResponse
        """
        return submit(
            self.executor,
            self.perform_request_with_retry,
            lambda: self.perform_request(request),
        )

    def perform_request_into_file_async_with_retry(self, request: HttpRequest) -> Future:
        """
        Same as perform_request_async_with_retry, but a successful payload
        is written to a temporary file instead of being kept in memory.
        """
        return submit(
            self.executor,
            self.perform_request_with_retry,
            lambda: self.perform_request(request, save_payload_into_file=True),
        )

    def perform_request_with_retry(
        self,
        supplier: Callable[[], HttpResponse]
    ) -> Optional[HttpResponse]:
        """
        Call supplier up to retry_limit times.

        Args:
            supplier: Performs one attempt

        Returns:
            The first successful response, otherwise the last response
            obtained. None when retry_limit is zero.

        Raises:
            TransportError: If the final attempt fails with a transport error
        """
        response = None
        for attempt in range(1, self.retry_limit + 1):
            try:
                response = supplier()
                if response.status_code in HTTP_OK_STATUS:
                    return response
                logger.debug(
                    "HTTP attempt %d/%d returned status %d",
                    attempt, self.retry_limit, response.status_code
                )
            except TransportError as e:
                if attempt >= self.retry_limit:
                    raise
                logger.debug("HTTP attempt %d/%d failed: %s", attempt, self.retry_limit, e)
        return response

    def perform_request(
        self,
        request: HttpRequest,
        save_payload_into_file: bool = False
    ) -> HttpResponse:
        """
        Perform a single HTTP request.

        Args:
            request: Request to send
            save_payload_into_file: Spool a successful payload to a temp file

        Returns:
            HttpResponse

        Raises:
            TransportError: On connection or I/O errors
        """
        try:
            with self.client.stream(
                request.method.value,
                request.uri,
                headers=request.headers,
                content=request.body or None,
            ) as response:
                headers = _collect_headers(response.headers)

                if save_payload_into_file and response.status_code in HTTP_OK_STATUS:
                    file_name, downloaded_size = _save_into_file(response)
                    if downloaded_size == 0:
                        os.remove(file_name)
                        return HttpResponse(status_code=response.status_code, headers=headers)
                    return HttpResponse(
                        status_code=response.status_code,
                        headers=headers,
                        payload_file_name=file_name,
                        downloaded_payload_size=downloaded_size,
                    )

                return HttpResponse(
                    status_code=response.status_code,
                    headers=headers,
                    payload=response.read(),
                )

        except httpx.RequestError as e:
            logger.error("Failed to get response from %s: %s", request.uri, e)
            raise TransportError(f"Request error: {str(e)}") from e
        except OSError as e:
            logger.error("Failed to save response payload from %s: %s", request.uri, e)
            raise TransportError(f"Payload error: {str(e)}") from e


def _collect_headers(headers: httpx.Headers) -> Dict[str, List[str]]:
    """
    Convert httpx headers into a name -> values multimap.

    Content-Encoding is left out: httpx hands back decoded bytes on both the
    in-memory and the spooled path.
    """
    collected: Dict[str, List[str]] = {}
    for name, value in headers.multi_items():
        if name == CONTENT_ENCODING_HDR.lower():
            continue
        collected.setdefault(name, []).append(value)
    return collected


def _save_into_file(response: httpx.Response):
    """Stream the response body into a new temp file, returning (path, size)."""
    fd, file_name = tempfile.mkstemp(prefix="input", suffix=".tmp")
    downloaded_size = 0
    try:
        with os.fdopen(fd, "wb") as f:
            for chunk in response.iter_bytes():
                f.write(chunk)
                downloaded_size += len(chunk)
    except BaseException:
        os.remove(file_name)
        raise
    return file_name, downloaded_size
