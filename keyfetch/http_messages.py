"""
HTTP request/response value types shared by the key fetch client.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

import httpx

CONTENT_ENCODING_HDR = "Content-Encoding"
CONTENT_LENGTH_HDR = "Content-Length"
GZIP_ENCODING_HDR = "gzip"

HTTP_OK_STATUS = frozenset({200, 201})

EMPTY_BODY = b""

_HTTPS_SCHEME = "https"
_HTTP_SCHEME = "http"
_LOCAL_HOSTS = frozenset({"localhost", "127.0.0.1", "::1"})


class HttpMethod(str, Enum):
    """Supported HTTP methods."""
    GET = "GET"
    POST = "POST"
    PUT = "PUT"


@dataclass(frozen=True)
class HttpRequest:
    """
    Immutable HTTP request.

    Use HttpRequest.create() to build one; it validates the target URI,
    the method/body combination and injects Content-Length.
    """
    uri: str
    method: HttpMethod
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = EMPTY_BODY

    @classmethod
    def create(
        cls,
        uri: str,
        method: HttpMethod,
        headers: Optional[Dict[str, str]] = None,
        body: bytes = EMPTY_BODY
    ) -> "HttpRequest":
        """
        Validate inputs and build a request.

        Args:
            uri: Target URI, must be HTTPS or a loopback address
            method: HTTP method, as an HttpMethod or its name
            headers: Extra request headers (must not contain Content-Length)
            body: Request body, only allowed for POST and PUT

        Returns:
            HttpRequest

        Raises:
            ValueError: If any of the inputs is invalid
        """
        method = HttpMethod(method)

        if not uri:
            raise ValueError(f"Non-HTTPS URIs are not supported: {uri}")
        try:
            parsed = httpx.URL(uri)
        except httpx.InvalidURL as e:
            raise ValueError(f"Malformed URI {uri}: {e}") from e
        if parsed.scheme != _HTTPS_SCHEME and not (
            parsed.scheme == _HTTP_SCHEME and parsed.host in _LOCAL_HOSTS
        ):
            raise ValueError(f"Non-HTTPS URIs are not supported: {uri}")
        if not parsed.host:
            raise ValueError(f"URI has no host: {uri}")

        headers = dict(headers or {})
        if any(name.lower() == CONTENT_LENGTH_HDR.lower() for name in headers):
            raise ValueError("Content-Length header should not be provided!")

        body = body or EMPTY_BODY
        if body:
            if method not in (HttpMethod.POST, HttpMethod.PUT):
                raise ValueError(f"Request method does not allow request body: {method.value}")
            headers[CONTENT_LENGTH_HDR] = str(len(body))

        return cls(uri=uri, method=method, headers=headers, body=body)


@dataclass(frozen=True)
class HttpResponse:
    """
    HTTP response.

    The payload is either held in memory (payload) or spooled to a file
    (payload_file_name + downloaded_payload_size), never both.
    """
    status_code: Optional[int]
    headers: Dict[str, List[str]] = field(default_factory=dict)
    payload: Optional[bytes] = None
    payload_file_name: Optional[str] = None
    downloaded_payload_size: int = 0

    def __post_init__(self):
        if self.status_code is None:
            raise ValueError("Empty status code.")
        if self.payload is not None and self.payload_file_name is not None:
            raise ValueError("Response payload must be either in memory or in a file, not both.")

    @property
    def is_success(self) -> bool:
        return self.status_code in HTTP_OK_STATUS

    @property
    def is_response_compressed(self) -> bool:
        """
        Whether the payload is gzip compressed according to Content-Encoding.

        HttpClient decodes payloads and drops Content-Encoding, so this is
        only true for responses built from raw, still-encoded bytes.
        """
        for name, values in self.headers.items():
            if name.lower() != CONTENT_ENCODING_HDR.lower():
                continue
            if any(GZIP_ENCODING_HDR in value.lower() for value in values):
                return True
        return False
