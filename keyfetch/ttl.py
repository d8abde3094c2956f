"""
Cache lifetime derivation from HTTP response headers.
"""

import logging
from typing import Mapping, Optional, Sequence, Union

logger = logging.getLogger(__name__)

_CACHE_CONTROL_HDR = "cache-control"
_AGE_HDR = "age"
_MAX_AGE_DIRECTIVE = "max-age="

HeaderValues = Union[str, Sequence[str], None]


def _first_value(values: HeaderValues) -> Optional[str]:
    if values is None:
        return None
    if isinstance(values, str):
        return values
    return values[0] if len(values) > 0 else None


def resolve_ttl_seconds(headers: Mapping[str, HeaderValues]) -> int:
    """
    Compute the remaining lifetime of a response as max-age minus age.

    Header names are matched case-insensitively. An unparsable Age header
    counts as 0. A missing Cache-Control header, a missing max-age
    directive or an unparsable max-age all give 0.

    Args:
        headers: Response headers, name -> value or list of values

    Returns:
        TTL in seconds. Zero or negative means the server gave no usable TTL.
    """
    cache_control = None
    cached_age = 0
    remaining_headers = 2

    for name, values in headers.items():
        if name is not None:
            lowered = name.lower()
            value = _first_value(values)
            if lowered == _CACHE_CONTROL_HDR and value is not None:
                cache_control = value.lower()
                remaining_headers -= 1
            elif lowered == _AGE_HDR and value is not None:
                try:
                    cached_age = int(value)
                except ValueError:
                    logger.warning("Error parsing age header: %r", value)
                remaining_headers -= 1
        if remaining_headers == 0:
            break

    if cache_control is None:
        logger.debug("Cache-Control header or value is missing")
        return 0

    max_age = 0
    for token in cache_control.split(","):
        token = token.strip()
        if token.startswith(_MAX_AGE_DIRECTIVE):
            try:
                max_age = int(token[len(_MAX_AGE_DIRECTIVE):])
            except ValueError:
                logger.debug("Failed to parse max-age value: %r", token)
                return 0

    if max_age == 0:
        logger.debug("max-age directive is missing")
        return 0

    return max_age - cached_age
