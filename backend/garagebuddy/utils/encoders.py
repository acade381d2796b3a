"""URL and token encoding helpers used when building emailed links."""

import base64
import binascii
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit


def base64url_encode(value: str) -> str:
    """Encode `value` as unpadded URL-safe base64."""
    return base64.urlsafe_b64encode(value.encode("utf-8")).decode("ascii").rstrip("=")


def base64url_decode(value: str) -> str:
    """Inverse of `base64url_encode`. Raises ValueError on malformed input."""
    padded = value + "=" * (-len(value) % 4)
    try:
        return base64.b64decode(padded.encode("ascii"), altchars=b"-_", validate=True).decode("utf-8")
    except (binascii.Error, UnicodeError) as exc:
        raise ValueError("malformed base64url value") from exc


def join_url(origin: str, route: str) -> str:
    """Join an origin and a route with exactly one slash between them."""
    return f"{origin.rstrip('/')}/{route.lstrip('/')}"


def add_query_string(uri: str, name: str, value: str) -> str:
    """Append `name=value` to the query of `uri`, keeping existing parameters."""
    parts = urlsplit(uri)
    query = parse_qsl(parts.query, keep_blank_values=True)
    query.append((name, value))
    return urlunsplit(parts._replace(query=urlencode(query)))
