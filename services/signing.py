"""
Paysera signing primitives.

URL-safe base64, ordered query encoding and the MD5 signature scheme
used by Paysera for both payment requests and callbacks.
"""

import base64
import hashlib
import hmac
from typing import Any, Iterable, Mapping, Tuple, Union
from urllib.parse import quote


def encode_url_safe_base64(data: Union[bytes, str]) -> str:
    """
    Encode bytes to URL-safe base64.

    Replaces ``/`` with ``_`` and ``+`` with ``-``; ``=`` padding is kept.

    Args:
        data: Bytes to encode (strings are UTF-8 encoded first)

    Returns:
        URL-safe base64 string
    """
    if isinstance(data, str):
        data = data.encode('utf-8')
    encoded = base64.b64encode(data).decode('ascii')
    return encoded.replace('/', '_').replace('+', '-')


def decode_url_safe_base64(value: str) -> bytes:
    """
    Decode URL-safe base64 back to bytes.

    Args:
        value: URL-safe base64 string, with or without padding

    Returns:
        Decoded bytes

    Raises:
        ValueError: If the value is not valid base64
    """
    standard = value.replace('_', '/').replace('-', '+')
    standard += '=' * (-len(standard) % 4)
    return base64.b64decode(standard)


def encode_ordered_params(
    params: Union[Mapping[str, Any], Iterable[Tuple[str, Any]]]
) -> str:
    """
    Encode parameters to a query string, keeping their order.

    Keys and values are percent-encoded per RFC 3986. Parameters whose
    value is None or an empty string are left out entirely.

    Args:
        params: Mapping or sequence of ``(key, value)`` pairs

    Returns:
        ``k1=v1&k2=v2`` query string
    """
    pairs = params.items() if isinstance(params, Mapping) else params

    encoded = []
    for key, value in pairs:
        if value is None or value == '':
            continue
        encoded.append(f"{quote(str(key), safe='')}={quote(str(value), safe='')}")

    return '&'.join(encoded)


def sign(payload: str, secret: str) -> str:
    """
    Generate the Paysera signature of a payload.

    Paysera signs with ``md5(payload + password)``, not an HMAC.

    Args:
        payload: Base64url encoded payload
        secret: Project password

    Returns:
        Lowercase hex digest (32 characters)
    """
    return hashlib.md5((payload + secret).encode('utf-8')).hexdigest()


def verify_signature(payload: str, signature: str, secret: str) -> bool:
    """
    Verify a Paysera signature.

    The comparison ignores hex casing.

    Args:
        payload: Base64url encoded payload
        signature: Signature received with the payload
        secret: Project password

    Returns:
        True if signature is valid
    """
    expected = sign(payload, secret)
    return hmac.compare_digest(
        expected.lower().encode('utf-8'),
        signature.lower().encode('utf-8')
    )
