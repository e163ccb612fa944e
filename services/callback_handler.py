"""
Paysera callback verifier and decoder.

Authenticates the signed callback Paysera sends to the server and turns
its payload into a typed CallbackEvent. The signature is always checked
before the payload is decoded.
"""

import logging
import re
from typing import Dict
from urllib.parse import unquote

from models.errors import CallbackDataError, SignatureError
from models.payment import CallbackEvent, RawCallback
from .signing import decode_url_safe_base64, verify_signature

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ('projectid', 'orderid', 'amount', 'currency', 'status', 'requestid')

INTEGER_REGEX = re.compile(r'[+-]?[0-9]+')


def parse_query_string(query_string: str) -> Dict[str, str]:
    """
    Parse a URL-encoded query string into key-value pairs.

    Splits each pair on the first ``=``. A key without ``=`` maps to an
    empty string and the last occurrence of a duplicate key wins.
    """
    params = {}

    for pair in query_string.split('&'):
        key, _, value = pair.partition('=')
        if not key:
            continue
        params[unquote(key)] = unquote(value)

    return params


def decode_callback_data(data: str) -> Dict[str, str]:
    """
    Decode and parse the callback payload.

    Args:
        data: Base64url encoded payload

    Returns:
        Decoded callback fields

    Raises:
        CallbackDataError: If the payload is not valid base64 or UTF-8
    """
    try:
        decoded = decode_url_safe_base64(data).decode('utf-8')
    except ValueError:
        raise CallbackDataError("Callback data is not valid base64")

    return parse_query_string(decoded)


def _parse_int(value: str, field_name: str) -> int:
    if not INTEGER_REGEX.fullmatch(value):
        raise CallbackDataError(f"Invalid {field_name} value")
    return int(value)


def parse_callback_data(raw_data: Dict[str, str]) -> CallbackEvent:
    """
    Validate callback fields and build a CallbackEvent.

    Args:
        raw_data: Decoded callback fields

    Returns:
        CallbackEvent instance

    Raises:
        CallbackDataError: If a required field is missing or malformed
    """
    for field_name in REQUIRED_FIELDS:
        if field_name not in raw_data:
            raise CallbackDataError(f"Missing required field: {field_name}")

    amount = _parse_int(raw_data['amount'], 'amount')
    status = _parse_int(raw_data['status'], 'status')

    test = raw_data.get('test')

    return CallbackEvent(
        account_id=raw_data['projectid'],
        order_id=raw_data['orderid'],
        amount=amount,
        currency=raw_data['currency'],
        status=status,
        request_id=raw_data['requestid'],
        paytext=raw_data.get('paytext'),
        payer_name=raw_data.get('name'),
        # Paysera spells this field "surename"
        payer_surname=raw_data.get('surename'),
        payment=raw_data.get('payment'),
        country=raw_data.get('country'),
        test=True if test == '1' else False if test == '0' else None
    )


def verify_and_decode_callback(raw_callback: RawCallback, secret: str) -> CallbackEvent:
    """
    Verify and decode a Paysera callback.

    Args:
        raw_callback: ``data`` and ``ss1`` received from Paysera
        secret: Project password

    Returns:
        Verified CallbackEvent

    Raises:
        CallbackDataError: If data or signature is missing, or the payload is invalid
        SignatureError: If signature verification fails
    """
    if not raw_callback.data or not raw_callback.ss1:
        raise CallbackDataError("Missing data or signature in callback")

    if not verify_signature(raw_callback.data, raw_callback.ss1, secret):
        logger.debug("Paysera callback signature mismatch")
        raise SignatureError()

    return parse_callback_data(decode_callback_data(raw_callback.data))
