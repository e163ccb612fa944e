"""
Paysera payment request builder.

Turns a payment description into signed Paysera request parameters and
the redirect URL the customer is sent to. No network calls are made.
"""

import logging
import re
import uuid
from decimal import Decimal, ROUND_HALF_UP
from typing import Union

from models.merchant import MerchantConfig
from models.payment import (
    PaymentRequest,
    PaymentRequestDescription,
    PaymentRequestParams,
    SignedEnvelope,
)
from .signing import encode_ordered_params, encode_url_safe_base64, sign

logger = logging.getLogger(__name__)

PAYSERA_PAYMENT_URL = "https://www.paysera.com/pay/"

# Paysera rejects order IDs longer than 40 characters
MAX_ORDER_ID_LENGTH = 40
ORDER_ID_PREFIX_LENGTH = 8
ORDER_ID_UNIQUE_LENGTH = 24


def generate_order_id(transaction_id: str) -> str:
    """
    Generate a unique Paysera order ID.

    Uses up to 8 alphanumeric characters of the transaction ID as a
    prefix for traceability, followed by part of a fresh time-based UUID.

    Args:
        transaction_id: Platform transaction ID

    Returns:
        Order ID of at most 40 characters
    """
    prefix = re.sub(r'[^a-zA-Z0-9]', '', transaction_id)[:ORDER_ID_PREFIX_LENGTH]
    unique = uuid.uuid1().hex[:ORDER_ID_UNIQUE_LENGTH]
    return f"{prefix}{unique}"[:MAX_ORDER_ID_LENGTH]


def to_minor_units(amount: Union[Decimal, int, float, str]) -> int:
    """
    Convert an amount in major currency units to minor units.

    For example: 10.50 EUR -> 1050 cents
    """
    value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    return int((value * 100).quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def build_request(params: PaymentRequestParams, secret: str) -> SignedEnvelope:
    """
    Build the encoded payload and signature for a payment request.

    Args:
        params: Request parameters
        secret: Project password

    Returns:
        SignedEnvelope with ``payload`` and ``signature``
    """
    query = encode_ordered_params(params.items())
    payload = encode_url_safe_base64(query.encode('utf-8'))
    return SignedEnvelope(payload=payload, signature=sign(payload, secret))


def get_payment_url(envelope: SignedEnvelope, base_url: str = PAYSERA_PAYMENT_URL) -> str:
    """Get the full Paysera payment URL for a signed request."""
    return f"{base_url}?data={envelope.payload}&sign={envelope.signature}"


def build_payment_url(
    params: PaymentRequestParams,
    secret: str,
    base_url: str = PAYSERA_PAYMENT_URL
) -> str:
    """Build a signed payment request and return the redirect URL."""
    return get_payment_url(build_request(params, secret), base_url)


def build_payment_request(
    merchant_config: MerchantConfig,
    description: PaymentRequestDescription,
    base_url: str = PAYSERA_PAYMENT_URL
) -> PaymentRequest:
    """
    Create a payment request and its redirect URL.

    Args:
        merchant_config: Validated merchant configuration
        description: What to charge and where to send the customer
        base_url: Paysera payment endpoint

    Returns:
        PaymentRequest with the redirect URL and generated order ID
    """
    order_id = generate_order_id(description.transaction_id)

    params = PaymentRequestParams(
        projectid=merchant_config.account_id,
        orderid=order_id,
        accepturl=description.urls.accept_url,
        cancelurl=description.urls.cancel_url,
        callbackurl=description.urls.callback_url,
        amount=to_minor_units(description.amount),
        currency=description.currency.upper(),
        test=1 if merchant_config.sandbox_mode else 0,
        p_email=description.customer_email,
        p_firstname=description.customer_first_name,
        p_lastname=description.customer_last_name,
        paytext=description.payment_description,
        lang=description.language
    )

    redirect_url = build_payment_url(params, merchant_config.shared_secret, base_url)

    logger.debug(
        f"Built Paysera request {order_id} for transaction "
        f"{description.transaction_id} ({params.amount} {params.currency})"
    )

    return PaymentRequest(redirect_url=redirect_url, order_id=order_id)
