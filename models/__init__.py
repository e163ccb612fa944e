"""Data models for the Paysera payment app."""

from .errors import (
    CallbackDataError,
    ConfigurationError,
    ErrorKind,
    GatewayError,
    SignatureError,
)
from .merchant import MerchantConfig, get_merchant_config_from_metadata
from .payment import (
    CallbackEvent,
    CallbackUrls,
    PaymentOutcome,
    PaymentRequest,
    PaymentRequestDescription,
    PaymentRequestParams,
    PaymentStatus,
    RawCallback,
    SignedEnvelope,
    classify_status,
)
from .transaction import TransactionEventType, TransactionReport

__all__ = [
    'CallbackDataError',
    'ConfigurationError',
    'ErrorKind',
    'GatewayError',
    'SignatureError',
    'MerchantConfig',
    'get_merchant_config_from_metadata',
    'CallbackEvent',
    'CallbackUrls',
    'PaymentOutcome',
    'PaymentRequest',
    'PaymentRequestDescription',
    'PaymentRequestParams',
    'PaymentStatus',
    'RawCallback',
    'SignedEnvelope',
    'classify_status',
    'TransactionEventType',
    'TransactionReport'
]
