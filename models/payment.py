"""
Payment data models.

Represents Paysera payment requests, signed envelopes and decoded
callback events.
"""

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

# Paysera protocol version sent with every request
PAYSERA_API_VERSION = "1.6"

CURRENCY_REGEX = re.compile(r'^[A-Za-z]{3}$')


class PaymentStatus:
    """Paysera callback status codes."""
    PENDING = 0
    SUCCESS = 1
    ACCEPTED_NOT_EXECUTED = 2
    ADDITIONAL_INFO_REQUIRED = 3


class PaymentOutcome(str, Enum):
    """Caller-facing classification of a callback status."""
    SUCCEEDED = "succeeded"
    PENDING = "pending"
    ACCEPTED_AWAITING_EXECUTION = "accepted_awaiting_execution"
    ADDITIONAL_INFO_REQUIRED = "additional_info_required"
    FAILED = "failed"


_OUTCOME_BY_STATUS = {
    PaymentStatus.PENDING: PaymentOutcome.PENDING,
    PaymentStatus.SUCCESS: PaymentOutcome.SUCCEEDED,
    PaymentStatus.ACCEPTED_NOT_EXECUTED: PaymentOutcome.ACCEPTED_AWAITING_EXECUTION,
    PaymentStatus.ADDITIONAL_INFO_REQUIRED: PaymentOutcome.ADDITIONAL_INFO_REQUIRED,
}


def classify_status(status: int) -> PaymentOutcome:
    """
    Map a raw Paysera status code to a payment outcome.

    Codes outside the documented set fold to FAILED.
    """
    return _OUTCOME_BY_STATUS.get(status, PaymentOutcome.FAILED)


def _is_absolute_url(url: Optional[str]) -> bool:
    return bool(url) and re.match(r'^https?://[^/\s]+', url) is not None


@dataclass(frozen=True)
class CallbackUrls:
    """URLs Paysera sends the customer and the server notification to."""

    accept_url: str
    cancel_url: str
    callback_url: str

    def validate(self) -> None:
        """
        Validate that all three URLs are absolute HTTP(S) URLs.

        Raises:
            ValueError: If any URL is not absolute
        """
        for name, url in (
            ('accept_url', self.accept_url),
            ('cancel_url', self.cancel_url),
            ('callback_url', self.callback_url),
        ):
            if not _is_absolute_url(url):
                raise ValueError(f"{name} must be an absolute HTTP(S) URL")


@dataclass
class PaymentRequestDescription:
    """
    Description of a payment to redirect the customer for.

    Attributes:
        transaction_id: Platform transaction ID, used only to seed the order ID
        amount: Amount in major currency units (e.g. 10.50 EUR)
        currency: ISO 4217 currency code
        urls: Accept, cancel and server callback URLs
        customer_email: Optional payer email
        customer_first_name: Optional payer first name
        customer_last_name: Optional payer last name
        payment_description: Optional free text shown to the payer
        language: Optional two-letter interface language
    """

    transaction_id: str
    amount: Union[Decimal, int, float, str]
    currency: str
    urls: CallbackUrls
    customer_email: Optional[str] = None
    customer_first_name: Optional[str] = None
    customer_last_name: Optional[str] = None
    payment_description: Optional[str] = None
    language: Optional[str] = None

    def __post_init__(self):
        """Normalize the amount and validate the description."""
        if not isinstance(self.amount, Decimal):
            try:
                self.amount = Decimal(str(self.amount))
            except InvalidOperation:
                raise ValueError(f"Invalid amount: {self.amount!r}")
        self.validate()

    def validate(self) -> None:
        """
        Validate payment request input.

        Raises:
            ValueError: If any constraint is violated
        """
        if not self.transaction_id or not self.transaction_id.strip():
            raise ValueError("Transaction ID is required")

        if not self.amount.is_finite() or self.amount <= 0:
            raise ValueError("Amount must be a positive number")

        if not self.currency or not CURRENCY_REGEX.match(self.currency):
            raise ValueError("Currency must be a 3-letter ISO code")

        self.urls.validate()


@dataclass(frozen=True)
class PaymentRequestParams:
    """
    Protocol fields of a Paysera payment request.

    Field order is the order the parameters are encoded in. Optional
    fields left as None are omitted from the encoded request.
    """

    projectid: str
    orderid: str
    accepturl: str
    cancelurl: str
    callbackurl: str
    amount: int
    currency: str
    test: int
    version: str = PAYSERA_API_VERSION
    p_email: Optional[str] = None
    p_firstname: Optional[str] = None
    p_lastname: Optional[str] = None
    paytext: Optional[str] = None
    lang: Optional[str] = None

    def items(self) -> List[Tuple[str, Any]]:
        """Get the parameters as ordered ``(key, value)`` pairs."""
        return [
            ('projectid', self.projectid),
            ('orderid', self.orderid),
            ('accepturl', self.accepturl),
            ('cancelurl', self.cancelurl),
            ('callbackurl', self.callbackurl),
            ('version', self.version),
            ('amount', self.amount),
            ('currency', self.currency),
            ('test', self.test),
            ('p_email', self.p_email),
            ('p_firstname', self.p_firstname),
            ('p_lastname', self.p_lastname),
            ('paytext', self.paytext),
            ('lang', self.lang),
        ]


@dataclass(frozen=True)
class SignedEnvelope:
    """Base64url payload and its hex signature, as exchanged with Paysera."""

    payload: str
    signature: str

    def to_query(self) -> Dict[str, str]:
        """Get the outbound query parameters."""
        return {'data': self.payload, 'sign': self.signature}


@dataclass(frozen=True)
class RawCallback:
    """
    Raw callback parameters received from Paysera.

    Attributes:
        data: Base64url encoded payload
        ss1: MD5 signature of the payload
        ss2: RSA signature (accepted, not verified)
    """

    data: str
    ss1: str
    ss2: Optional[str] = None

    @classmethod
    def from_params(cls, params: Dict[str, Any]) -> 'RawCallback':
        """
        Create RawCallback from request query or form parameters.

        Args:
            params: Mapping holding ``data``, ``ss1`` and optionally ``ss2``

        Returns:
            RawCallback instance (values may be empty)
        """
        return cls(
            data=params.get('data') or '',
            ss1=params.get('ss1') or '',
            ss2=params.get('ss2')
        )


@dataclass(frozen=True)
class PaymentRequest:
    """Result of creating a payment request."""

    redirect_url: str
    order_id: str


@dataclass(frozen=True)
class CallbackEvent:
    """
    Decoded and verified Paysera callback.

    Amounts are in minor currency units. ``status`` keeps the raw code,
    including codes this integration does not know about.
    """

    account_id: str
    order_id: str
    amount: int
    currency: str
    status: int
    request_id: str
    paytext: Optional[str] = None
    payer_name: Optional[str] = None
    payer_surname: Optional[str] = None
    payment: Optional[str] = None
    country: Optional[str] = None
    test: Optional[bool] = None

    @property
    def outcome(self) -> PaymentOutcome:
        """Get the outcome classification of this callback."""
        return classify_status(self.status)

    def get_major_amount(self) -> Decimal:
        """Get the amount in major currency units."""
        return Decimal(self.amount) / Decimal(100)

    def get_formatted_amount(self) -> str:
        """Get human-readable formatted amount."""
        return f"{self.get_major_amount():.2f} {self.currency}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'account_id': self.account_id,
            'order_id': self.order_id,
            'amount': self.amount,
            'currency': self.currency,
            'status': self.status,
            'request_id': self.request_id,
            'paytext': self.paytext,
            'payer_name': self.payer_name,
            'payer_surname': self.payer_surname,
            'payment': self.payment,
            'country': self.country,
            'test': self.test
        }
