"""
Paysera gateway client.

Composition root of the Paysera codec: owns the merchant configuration
and exposes payment request creation, callback processing and outcome
classification.
"""

import logging
from typing import Any, Dict, Union

from models.errors import ConfigurationError
from models.merchant import MerchantConfig
from models.payment import (
    CallbackEvent,
    PaymentOutcome,
    PaymentRequest,
    PaymentRequestDescription,
    RawCallback,
    classify_status,
)
from .callback_handler import verify_and_decode_callback
from .request_builder import PAYSERA_PAYMENT_URL, build_payment_request

logger = logging.getLogger(__name__)


class GatewayClient:
    """
    Client for the Paysera redirect payment gateway.

    The client holds no state beyond its immutable configuration, so one
    instance may be shared by concurrent callers.
    """

    def __init__(
        self,
        merchant_config: Union[MerchantConfig, Dict[str, Any]],
        payment_url: str = PAYSERA_PAYMENT_URL
    ):
        """
        Initialize the client.

        Args:
            merchant_config: Merchant configuration, or its stored dictionary form
            payment_url: Paysera payment endpoint

        Raises:
            ConfigurationError: If project ID or password is missing
        """
        if isinstance(merchant_config, dict):
            merchant_config = MerchantConfig.from_dict(merchant_config)
        if not isinstance(merchant_config, MerchantConfig):
            raise ConfigurationError("Project ID and password are required")

        self._config = merchant_config
        self._payment_url = payment_url

    @property
    def config(self) -> MerchantConfig:
        """Get the merchant configuration."""
        return self._config

    def create_payment_request(self, description: PaymentRequestDescription) -> PaymentRequest:
        """
        Create a payment request and return the redirect URL.

        Args:
            description: Payment to request

        Returns:
            PaymentRequest with the redirect URL and order ID
        """
        return build_payment_request(self._config, description, self._payment_url)

    def process_callback(self, raw_callback: Union[RawCallback, Dict[str, Any]]) -> CallbackEvent:
        """
        Process and verify a callback from Paysera.

        Args:
            raw_callback: Callback parameters (``data``, ``ss1``, optional ``ss2``)

        Returns:
            Verified CallbackEvent

        Raises:
            SignatureError: If the signature does not match
            CallbackDataError: If the callback is malformed
        """
        if isinstance(raw_callback, dict):
            raw_callback = RawCallback.from_params(raw_callback)
        return verify_and_decode_callback(raw_callback, self._config.shared_secret)

    @staticmethod
    def outcome(event: CallbackEvent) -> PaymentOutcome:
        """Get the outcome of a callback."""
        return classify_status(event.status)

    def is_succeeded(self, event: CallbackEvent) -> bool:
        """Check if a callback indicates successful payment."""
        return self.outcome(event) == PaymentOutcome.SUCCEEDED

    def is_pending(self, event: CallbackEvent) -> bool:
        """Check if a callback indicates the payment is still pending."""
        return self.outcome(event) in (
            PaymentOutcome.PENDING,
            PaymentOutcome.ACCEPTED_AWAITING_EXECUTION
        )

    def __repr__(self) -> str:
        return f"GatewayClient(config={self._config!r}, payment_url={self._payment_url})"
