"""
Platform transaction models.

Translates Paysera callback outcomes into the platform's transaction
event vocabulary.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from .payment import CallbackEvent, PaymentOutcome


class TransactionEventType(str, Enum):
    """Transaction event types reported to the platform."""
    CHARGE_SUCCESS = "CHARGE_SUCCESS"
    CHARGE_REQUEST = "CHARGE_REQUEST"
    CHARGE_FAILURE = "CHARGE_FAILURE"


class TransactionAction(str, Enum):
    """Actions the platform may offer on a reported transaction."""
    REFUND = "REFUND"
    CHARGE = "CHARGE"
    CANCEL = "CANCEL"


EVENT_BY_OUTCOME = {
    PaymentOutcome.SUCCEEDED: (
        TransactionEventType.CHARGE_SUCCESS,
        "Payment completed successfully"
    ),
    PaymentOutcome.PENDING: (
        TransactionEventType.CHARGE_REQUEST,
        "Payment pending"
    ),
    PaymentOutcome.ACCEPTED_AWAITING_EXECUTION: (
        TransactionEventType.CHARGE_REQUEST,
        "Payment accepted, waiting for execution"
    ),
    PaymentOutcome.ADDITIONAL_INFO_REQUIRED: (
        TransactionEventType.CHARGE_FAILURE,
        "Payment requires additional information"
    ),
}

FAILED_EVENT = (TransactionEventType.CHARGE_FAILURE, "Payment failed")


def event_type_for_outcome(outcome: PaymentOutcome) -> TransactionEventType:
    """Get the platform event type for a payment outcome."""
    return EVENT_BY_OUTCOME.get(outcome, FAILED_EVENT)[0]


@dataclass
class TransactionReport:
    """
    A transaction event to report to the platform.

    ``psp_reference`` is the Paysera order ID, so the platform sees the
    same reference for every callback of one payment.
    """

    transaction_id: str
    event_type: TransactionEventType
    amount: Decimal
    currency: str
    psp_reference: str
    order_id: str
    request_id: str
    message: str
    available_actions: List[TransactionAction] = field(default_factory=list)

    @classmethod
    def from_callback(
        cls,
        transaction_id: str,
        event: CallbackEvent
    ) -> 'TransactionReport':
        """
        Create a report from a verified callback.

        Args:
            transaction_id: Platform transaction the order belongs to
            event: Verified callback event

        Returns:
            TransactionReport instance
        """
        event_type, message = EVENT_BY_OUTCOME.get(event.outcome, FAILED_EVENT)

        actions = []
        if event_type == TransactionEventType.CHARGE_SUCCESS:
            actions = [TransactionAction.REFUND]

        return cls(
            transaction_id=transaction_id,
            event_type=event_type,
            amount=event.get_major_amount(),
            currency=event.currency,
            psp_reference=event.order_id,
            order_id=event.order_id,
            request_id=event.request_id,
            message=message,
            available_actions=actions
        )

    def to_variables(self) -> Dict[str, Any]:
        """Convert to GraphQL mutation variables."""
        return {
            'id': self.transaction_id,
            'amount': str(self.amount),
            'type': self.event_type.value,
            'pspReference': self.psp_reference,
            'message': self.message,
            'availableActions': [a.value for a in self.available_actions]
        }


@dataclass
class InitializeSessionResponse:
    """Response to the platform's transaction-initialize-session webhook."""

    psp_reference: str
    result: str
    amount: Any
    message: str
    actions: List[TransactionAction] = field(default_factory=list)
    external_url: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def action_required(
        cls,
        psp_reference: str,
        amount: Any,
        redirect_url: str,
        order_id: str
    ) -> 'InitializeSessionResponse':
        """Create a response sending the customer to Paysera."""
        return cls(
            psp_reference=psp_reference,
            result="CHARGE_ACTION_REQUIRED",
            amount=amount,
            message="Redirect to Paysera to complete payment",
            actions=[TransactionAction.CANCEL],
            external_url=redirect_url,
            data={'payseraOrderId': order_id}
        )

    @classmethod
    def failure(
        cls,
        psp_reference: str,
        amount: Any,
        action_type: Optional[str],
        message: str,
        error_code: str
    ) -> 'InitializeSessionResponse':
        """Create a failure response for a charge or authorization flow."""
        result = "CHARGE_FAILURE" if action_type == "CHARGE" else "AUTHORIZATION_FAILURE"
        return cls(
            psp_reference=psp_reference,
            result=result,
            amount=amount,
            message=message,
            data={'error': error_code}
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        data = {
            'pspReference': self.psp_reference,
            'result': self.result,
            'amount': self.amount,
            'message': self.message,
            'actions': [a.value for a in self.actions],
            'data': self.data
        }
        if self.external_url:
            data['externalUrl'] = self.external_url
        return data
