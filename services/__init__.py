"""Services module for the Paysera payment app."""

from .gateway_client import GatewayClient
from .transaction_reporter import TransactionReporter

__all__ = [
    'GatewayClient',
    'TransactionReporter'
]
