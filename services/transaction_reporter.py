"""
Transaction Reporter Service.

Reports the outcome of verified Paysera callbacks to the platform through
its ``transactionEventReport`` GraphQL mutation, once per callback event.
"""

import asyncio
import logging
from typing import Any, Dict, Optional, Tuple

import aiohttp

from config import config
from database.db import Database
from models.transaction import TransactionReport

logger = logging.getLogger(__name__)

TRANSACTION_EVENT_REPORT_MUTATION = """
mutation TransactionEventReport(
  $id: ID!
  $amount: PositiveDecimal!
  $type: TransactionEventTypeEnum!
  $pspReference: String!
  $message: String
  $availableActions: [TransactionActionEnum!]
) {
  transactionEventReport(
    id: $id
    amount: $amount
    type: $type
    pspReference: $pspReference
    message: $message
    availableActions: $availableActions
  ) {
    alreadyProcessed
    errors {
      field
      message
      code
    }
  }
}
"""


class TransactionReporter:
    """
    Service for reporting payment outcomes to the platform.

    Features:
    - Bearer-authenticated GraphQL calls with the installation token
    - Idempotent reporting keyed by order ID, request ID and event type
    - Report logging for every attempt
    """

    def __init__(
        self,
        db: Database,
        timeout: Optional[int] = None
    ):
        """
        Initialize the transaction reporter.

        Args:
            db: Database instance for report logging
            timeout: Request timeout in seconds
        """
        self.db = db
        self.timeout = timeout or config.saleor.request_timeout
        self._session: Optional[aiohttp.ClientSession] = None

    async def start(self) -> None:
        """Start the transaction reporter."""
        logger.info("Starting transaction reporter...")
        self._session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.timeout)
        )
        logger.info("Transaction reporter started")

    async def stop(self) -> None:
        """Stop the transaction reporter."""
        logger.info("Stopping transaction reporter...")

        if self._session:
            await self._session.close()
            self._session = None

    async def report(
        self,
        installation: Dict[str, Any],
        report: TransactionReport
    ) -> Tuple[bool, Optional[str]]:
        """
        Report a transaction event to the platform.

        Args:
            installation: Installation record with ``saleor_api_url`` and ``auth_token``
            report: Transaction event to report

        Returns:
            Tuple of (success: bool, error_message: Optional[str])
        """
        event_type = report.event_type.value

        if await self.db.check_report_processed(report.order_id, report.request_id, event_type):
            logger.info(
                f"Event {event_type} for order {report.order_id} already reported, skipping"
            )
            return True, None

        logger.info(
            f"Reporting {event_type} for transaction {report.transaction_id} "
            f"(order {report.order_id}, {report.amount} {report.currency})"
        )

        success, error = await self._send(
            api_url=installation['saleor_api_url'],
            token=installation['auth_token'],
            report=report
        )

        await self.db.log_transaction_report(
            transaction_id=report.transaction_id,
            order_id=report.order_id,
            request_id=report.request_id,
            event_type=event_type,
            psp_reference=report.psp_reference,
            amount=str(report.amount),
            success=success,
            response_body=error
        )

        if success:
            logger.info(f"Transaction event reported for {report.transaction_id}")
        else:
            logger.error(
                f"Failed to report transaction event for {report.transaction_id}: {error}"
            )

        return success, error

    async def _send(
        self,
        api_url: str,
        token: str,
        report: TransactionReport
    ) -> Tuple[bool, Optional[str]]:
        """
        Send the transactionEventReport mutation.

        Args:
            api_url: Platform GraphQL API URL
            token: Installation auth token
            report: Transaction event to report

        Returns:
            Tuple of (success, error_message)
        """
        if not self._session:
            return False, "Session not initialized"

        headers = {
            'Content-Type': 'application/json',
            'Authorization': f'Bearer {token}'
        }
        body = {
            'query': TRANSACTION_EVENT_REPORT_MUTATION,
            'variables': report.to_variables()
        }

        try:
            async with self._session.post(api_url, json=body, headers=headers) as response:
                if not 200 <= response.status < 300:
                    text = await response.text()
                    return False, f"HTTP {response.status}: {text[:500]}"

                result = await response.json(content_type=None)

        except aiohttp.ClientError as e:
            logger.error(f"Network error reporting transaction event: {e}")
            return False, str(e)
        except asyncio.TimeoutError:
            logger.error(f"Timeout reporting transaction event to {api_url}")
            return False, "Request timeout"
        except ValueError as e:
            return False, f"Invalid response: {e}"

        return self._parse_result(result, report)

    def _parse_result(
        self,
        result: Dict[str, Any],
        report: TransactionReport
    ) -> Tuple[bool, Optional[str]]:
        """Interpret a GraphQL response body."""
        if not isinstance(result, dict):
            return False, "Invalid response: expected a JSON object"

        if result.get('errors'):
            messages = ', '.join(e.get('message', '') for e in result['errors'])
            return False, messages

        payload = (result.get('data') or {}).get('transactionEventReport') or {}

        errors = payload.get('errors') or []
        if errors:
            messages = ', '.join(e.get('message', '') for e in errors)
            return False, messages

        if payload.get('alreadyProcessed'):
            logger.info(
                f"Transaction event was already processed for {report.transaction_id} "
                f"({report.psp_reference})"
            )

        return True, None
