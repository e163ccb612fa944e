"""
Paysera payment endpoints.

Handles the platform's transaction-initialize-session webhook, which sends
the customer to Paysera, and the callback endpoint Paysera redirects the
customer to and notifies the server on.
"""

import logging
import uuid
from typing import Any, Dict, Optional
from urllib.parse import quote

from aiohttp import web

from config import config
from database.db import Database
from models.errors import ConfigurationError, ErrorKind, GatewayError
from models.merchant import get_merchant_config_from_metadata
from models.payment import CallbackUrls, PaymentRequestDescription, RawCallback
from models.transaction import InitializeSessionResponse, TransactionReport
from services.gateway_client import GatewayClient
from services.request_builder import to_minor_units
from services.transaction_reporter import TransactionReporter
from .auth import authenticate_installation

logger = logging.getLogger(__name__)

CALLBACK_PATH = '/api/paysera/callback'

# How each codec error is answered on the inbound callback
HTTP_STATUS_BY_KIND = {
    ErrorKind.SIGNATURE: 400,
    ErrorKind.CALLBACK_DATA: 400,
    ErrorKind.CONFIGURATION: 500,
    ErrorKind.UNCLASSIFIED: 500,
}

RESPONSE_TEXT_BY_KIND = {
    ErrorKind.SIGNATURE: "Invalid signature",
    ErrorKind.CALLBACK_DATA: "Invalid callback data",
    ErrorKind.CONFIGURATION: "Paysera not configured",
    ErrorKind.UNCLASSIFIED: "Callback processing failed",
}


def extract_customer_details(source_object: Optional[Dict[str, Any]]) -> Dict[str, Optional[str]]:
    """
    Extract payer details from a checkout or order.

    Args:
        source_object: ``sourceObject`` of the webhook payload

    Returns:
        Dictionary with email, first_name, last_name and language
    """
    details = {'email': None, 'first_name': None, 'last_name': None, 'language': None}
    if not source_object:
        return details

    details['email'] = source_object.get('email') or source_object.get('userEmail') or None

    billing_address = source_object.get('billingAddress') or {}
    details['first_name'] = billing_address.get('firstName') or None
    details['last_name'] = billing_address.get('lastName') or None

    language_code = source_object.get('languageCode')
    if language_code:
        # EN_US -> en
        details['language'] = str(language_code).split('_')[0].lower()

    return details


class PayseraAPI:
    """
    Payment endpoints for the Paysera integration.

    Endpoints:
    - POST /api/webhooks/transaction-initialize-session - Create a Paysera redirect
    - GET|POST /api/paysera/callback - Customer redirects and server callback
    """

    def __init__(
        self,
        db: Database,
        reporter: TransactionReporter,
        payment_url: Optional[str] = None
    ):
        """
        Initialize the API.

        Args:
            db: Database instance
            reporter: Transaction reporter for callback outcomes
            payment_url: Paysera payment endpoint
        """
        self.db = db
        self.reporter = reporter
        self.payment_url = payment_url or config.paysera.payment_url

    def setup_routes(self, app: web.Application) -> None:
        """
        Set up payment routes.

        Args:
            app: aiohttp web application
        """
        app.router.add_post(
            '/api/webhooks/transaction-initialize-session',
            self.transaction_initialize_session
        )
        app.router.add_get(CALLBACK_PATH, self.paysera_callback)
        app.router.add_post(CALLBACK_PATH, self.paysera_callback)

    def _external_base_url(self, request: web.Request) -> str:
        """Get the public base URL Paysera should call back on."""
        if config.app.api_base_url:
            return config.app.api_base_url
        return f"{request.scheme}://{request.host}"

    def _callback_urls(self, base_url: str, transaction_id: str, saleor_api_url: str) -> CallbackUrls:
        """Build accept, cancel and server callback URLs for a transaction."""
        query = (
            f"transactionId={quote(transaction_id, safe='')}"
            f"&saleorApiUrl={quote(saleor_api_url, safe='')}"
        )

        def url(action: str) -> str:
            return f"{base_url}{CALLBACK_PATH}?action={action}&{query}"

        return CallbackUrls(
            accept_url=url('accept'),
            cancel_url=url('cancel'),
            callback_url=url('callback')
        )

    async def transaction_initialize_session(self, request: web.Request) -> web.Response:
        """
        Handle the transaction-initialize-session webhook.

        The webhook must carry the installation token as a bearer token.

        Request body (subset):
        {
            "action": {"actionType": "CHARGE", "amount": 10.5, "currency": "EUR"},
            "transaction": {"id": "..."},
            "sourceObject": {"email": "...", "billingAddress": {...}, "languageCode": "EN_US"},
            "merchantReference": "..."
        }
        """
        saleor_api_url = request.headers.get('saleor-api-url')
        if not saleor_api_url:
            return web.json_response(
                {"error": "Missing saleor-api-url header"},
                status=400
            )

        installation = await authenticate_installation(self.db, request)
        if not installation:
            logger.warning(f"Rejected unauthenticated initialize-session webhook for {saleor_api_url}")
            return web.json_response(
                {"error": "Unauthorized"},
                status=401
            )

        try:
            payload = await request.json()
        except Exception:
            return web.json_response(
                {"error": "Invalid JSON body"},
                status=400
            )

        action = payload.get('action') or {}
        action_type = action.get('actionType')
        amount = action.get('amount')
        currency = action.get('currency')
        transaction_id = (payload.get('transaction') or {}).get('id')

        if not transaction_id:
            return web.json_response(
                {"error": "transaction.id is required"},
                status=400
            )

        psp_reference = str(uuid.uuid4())

        # Get Paysera configuration from installation private metadata
        try:
            merchant_config = get_merchant_config_from_metadata(installation['private_metadata'])
            client = GatewayClient(merchant_config, payment_url=self.payment_url)
        except ConfigurationError as e:
            logger.error(f"Failed to load Paysera configuration: {e.message}")
            response = InitializeSessionResponse.failure(
                psp_reference=psp_reference,
                amount=amount,
                action_type=action_type,
                message=e.message,
                error_code="CONFIGURATION_ERROR"
            )
            return web.json_response(response.to_dict())

        logger.info(f"Paysera config loaded: {merchant_config!r}")

        customer = extract_customer_details(payload.get('sourceObject'))
        base_url = self._external_base_url(request)

        try:
            description = PaymentRequestDescription(
                transaction_id=transaction_id,
                amount=amount,
                currency=currency or '',
                urls=self._callback_urls(base_url, transaction_id, saleor_api_url),
                customer_email=customer['email'],
                customer_first_name=customer['first_name'],
                customer_last_name=customer['last_name'],
                payment_description=(
                    f"Payment for order {payload.get('merchantReference') or transaction_id}"
                ),
                language=customer['language']
            )
            payment_request = client.create_payment_request(description)

            await self.db.save_payment_request(
                order_id=payment_request.order_id,
                transaction_id=transaction_id,
                saleor_api_url=saleor_api_url,
                amount=to_minor_units(description.amount),
                currency=description.currency.upper()
            )
        except Exception as e:
            logger.error(f"Failed to create Paysera payment request: {e}", exc_info=True)
            response = InitializeSessionResponse.failure(
                psp_reference=psp_reference,
                amount=amount,
                action_type=action_type,
                message=str(e) or "Failed to create payment request",
                error_code="PAYMENT_REQUEST_ERROR"
            )
            return web.json_response(response.to_dict())

        logger.info(
            f"Paysera payment request {payment_request.order_id} created for "
            f"transaction {transaction_id} ({amount} {currency}, "
            f"test={merchant_config.sandbox_mode})"
        )

        response = InitializeSessionResponse.action_required(
            psp_reference=psp_reference,
            amount=amount,
            redirect_url=payment_request.redirect_url,
            order_id=payment_request.order_id
        )
        return web.json_response(response.to_dict())

    async def paysera_callback(self, request: web.Request) -> web.StreamResponse:
        """
        Handle Paysera redirects and server callbacks.

        Query parameters:
            action: accept | cancel | callback
            transactionId: Platform transaction ID
            saleorApiUrl: Platform API URL (required for callback)
            data, ss1, ss2: Paysera signed payload (callback only)
        """
        params = dict(request.query)
        if request.method == 'POST':
            form = await request.post()
            params.update({k: v for k, v in form.items() if isinstance(v, str)})

        action = params.get('action')
        transaction_id = params.get('transactionId')
        saleor_api_url = params.get('saleorApiUrl')

        logger.info(
            f"Paysera callback received: action={action}, "
            f"transaction={transaction_id}, method={request.method}"
        )

        if not transaction_id:
            logger.error("Missing transactionId in callback")
            return web.Response(text="Missing transactionId", status=400)

        if action == 'accept':
            logger.info(f"Payment accepted, redirecting customer ({transaction_id})")
            raise web.HTTPFound(f"{config.app.storefront_url}/checkout/success")

        if action == 'cancel':
            logger.info(f"Payment cancelled, redirecting customer ({transaction_id})")
            raise web.HTTPFound(f"{config.app.storefront_url}/checkout/cancel")

        if action == 'callback':
            if not saleor_api_url:
                logger.error("Missing saleorApiUrl in server callback")
                return web.Response(text="Missing saleorApiUrl", status=400)
            return await self._handle_server_callback(params, transaction_id, saleor_api_url)

        logger.error(f"Unknown callback action: {action}")
        return web.Response(text="Unknown action", status=400)

    async def _handle_server_callback(
        self,
        params: Dict[str, str],
        transaction_id: str,
        saleor_api_url: str
    ) -> web.Response:
        """Verify a server callback and report its outcome."""
        installation = await self.db.get_installation(saleor_api_url)
        if not installation:
            logger.error(f"No installation found for {saleor_api_url}")
            return web.Response(text="Invalid Saleor API URL", status=400)

        raw_callback = RawCallback.from_params(params)
        if not raw_callback.data or not raw_callback.ss1:
            logger.error("Missing data or ss1 in callback")
            return web.Response(text="Missing callback data", status=400)

        try:
            merchant_config = get_merchant_config_from_metadata(installation['private_metadata'])
            client = GatewayClient(merchant_config, payment_url=self.payment_url)
            event = client.process_callback(raw_callback)
        except GatewayError as e:
            if e.kind == ErrorKind.SIGNATURE:
                logger.error(f"Invalid Paysera callback signature for {transaction_id}")
            elif e.kind == ErrorKind.CALLBACK_DATA:
                logger.error(f"Invalid Paysera callback data for {transaction_id}: {e.message}")
            else:
                logger.error(f"Failed to load Paysera configuration: {e.message}")
            return web.Response(
                text=RESPONSE_TEXT_BY_KIND[e.kind],
                status=HTTP_STATUS_BY_KIND[e.kind]
            )

        logger.info(
            f"Paysera callback decoded: order={event.order_id}, status={event.status}, "
            f"amount={event.get_formatted_amount()}, test={event.test}"
        )

        payment_request = await self.db.get_payment_request(event.order_id)
        if not payment_request:
            # Acknowledge so Paysera stops retrying; nothing to report against
            logger.warning(f"Callback for unknown Paysera order {event.order_id}, not reported")
            return web.Response(text="OK")

        if payment_request['transaction_id'] != transaction_id:
            logger.error(
                f"Paysera order {event.order_id} belongs to transaction "
                f"{payment_request['transaction_id']}, not {transaction_id}"
            )
            return web.Response(text="Order does not match transaction", status=400)

        report = TransactionReport.from_callback(transaction_id, event)
        try:
            success, error = await self.reporter.report(installation, report)
        except Exception as e:
            logger.error(f"Error reporting transaction event: {e}", exc_info=True)
            success, error = False, str(e)

        if not success:
            # Still answer OK; Paysera would otherwise retry indefinitely
            logger.error(f"Transaction report failed for {transaction_id}: {error}")

        # Paysera expects a plain "OK" response
        return web.Response(text="OK")
