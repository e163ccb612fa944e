"""
Tests for the HTTP API and the transaction reporter.

Run with: pytest tests/test_api.py -v
"""

from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import parse_qs, urlsplit

import pytest
from aiohttp import web

from api.app_api import create_app
from conftest import AUTH_TOKEN, PASSWORD, PROJECT_ID, SALEOR_API_URL
from models.transaction import TransactionEventType, TransactionReport
from models.payment import CallbackEvent
from services.signing import decode_url_safe_base64, encode_ordered_params, encode_url_safe_base64, sign
from services.transaction_reporter import TransactionReporter

PAYMENT_URL = 'https://sandbox.paysera.test/pay/'


class FakeReporter:
    """Records reports instead of calling the platform."""

    def __init__(self, success: bool = True):
        self.success = success
        self.reports: List[Tuple[Dict[str, Any], TransactionReport]] = []

    async def report(self, installation, report) -> Tuple[bool, Optional[str]]:
        self.reports.append((installation, report))
        return self.success, None if self.success else "HTTP 500: boom"


@pytest.fixture
def reporter():
    return FakeReporter()


@pytest.fixture
async def client(aiohttp_client, db, reporter):
    app = create_app(db=db, reporter=reporter, payment_url=PAYMENT_URL)
    return await aiohttp_client(app)


def auth_headers(token: str = AUTH_TOKEN) -> Dict[str, str]:
    return {
        'saleor-api-url': SALEOR_API_URL,
        'Authorization': f'Bearer {token}'
    }


def signed_callback(order_id: str, status: str = '1', secret: str = PASSWORD, **extra) -> Dict[str, str]:
    """Build the data and ss1 parameters of a Paysera callback."""
    fields = {
        'projectid': PROJECT_ID,
        'orderid': order_id,
        'amount': '1050',
        'currency': 'EUR',
        'status': status,
        'requestid': 'req-1',
        **extra
    }
    data = encode_url_safe_base64(encode_ordered_params(fields))
    return {'data': data, 'ss1': sign(data, secret)}


def callback_params(transaction_id: str = 'TX-001', **params) -> Dict[str, str]:
    return {
        'action': 'callback',
        'transactionId': transaction_id,
        'saleorApiUrl': SALEOR_API_URL,
        **params
    }


def initialize_payload(action_type: str = 'CHARGE') -> Dict[str, Any]:
    return {
        'action': {'actionType': action_type, 'amount': 10.5, 'currency': 'EUR'},
        'transaction': {'id': 'TX-001'},
        'merchantReference': 'ORDER-7',
        'sourceObject': {
            'email': 'buyer@example.com',
            'billingAddress': {'firstName': 'Jonas', 'lastName': 'Jonaitis'},
            'languageCode': 'LT_LT'
        }
    }


class TestAppAPI:
    """Tests for registration and configuration endpoints."""

    async def test_health(self, client):
        """Test health check."""
        resp = await client.get('/api/health')

        assert resp.status == 200
        assert (await resp.json())['status'] == 'healthy'

    async def test_register(self, client, db):
        """Test app registration."""
        resp = await client.post(
            '/api/register',
            json={'auth_token': AUTH_TOKEN, 'app_id': 'app-1'},
            headers={'saleor-api-url': SALEOR_API_URL}
        )

        assert resp.status == 201
        assert (await db.get_installation(SALEOR_API_URL))['auth_token'] == AUTH_TOKEN

    async def test_register_cannot_take_over_installation(self, client, db, installation):
        """Test that an active installation keeps its token and configuration against re-registration."""
        resp = await client.post(
            '/api/register',
            json={'auth_token': 'attacker-token'},
            headers={'saleor-api-url': SALEOR_API_URL}
        )
        assert resp.status == 401

        resp = await client.post(
            '/api/register',
            json={'auth_token': 'attacker-token'},
            headers=auth_headers('wrong')
        )
        assert resp.status == 401

        resp = await client.post(
            '/api/configuration',
            json={'projectId': '666', 'password': 'attacker', 'testMode': False},
            headers=auth_headers('attacker-token')
        )
        assert resp.status == 401

        stored = await db.get_installation(SALEOR_API_URL)
        assert stored['auth_token'] == AUTH_TOKEN
        assert stored['private_metadata'] == installation['private_metadata']

        resp = await client.post(
            '/api/webhooks/transaction-initialize-session',
            json=initialize_payload(),
            headers=auth_headers()
        )
        external_url = (await resp.json())['externalUrl']
        decoded = decode_url_safe_base64(parse_qs(urlsplit(external_url).query)['data'][0]).decode('utf-8')
        assert decoded.startswith(f'projectid={PROJECT_ID}&')

    async def test_register_token_rotation(self, client, db, installation):
        """Test that the current token holder may re-register with a new token."""
        resp = await client.post(
            '/api/register',
            json={'auth_token': 'rotated-token'},
            headers=auth_headers()
        )

        assert resp.status == 201
        assert (await db.get_installation(SALEOR_API_URL))['auth_token'] == 'rotated-token'

    async def test_register_requires_header(self, client):
        """Test that registration needs the platform URL."""
        resp = await client.post('/api/register', json={'auth_token': AUTH_TOKEN})

        assert resp.status == 400

    async def test_register_requires_token(self, client):
        """Test that registration needs an auth token."""
        resp = await client.post(
            '/api/register', json={}, headers={'saleor-api-url': SALEOR_API_URL}
        )

        assert resp.status == 400

    async def test_configuration_requires_auth(self, client, installation):
        """Test that configuration endpoints check the bearer token."""
        resp = await client.get('/api/configuration', headers=auth_headers('wrong'))
        assert resp.status == 401

        resp = await client.get('/api/configuration', headers={'saleor-api-url': SALEOR_API_URL})
        assert resp.status == 401

    async def test_get_configuration_without_password(self, client, installation):
        """Test that the stored password is never returned."""
        resp = await client.get('/api/configuration', headers=auth_headers())

        assert resp.status == 200
        assert await resp.json() == {'projectId': PROJECT_ID, 'testMode': True, 'isConfigured': True}

    async def test_get_configuration_not_configured(self, client, db):
        """Test response for an installation without configuration."""
        await db.save_installation(SALEOR_API_URL, AUTH_TOKEN)

        resp = await client.get('/api/configuration', headers=auth_headers())

        assert (await resp.json())['isConfigured'] is False

    async def test_save_configuration(self, client, db, installation):
        """Test that saving replaces the configuration and keeps other metadata."""
        await db.update_private_metadata(
            SALEOR_API_URL, installation['private_metadata'] + [{'key': 'other', 'value': 'x'}]
        )

        resp = await client.post(
            '/api/configuration',
            json={'projectId': '999', 'password': 'new_password', 'testMode': False},
            headers=auth_headers()
        )
        assert resp.status == 200

        resp = await client.get('/api/configuration', headers=auth_headers())
        assert await resp.json() == {'projectId': '999', 'testMode': False, 'isConfigured': True}

        stored = (await db.get_installation(SALEOR_API_URL))['private_metadata']
        assert {'key': 'other', 'value': 'x'} in stored
        assert len(stored) == 2

    async def test_save_invalid_configuration(self, client, installation):
        """Test that incomplete configuration is rejected."""
        resp = await client.post(
            '/api/configuration',
            json={'projectId': '999', 'password': ''},
            headers=auth_headers()
        )

        assert resp.status == 400
        assert (await resp.json())['error'] == "Password is required"

    async def test_uninstall(self, client, db, installation):
        """Test that an uninstalled app no longer accepts requests."""
        resp = await client.post('/api/uninstall', headers=auth_headers())
        assert resp.status == 200

        assert await db.get_installation(SALEOR_API_URL) is None

        resp = await client.get('/api/configuration', headers=auth_headers())
        assert resp.status == 401

    async def test_uninstall_requires_auth(self, client, db, installation):
        """Test that uninstalling checks the bearer token."""
        resp = await client.post('/api/uninstall', headers=auth_headers('wrong'))

        assert resp.status == 401
        assert await db.get_installation(SALEOR_API_URL) is not None


class TestInitializeSession:
    """Tests for the transaction-initialize-session webhook."""

    async def test_creates_redirect(self, client, db, installation):
        """Test that a signed Paysera redirect is returned and the order recorded."""
        resp = await client.post(
            '/api/webhooks/transaction-initialize-session',
            json=initialize_payload(),
            headers=auth_headers()
        )
        body = await resp.json()

        assert resp.status == 200
        assert body['result'] == 'CHARGE_ACTION_REQUIRED'
        assert body['externalUrl'].startswith(PAYMENT_URL + '?data=')

        order_id = body['data']['payseraOrderId']
        assert order_id.startswith('TX001')

        query = parse_qs(urlsplit(body['externalUrl']).query)
        assert query['sign'][0] == sign(query['data'][0], PASSWORD)

        decoded = decode_url_safe_base64(query['data'][0]).decode('utf-8')
        assert f'projectid={PROJECT_ID}&orderid={order_id}' in decoded
        assert 'amount=1050&currency=EUR&test=1' in decoded
        assert 'p_email=buyer%40example.com' in decoded
        assert 'p_lastname=Jonaitis' in decoded
        assert 'paytext=Payment%20for%20order%20ORDER-7' in decoded
        assert 'lang=lt' in decoded
        assert 'action%3Dcallback' in decoded

        row = await db.get_payment_request(order_id)
        assert row['transaction_id'] == 'TX-001'
        assert row['amount'] == 1050

    async def test_unknown_installation(self, client):
        """Test that an unregistered platform is rejected."""
        resp = await client.post(
            '/api/webhooks/transaction-initialize-session',
            json=initialize_payload(),
            headers=auth_headers()
        )

        assert resp.status == 401

    @pytest.mark.parametrize('headers', [
        {'saleor-api-url': SALEOR_API_URL},
        {'saleor-api-url': SALEOR_API_URL, 'Authorization': 'Bearer wrong'},
        {'saleor-api-url': SALEOR_API_URL, 'Authorization': AUTH_TOKEN},
    ])
    async def test_requires_installation_token(self, client, db, installation, headers):
        """Test that the webhook without the installation token creates nothing."""
        resp = await client.post(
            '/api/webhooks/transaction-initialize-session',
            json=initialize_payload(),
            headers=headers
        )

        assert resp.status == 401
        count = await db.fetch_one("SELECT COUNT(*) AS n FROM payment_requests")
        assert count['n'] == 0

    @pytest.mark.parametrize('action_type, result', [
        ('CHARGE', 'CHARGE_FAILURE'),
        ('AUTHORIZATION', 'AUTHORIZATION_FAILURE'),
    ])
    async def test_not_configured(self, client, db, action_type, result):
        """Test failure response when no Paysera configuration is stored."""
        await db.save_installation(SALEOR_API_URL, AUTH_TOKEN)

        resp = await client.post(
            '/api/webhooks/transaction-initialize-session',
            json=initialize_payload(action_type),
            headers=auth_headers()
        )
        body = await resp.json()

        assert body['result'] == result
        assert body['data'] == {'error': 'CONFIGURATION_ERROR'}

    async def test_invalid_amount(self, client, installation):
        """Test failure response for an unusable amount."""
        payload = initialize_payload()
        payload['action']['amount'] = 0

        resp = await client.post(
            '/api/webhooks/transaction-initialize-session',
            json=payload,
            headers=auth_headers()
        )
        body = await resp.json()

        assert body['result'] == 'CHARGE_FAILURE'
        assert body['data'] == {'error': 'PAYMENT_REQUEST_ERROR'}


class TestPayseraCallback:
    """Tests for Paysera redirects and server callbacks."""

    async def record_order(self, db, order_id: str = 'TX001abcdef', transaction_id: str = 'TX-001'):
        await db.save_payment_request(order_id, transaction_id, SALEOR_API_URL, 1050, 'EUR')

    @pytest.mark.parametrize('action, path', [('accept', '/checkout/success'), ('cancel', '/checkout/cancel')])
    async def test_customer_redirects(self, client, action, path):
        """Test that the customer is sent back to the storefront."""
        resp = await client.get(
            '/api/paysera/callback',
            params={'action': action, 'transactionId': 'TX-001'},
            allow_redirects=False
        )

        assert resp.status == 302
        assert resp.headers['Location'].endswith(path)

    async def test_missing_transaction_id(self, client):
        """Test that the transaction ID is required."""
        resp = await client.get('/api/paysera/callback', params={'action': 'accept'})

        assert resp.status == 400

    async def test_unknown_action(self, client):
        """Test that unknown actions are rejected."""
        resp = await client.get(
            '/api/paysera/callback', params={'action': 'refund', 'transactionId': 'TX-001'}
        )

        assert resp.status == 400
        assert await resp.text() == "Unknown action"

    async def test_successful_callback(self, client, db, installation, reporter):
        """Test that a verified callback is reported and acknowledged."""
        await self.record_order(db)

        resp = await client.get(
            '/api/paysera/callback',
            params=callback_params(**signed_callback('TX001abcdef'))
        )

        assert resp.status == 200
        assert await resp.text() == "OK"

        assert len(reporter.reports) == 1
        reported_installation, report = reporter.reports[0]
        assert reported_installation['auth_token'] == AUTH_TOKEN
        assert report.transaction_id == 'TX-001'
        assert report.event_type == TransactionEventType.CHARGE_SUCCESS
        assert str(report.amount) == '10.5'
        assert report.psp_reference == 'TX001abcdef'

    async def test_callback_via_post(self, client, db, installation, reporter):
        """Test that callback data may arrive as a form body."""
        await self.record_order(db)

        resp = await client.post(
            '/api/paysera/callback',
            params=callback_params(),
            data=signed_callback('TX001abcdef', status='0')
        )

        assert await resp.text() == "OK"
        assert reporter.reports[0][1].event_type == TransactionEventType.CHARGE_REQUEST

    async def test_invalid_signature(self, client, db, installation, reporter):
        """Test that a forged callback is rejected without reporting."""
        await self.record_order(db)

        resp = await client.get(
            '/api/paysera/callback',
            params=callback_params(**signed_callback('TX001abcdef', secret='forged'))
        )

        assert resp.status == 400
        assert await resp.text() == "Invalid signature"
        assert reporter.reports == []

    async def test_invalid_callback_data(self, client, installation, reporter):
        """Test that a signed payload with missing fields is rejected."""
        data = encode_url_safe_base64('projectid=12345&amount=100')

        resp = await client.get(
            '/api/paysera/callback',
            params=callback_params(data=data, ss1=sign(data, PASSWORD))
        )

        assert resp.status == 400
        assert await resp.text() == "Invalid callback data"

    async def test_missing_callback_data(self, client, installation):
        """Test that data and ss1 are required."""
        resp = await client.get('/api/paysera/callback', params=callback_params())

        assert resp.status == 400

    async def test_not_configured(self, client, db):
        """Test callback for an installation without configuration."""
        await db.save_installation(SALEOR_API_URL, AUTH_TOKEN)

        resp = await client.get(
            '/api/paysera/callback',
            params=callback_params(**signed_callback('TX001abcdef'))
        )

        assert resp.status == 500

    async def test_unknown_installation(self, client):
        """Test callback for an unregistered platform URL."""
        resp = await client.get(
            '/api/paysera/callback',
            params=callback_params(**signed_callback('TX001abcdef'))
        )

        assert resp.status == 400

    async def test_order_of_another_transaction(self, client, db, installation, reporter):
        """Test that a callback cannot be replayed onto another transaction."""
        await self.record_order(db, transaction_id='TX-OTHER')

        resp = await client.get(
            '/api/paysera/callback',
            params=callback_params(**signed_callback('TX001abcdef'))
        )

        assert resp.status == 400
        assert reporter.reports == []

    async def test_unknown_order(self, client, installation, reporter):
        """Test that callbacks for unknown orders are acknowledged but not reported."""
        resp = await client.get(
            '/api/paysera/callback',
            params=callback_params(**signed_callback('UNKNOWN1'))
        )

        assert await resp.text() == "OK"
        assert reporter.reports == []

    async def test_report_failure_still_acknowledged(self, client, db, installation, reporter):
        """Test that Paysera gets OK even when reporting fails."""
        reporter.success = False
        await self.record_order(db)

        resp = await client.get(
            '/api/paysera/callback',
            params=callback_params(**signed_callback('TX001abcdef'))
        )

        assert resp.status == 200
        assert await resp.text() == "OK"


class TestTransactionReporter:
    """Tests for TransactionReporter against a fake GraphQL endpoint."""

    @pytest.fixture
    async def graphql(self, aiohttp_server):
        """Fake platform GraphQL endpoint recording requests."""
        state = {'requests': [], 'status': 200, 'body': None, 'raw': False}

        async def handler(request: web.Request) -> web.Response:
            state['requests'].append({
                'headers': dict(request.headers),
                'body': await request.json()
            })
            body = state['body']
            if body is None and not state['raw']:
                body = {'data': {'transactionEventReport': {'alreadyProcessed': False, 'errors': []}}}
            return web.json_response(body, status=state['status'])

        app = web.Application()
        app.router.add_post('/graphql/', handler)
        server = await aiohttp_server(app)
        state['url'] = str(server.make_url('/graphql/'))
        return state

    @pytest.fixture
    async def transaction_reporter(self, db):
        service = TransactionReporter(db, timeout=5)
        await service.start()
        yield service
        await service.stop()

    def make_report(self, status: int = 1) -> TransactionReport:
        event = CallbackEvent(
            account_id=PROJECT_ID, order_id='TX001abcdef', amount=1050,
            currency='EUR', status=status, request_id='req-1'
        )
        return TransactionReport.from_callback('TX-001', event)

    async def test_reports_event(self, graphql, transaction_reporter):
        """Test the mutation request and its authorization."""
        installation = {'saleor_api_url': graphql['url'], 'auth_token': AUTH_TOKEN}

        success, error = await transaction_reporter.report(installation, self.make_report())

        assert success is True
        assert error is None

        request = graphql['requests'][0]
        assert request['headers']['Authorization'] == f'Bearer {AUTH_TOKEN}'
        assert 'transactionEventReport' in request['body']['query']
        assert request['body']['variables'] == {
            'id': 'TX-001',
            'amount': '10.5',
            'type': 'CHARGE_SUCCESS',
            'pspReference': 'TX001abcdef',
            'message': "Payment completed successfully",
            'availableActions': ['REFUND']
        }

    async def test_duplicate_event_reported_once(self, graphql, transaction_reporter):
        """Test idempotency of repeated callbacks."""
        installation = {'saleor_api_url': graphql['url'], 'auth_token': AUTH_TOKEN}

        await transaction_reporter.report(installation, self.make_report())
        success, _ = await transaction_reporter.report(installation, self.make_report())

        assert success is True
        assert len(graphql['requests']) == 1

    async def test_new_event_type_reported(self, graphql, transaction_reporter):
        """Test that a later status of the same order is reported."""
        installation = {'saleor_api_url': graphql['url'], 'auth_token': AUTH_TOKEN}

        await transaction_reporter.report(installation, self.make_report(status=0))
        await transaction_reporter.report(installation, self.make_report(status=1))

        assert [r['body']['variables']['type'] for r in graphql['requests']] == [
            'CHARGE_REQUEST', 'CHARGE_SUCCESS'
        ]

    async def test_mutation_errors(self, graphql, transaction_reporter):
        """Test that mutation errors fail the report and allow a retry."""
        graphql['body'] = {
            'data': {'transactionEventReport': {
                'alreadyProcessed': False,
                'errors': [{'field': 'id', 'message': 'Transaction not found', 'code': 'NOT_FOUND'}]
            }}
        }
        installation = {'saleor_api_url': graphql['url'], 'auth_token': AUTH_TOKEN}

        success, error = await transaction_reporter.report(installation, self.make_report())
        assert success is False
        assert error == 'Transaction not found'

        await transaction_reporter.report(installation, self.make_report())
        assert len(graphql['requests']) == 2

    async def test_graphql_errors(self, graphql, transaction_reporter):
        """Test top-level GraphQL errors."""
        graphql['body'] = {'errors': [{'message': 'Permission denied'}]}
        installation = {'saleor_api_url': graphql['url'], 'auth_token': AUTH_TOKEN}

        success, error = await transaction_reporter.report(installation, self.make_report())

        assert success is False
        assert error == 'Permission denied'

    @pytest.mark.parametrize('body', [None, [], 'ok'])
    async def test_non_object_response(self, graphql, transaction_reporter, body):
        """Test that a JSON body other than an object fails the report."""
        graphql['body'] = body
        graphql['raw'] = True
        installation = {'saleor_api_url': graphql['url'], 'auth_token': AUTH_TOKEN}

        success, error = await transaction_reporter.report(installation, self.make_report())

        assert success is False
        assert error.startswith('Invalid response')

    async def test_http_error(self, graphql, transaction_reporter):
        """Test non-2xx responses."""
        graphql['status'] = 500
        installation = {'saleor_api_url': graphql['url'], 'auth_token': AUTH_TOKEN}

        success, error = await transaction_reporter.report(installation, self.make_report())

        assert success is False
        assert error.startswith('HTTP 500')

    async def test_not_started(self, db):
        """Test that reporting before start fails cleanly."""
        service = TransactionReporter(db)
        installation = {'saleor_api_url': 'http://localhost/graphql/', 'auth_token': AUTH_TOKEN}

        success, error = await service.report(installation, self.make_report())

        assert success is False
        assert error == "Session not initialized"
