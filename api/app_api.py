"""
App Management API.

Provides REST endpoints for app installation and Paysera configuration,
and assembles the aiohttp application.
"""

import logging
from typing import Any, Dict, Optional

from aiohttp import web

from config import config
from database.db import Database
from models.errors import ConfigurationError
from models.merchant import (
    MerchantConfig,
    get_merchant_config_from_metadata,
    merge_metadata,
    serialize_merchant_config,
)
from services.transaction_reporter import TransactionReporter
from .auth import authenticate_installation, token_matches
from .paysera_api import PayseraAPI

logger = logging.getLogger(__name__)


class AppAPI:
    """
    REST API for app installation and configuration.

    Endpoints:
    - POST /api/register - Register an installation for a Saleor API URL
    - GET /api/configuration - Get the Paysera configuration (without password)
    - POST /api/configuration - Save the Paysera configuration
    - POST /api/uninstall - Deactivate an installation
    - GET /api/health - Health check
    """

    def __init__(self, db: Database):
        """
        Initialize the API.

        Args:
            db: Database instance
        """
        self.db = db

    def setup_routes(self, app: web.Application) -> None:
        """
        Set up API routes.

        Args:
            app: aiohttp web application
        """
        app.router.add_post('/api/register', self.register)
        app.router.add_get('/api/configuration', self.get_configuration)
        app.router.add_post('/api/configuration', self.save_configuration)
        app.router.add_post('/api/uninstall', self.uninstall)
        app.router.add_get('/api/health', self.health_check)

    async def _authenticate(self, request: web.Request) -> Optional[Dict[str, Any]]:
        """Resolve the installation from the platform URL header and bearer token."""
        return await authenticate_installation(self.db, request)

    async def register(self, request: web.Request) -> web.Response:
        """
        Register an app installation.

        Re-registering an active installation requires its current token
        as a bearer token.

        Request body:
        {
            "auth_token": "...",
            "app_id": "..." (optional)
        }
        """
        saleor_api_url = request.headers.get('saleor-api-url')
        if not saleor_api_url:
            return web.json_response(
                {"error": "Missing saleor-api-url header"},
                status=400
            )

        if not saleor_api_url.startswith(('http://', 'https://')):
            return web.json_response(
                {"error": "saleor-api-url must be a valid HTTP(S) URL"},
                status=400
            )

        try:
            data = await request.json()
        except Exception:
            return web.json_response(
                {"error": "Invalid JSON body"},
                status=400
            )

        auth_token = data.get('auth_token')
        if not auth_token:
            return web.json_response(
                {"error": "auth_token is required"},
                status=400
            )

        # An active installation may only be re-registered by its current token holder
        existing = await self.db.get_installation(saleor_api_url)
        if existing and not token_matches(request, existing):
            logger.warning(f"Rejected unauthenticated re-registration for {saleor_api_url}")
            return web.json_response(
                {"error": "App is already installed for this Saleor API URL"},
                status=401
            )

        try:
            await self.db.save_installation(
                saleor_api_url=saleor_api_url,
                auth_token=auth_token,
                app_id=data.get('app_id')
            )
        except Exception as e:
            logger.error(f"Error saving installation: {e}")
            return web.json_response(
                {"error": "Failed to register app"},
                status=500
            )

        logger.info(f"Registered app installation for {saleor_api_url}")

        return web.json_response({"success": True}, status=201)

    async def get_configuration(self, request: web.Request) -> web.Response:
        """Get the current Paysera configuration, never including the password."""
        installation = await self._authenticate(request)
        if not installation:
            return web.json_response(
                {"error": "Unauthorized"},
                status=401
            )

        try:
            merchant_config = get_merchant_config_from_metadata(installation['private_metadata'])
        except ConfigurationError as e:
            logger.info(f"Paysera configuration not found or invalid: {e.message}")
            return web.json_response({
                "projectId": "",
                "testMode": True,
                "isConfigured": False
            })

        logger.info(f"Retrieved Paysera configuration: {merchant_config!r}")

        return web.json_response(merchant_config.to_public_dict())

    async def save_configuration(self, request: web.Request) -> web.Response:
        """
        Save the Paysera configuration.

        Request body:
        {
            "projectId": "12345",
            "password": "...",
            "testMode": true
        }
        """
        installation = await self._authenticate(request)
        if not installation:
            return web.json_response(
                {"error": "Unauthorized"},
                status=401
            )

        try:
            data = await request.json()
        except Exception:
            return web.json_response(
                {"error": "Invalid JSON body"},
                status=400
            )

        try:
            merchant_config = MerchantConfig.from_dict(data)
        except ConfigurationError as e:
            return web.json_response(
                {"error": e.message},
                status=400
            )

        private_metadata = merge_metadata(
            installation['private_metadata'],
            serialize_merchant_config(merchant_config)
        )
        await self.db.update_private_metadata(installation['saleor_api_url'], private_metadata)

        logger.info(f"Paysera configuration saved: {merchant_config!r}")

        return web.json_response({"success": True})

    async def uninstall(self, request: web.Request) -> web.Response:
        """Deactivate the installation; its configuration is kept for a reinstall."""
        installation = await self._authenticate(request)
        if not installation:
            return web.json_response(
                {"error": "Unauthorized"},
                status=401
            )

        await self.db.deactivate_installation(installation['saleor_api_url'])

        logger.info(f"Deactivated app installation for {installation['saleor_api_url']}")

        return web.json_response({"success": True})

    async def health_check(self, request: web.Request) -> web.Response:
        """Health check endpoint."""
        return web.json_response({
            "status": "healthy",
            "service": config.service.name
        })


def create_app(
    db: Database,
    reporter: TransactionReporter,
    payment_url: Optional[str] = None
) -> web.Application:
    """
    Create and configure the aiohttp web application.

    Args:
        db: Database instance
        reporter: Transaction reporter for callback outcomes
        payment_url: Optional Paysera payment endpoint override

    Returns:
        Configured aiohttp Application
    """
    app = web.Application()

    # Create API handlers
    AppAPI(db=db).setup_routes(app)
    PayseraAPI(db=db, reporter=reporter, payment_url=payment_url).setup_routes(app)

    # Add CORS middleware
    @web.middleware
    async def cors_middleware(request, handler):
        if request.method == "OPTIONS":
            response = web.Response()
        else:
            response = await handler(request)

        response.headers['Access-Control-Allow-Origin'] = '*'
        response.headers['Access-Control-Allow-Methods'] = 'GET, POST, OPTIONS'
        response.headers['Access-Control-Allow-Headers'] = 'Content-Type, Authorization, saleor-api-url'
        return response

    app.middlewares.append(cors_middleware)

    # Error handling middleware
    @web.middleware
    async def error_middleware(request, handler):
        try:
            return await handler(request)
        except web.HTTPException:
            raise
        except Exception as e:
            logger.error(f"Unhandled error: {e}", exc_info=True)
            return web.json_response(
                {"error": "Internal server error"},
                status=500
            )

    app.middlewares.append(error_middleware)

    return app
