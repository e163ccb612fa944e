"""
Database connection and query module.

Provides a clean interface for database operations with support
for both PostgreSQL and SQLite backends.
"""

import json
import logging
import os
import re
from datetime import datetime
from typing import Any, Dict, List, Optional

import asyncpg
import aiosqlite

from config import config

logger = logging.getLogger(__name__)


class Database:
    """
    Async database connection manager.

    Supports PostgreSQL (production) and SQLite (development).
    Provides connection pooling and query execution methods.
    """

    def __init__(self, database_url: Optional[str] = None):
        """
        Initialize database manager.

        Args:
            database_url: Database connection URL. Uses config if not provided.
        """
        self.database_url = database_url or config.database.url
        self._pool = None
        self._sqlite_conn = None
        self._is_postgres = self.database_url.startswith(('postgresql', 'postgres://'))

    async def connect(self) -> None:
        """Establish database connection(s)."""
        if self._is_postgres:
            logger.info("Connecting to PostgreSQL database...")
            self._pool = await asyncpg.create_pool(
                self.database_url,
                min_size=2,
                max_size=10,
                command_timeout=60
            )
        else:
            # SQLite for development
            db_path = self.database_url.replace('sqlite:///', '')
            logger.info(f"Connecting to SQLite database: {db_path}")
            self._sqlite_conn = await aiosqlite.connect(db_path)
            self._sqlite_conn.row_factory = aiosqlite.Row

        logger.info("Database connection established")

    async def disconnect(self) -> None:
        """Close database connection(s)."""
        if self._is_postgres and self._pool:
            await self._pool.close()
            self._pool = None
        elif self._sqlite_conn:
            await self._sqlite_conn.close()
            self._sqlite_conn = None

        logger.info("Database connection closed")

    async def execute(self, query: str, *args) -> str:
        """
        Execute a query without returning results.

        Args:
            query: SQL query to execute
            *args: Query parameters

        Returns:
            Status message from database
        """
        if self._is_postgres:
            async with self._pool.acquire() as conn:
                return await conn.execute(query, *args)
        else:
            await self._sqlite_conn.execute(self._convert_params(query), args)
            await self._sqlite_conn.commit()
            return "OK"

    async def fetch_one(self, query: str, *args) -> Optional[Dict[str, Any]]:
        """
        Execute a query and fetch one row.

        Args:
            query: SQL query to execute
            *args: Query parameters

        Returns:
            Row as dictionary or None if no results
        """
        if self._is_postgres:
            async with self._pool.acquire() as conn:
                row = await conn.fetchrow(query, *args)
                return dict(row) if row else None
        else:
            # Convert $1, $2 style params to ?1, ?2 for SQLite
            sqlite_query = self._convert_params(query)
            cursor = await self._sqlite_conn.execute(sqlite_query, args)
            row = await cursor.fetchone()
            if row:
                columns = [d[0] for d in cursor.description]
                return dict(zip(columns, row))
            return None

    def _convert_params(self, query: str) -> str:
        """
        Convert PostgreSQL $1, $2 style params to SQLite ?1, ?2 style.

        Numbered placeholders keep a parameter reusable within one query.
        """
        return re.sub(r'\$(\d+)', r'?\1', query)

    def _timestamp(self, value: datetime) -> Any:
        """Format a timestamp for the active backend."""
        return value if self._is_postgres else value.isoformat()

    async def init_schema(self) -> None:
        """Initialize database schema from schema.sql file."""
        schema_path = os.path.join(os.path.dirname(__file__), 'schema.sql')

        with open(schema_path, 'r') as f:
            schema = f.read()

        # Strip comment lines, then split by semicolons
        schema = '\n'.join(
            line for line in schema.splitlines()
            if not line.strip().startswith('--')
        )
        statements = [s.strip() for s in schema.split(';') if s.strip()]

        for statement in statements:
            if not self._is_postgres:
                statement = statement.replace('SERIAL PRIMARY KEY', 'INTEGER PRIMARY KEY AUTOINCREMENT')

            try:
                if self._is_postgres:
                    async with self._pool.acquire() as conn:
                        await conn.execute(statement)
                else:
                    await self._sqlite_conn.execute(statement)
            except Exception as e:
                # Log but continue - some statements may fail on re-run
                logger.debug(f"Schema statement skipped: {e}")

        if not self._is_postgres:
            await self._sqlite_conn.commit()

        logger.info("Database schema initialized")

    # -------------------------------------------------------------------------
    # Installation Operations
    # -------------------------------------------------------------------------

    async def get_installation(self, saleor_api_url: str) -> Optional[Dict[str, Any]]:
        """
        Get an active app installation by platform API URL.

        The ``private_metadata`` column is returned decoded as a list of
        ``{"key": ..., "value": ...}`` items.
        """
        row = await self.fetch_one(
            "SELECT * FROM app_installations WHERE saleor_api_url = $1 AND is_active = $2",
            saleor_api_url, True
        )
        if not row:
            return None

        row['private_metadata'] = json.loads(row.get('private_metadata') or '[]')
        return row

    async def save_installation(
        self,
        saleor_api_url: str,
        auth_token: str,
        app_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """Create or refresh an app installation, keeping existing metadata."""
        now = datetime.utcnow()

        if self._is_postgres:
            await self.execute(
                """
                INSERT INTO app_installations (saleor_api_url, app_id, auth_token,
                                               private_metadata, is_active, created_at, updated_at)
                VALUES ($1, $2, $3, '[]', TRUE, $4, $4)
                ON CONFLICT (saleor_api_url) DO UPDATE SET
                    app_id = EXCLUDED.app_id,
                    auth_token = EXCLUDED.auth_token,
                    is_active = TRUE,
                    updated_at = EXCLUDED.updated_at
                """,
                saleor_api_url, app_id, auth_token, now
            )
        else:
            await self.execute(
                """
                INSERT INTO app_installations (saleor_api_url, app_id, auth_token,
                                               private_metadata, is_active, created_at, updated_at)
                VALUES ($1, $2, $3, '[]', 1, $4, $4)
                ON CONFLICT (saleor_api_url) DO UPDATE SET
                    app_id = excluded.app_id,
                    auth_token = excluded.auth_token,
                    is_active = 1,
                    updated_at = excluded.updated_at
                """,
                saleor_api_url, app_id, auth_token, now.isoformat()
            )

        return await self.get_installation(saleor_api_url)

    async def update_private_metadata(
        self,
        saleor_api_url: str,
        private_metadata: List[Dict[str, str]]
    ) -> None:
        """Replace the private metadata of an installation."""
        await self.execute(
            "UPDATE app_installations SET private_metadata = $1, updated_at = $2 "
            "WHERE saleor_api_url = $3",
            json.dumps(private_metadata), self._timestamp(datetime.utcnow()), saleor_api_url
        )

    async def deactivate_installation(self, saleor_api_url: str) -> None:
        """Mark an installation as uninstalled."""
        await self.execute(
            "UPDATE app_installations SET is_active = $1, updated_at = $2 "
            "WHERE saleor_api_url = $3",
            False, self._timestamp(datetime.utcnow()), saleor_api_url
        )

    # -------------------------------------------------------------------------
    # Payment Request Operations
    # -------------------------------------------------------------------------

    async def save_payment_request(
        self,
        order_id: str,
        transaction_id: str,
        saleor_api_url: str,
        amount: int,
        currency: str
    ) -> None:
        """Record a created Paysera order and the transaction it belongs to."""
        await self.execute(
            """
            INSERT INTO payment_requests
                (order_id, transaction_id, saleor_api_url, amount, currency, created_at)
            VALUES ($1, $2, $3, $4, $5, $6)
            """,
            order_id, transaction_id, saleor_api_url, amount, currency,
            self._timestamp(datetime.utcnow())
        )

    async def get_payment_request(self, order_id: str) -> Optional[Dict[str, Any]]:
        """Get a recorded Paysera order."""
        return await self.fetch_one(
            "SELECT * FROM payment_requests WHERE order_id = $1",
            order_id
        )

    # -------------------------------------------------------------------------
    # Transaction Report Operations
    # -------------------------------------------------------------------------

    async def log_transaction_report(
        self,
        transaction_id: str,
        order_id: str,
        request_id: str,
        event_type: str,
        psp_reference: str,
        amount: str,
        success: bool,
        response_body: Optional[str] = None
    ) -> None:
        """Log a transaction report attempt."""
        now = datetime.utcnow()

        if self._is_postgres:
            await self.execute(
                """
                INSERT INTO transaction_reports
                    (transaction_id, order_id, request_id, event_type, psp_reference,
                     amount, success, response_body, reported_at)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
                ON CONFLICT (order_id, request_id, event_type) DO UPDATE SET
                    success = EXCLUDED.success,
                    response_body = EXCLUDED.response_body,
                    reported_at = EXCLUDED.reported_at
                """,
                transaction_id, order_id, request_id, event_type, psp_reference,
                amount, success, response_body, now
            )
        else:
            await self.execute(
                """
                INSERT OR REPLACE INTO transaction_reports
                    (transaction_id, order_id, request_id, event_type, psp_reference,
                     amount, success, response_body, reported_at)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
                """,
                transaction_id, order_id, request_id, event_type, psp_reference,
                amount, success, response_body, now.isoformat()
            )

    async def check_report_processed(
        self,
        order_id: str,
        request_id: str,
        event_type: str
    ) -> bool:
        """Check if a callback event has already been reported successfully."""
        result = await self.fetch_one(
            """
            SELECT id FROM transaction_reports
            WHERE order_id = $1 AND request_id = $2 AND event_type = $3 AND success = $4
            """,
            order_id, request_id, event_type, True
        )
        return result is not None

