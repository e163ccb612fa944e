"""Shared fixtures for the Paysera payment app tests."""

import pytest

from database.db import Database
from models.merchant import MerchantConfig, serialize_merchant_config

SALEOR_API_URL = 'https://shop.example.com/graphql/'
AUTH_TOKEN = 'app-token'
PROJECT_ID = '12345'
PASSWORD = 'secret_password'


@pytest.fixture
async def db():
    """In-memory SQLite database with the schema applied."""
    database = Database('sqlite:///:memory:')
    await database.connect()
    await database.init_schema()
    yield database
    await database.disconnect()


@pytest.fixture
async def installation(db):
    """Installation configured with a Paysera project."""
    await db.save_installation(SALEOR_API_URL, AUTH_TOKEN, app_id='app-1')
    await db.update_private_metadata(
        SALEOR_API_URL,
        [serialize_merchant_config(MerchantConfig(PROJECT_ID, PASSWORD, True))]
    )
    return await db.get_installation(SALEOR_API_URL)
