"""API module for the Paysera payment app."""

from .app_api import create_app, AppAPI
from .paysera_api import PayseraAPI

__all__ = ['create_app', 'AppAPI', 'PayseraAPI']
