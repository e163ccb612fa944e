"""Database module for the Paysera payment app."""

from .db import Database

__all__ = ['Database']
