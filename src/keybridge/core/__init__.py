"""Keybridge Core - credential store model and browser integration settings."""

from .models import Database, Entry, Group, ADDITIONAL_URL
from .settings import BrowserSettings

__all__ = [
    'Database',
    'Entry',
    'Group',
    'ADDITIONAL_URL',
    'BrowserSettings',
]
