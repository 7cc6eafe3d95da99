"""Sync editor settings, packages and files with a remote backup."""

from .constants import SYNC_VERSION

__version__ = SYNC_VERSION
