"""Offline-first sync engine for shared fitness challenges."""

__version__ = "0.1.0"
