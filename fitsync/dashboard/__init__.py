"""Web dashboard for fitsync.

Exposes sync status, the pending operation queue, a "retry now" action and
the queue's "clear all" escape hatch as a JSON API.
"""

from .app import create_app

__all__ = ["create_app"]
