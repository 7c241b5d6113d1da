"""FastAPI status dashboard application."""

import logging
from datetime import datetime
from typing import Any

from fastapi import FastAPI

from ..engine import SyncEngine

logger = logging.getLogger(__name__)


def create_app(engine: SyncEngine) -> FastAPI:
    """Create the FastAPI dashboard application.

    Args:
        engine: Wired sync engine whose status and queue are exposed.

    Returns:
        Configured FastAPI application.
    """
    app = FastAPI(
        title="fitsync Dashboard",
        description="Sync status and pending operations for a fitsync device",
        version="0.1.0",
    )

    # Store references for route handlers
    app.state.engine = engine

    orchestrator = engine.orchestrator
    queue = engine.queue

    @app.get("/api/status")
    async def api_status() -> dict[str, Any]:
        """Current sync status and pending operation count."""
        status = orchestrator.get_sync_status()
        status["node_name"] = engine.config.node.name
        status["loop_running"] = engine.loop.running
        status["timestamp"] = datetime.now().isoformat()
        return status

    @app.get("/api/pending")
    async def api_pending() -> dict[str, Any]:
        """List queued operations awaiting retry."""
        operations = [op.to_dict() for op in queue.all()]
        return {"count": len(operations), "operations": operations}

    @app.post("/api/pending/retry")
    async def api_retry_now() -> dict[str, Any]:
        """Replay every queued operation now, ignoring backoff."""
        result = await engine.loop.retry_now()
        return {
            "reachable": result.reachable,
            "attempted": result.attempted,
            "succeeded": result.succeeded,
            "failed": result.failed,
            "dropped": result.dropped,
            "pending": queue.count,
        }

    @app.delete("/api/pending")
    async def api_clear_pending() -> dict[str, Any]:
        """Drop every queued operation."""
        cleared = queue.clear()
        logger.warning(f"Pending queue cleared from dashboard ({cleared} operations)")
        return {"cleared": cleared}

    @app.get("/api/health")
    async def api_health() -> dict[str, Any]:
        """Health check endpoint for monitoring.

        Always returns 200 OK; ``remote_available`` reports reachability.
        """
        health = {
            "status": "ok",
            "timestamp": datetime.now().isoformat(),
            "node_name": engine.config.node.name,
            "remote_available": await orchestrator.check_availability(),
            "pending_operations": queue.count,
        }

        try:
            health["store"] = engine.store.get_stats()
        except Exception as e:
            health["store_error"] = str(e)

        return health

    return app
