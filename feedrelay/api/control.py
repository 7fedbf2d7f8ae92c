"""Control and status endpoints: connector lifecycle and health."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from feedrelay.observability.metrics import metrics
from feedrelay.state import RelayState, get_state

router = APIRouter(tags=["control"])


@router.get("/health")
async def health_check():
    return {"ok": True}


@router.get("/status")
async def relay_status(state: RelayState = Depends(get_state)):
    """Best-effort snapshot of every connector, in configuration order."""
    return {
        "running": state.running,
        "connectors": state.runner.status(),
    }


@router.get("/connector/{connector_id}/status")
async def connector_status(connector_id: str, state: RelayState = Depends(get_state)):
    connector = state.runner.get_connector(connector_id)
    if connector is None:
        return JSONResponse({"error": "not_found"}, status_code=404)
    return connector.status().to_dict()


@router.post("/start")
async def start_connectors(state: RelayState = Depends(get_state)):
    running = await state.start()
    return {"running": running}


@router.post("/stop")
async def stop_connectors(state: RelayState = Depends(get_state)):
    running = await state.stop()
    return {"running": running}


@router.get("/metrics")
async def get_metrics(state: RelayState = Depends(get_state)):
    return {
        "service": "feedrelay",
        "websocket_connections": state.broadcaster.connection_count,
        "dedup_cache_size": state.runner.pipeline.dedup_size,
        "metrics": metrics.snapshot(),
    }
