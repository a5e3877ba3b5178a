from __future__ import annotations

import asyncio

from fastapi import APIRouter, HTTPException, Request

router = APIRouter(prefix="/self-healing", tags=["self-healing"])


def _services(request: Request):
    return getattr(request.app.state, "self_healing", None)


@router.get("/status")
async def get_status(request: Request):
    services = _services(request)
    if services is None:
        return {"enabled": False, "network": None, "database": None}
    return {
        "enabled": True,
        "network": services.network_monitor.snapshot(),
        "database": services.config_validator.snapshot(),
    }


@router.get("/network")
async def get_network_health(request: Request):
    services = _services(request)
    if services is None:
        return {"enabled": False, "health": None}
    health = services.network_monitor.get_last_health_status()
    return {"enabled": True, "health": health.to_dict() if health else None}


@router.get("/network/detailed")
async def get_network_detailed(request: Request):
    services = _services(request)
    if services is None:
        return {"enabled": False, "health": None, "diagnostics": None}
    detailed = await asyncio.to_thread(services.network_monitor.get_detailed_network_status)
    return {"enabled": True, **detailed}


@router.get("/database")
async def get_database_validation(request: Request):
    services = _services(request)
    if services is None:
        return {"enabled": False, "validation": None}
    result = services.config_validator.get_last_validation_result()
    return {"enabled": True, "validation": result.to_dict() if result else None}


@router.post("/database/validate")
async def validate_database(request: Request):
    services = _services(request)
    if services is None:
        raise HTTPException(status_code=409, detail="Self-healing is disabled")
    result = await asyncio.to_thread(services.config_validator.validate_database_configuration)
    return {"enabled": True, "validation": result.to_dict()}


@router.get("/events")
async def list_events(request: Request, limit: int = 50, source: str | None = None):
    services = _services(request)
    if services is None:
        return {"enabled": False, "events": []}
    events = services.recent_events.list(limit=limit, source=source)
    return {"enabled": True, "events": [e.model_dump(mode="json") for e in events]}
