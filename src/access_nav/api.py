"""FastAPI presentation boundary for the route orchestrator.

Run with (needs the ``serve`` extra):  uvicorn access_nav.api:app
"""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import redis
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from access_nav.cache.store import connection
from access_nav.config import settings
from access_nav.core import display
from access_nav.core.models import Coordinate, NavigationSnapshot, Route, RoutePreferences, WeatherSnapshot
from access_nav.core.orchestrator import Orchestrator
from access_nav.errors import (
    InputError,
    NoRouteError,
    NotFoundError,
    RequestSuperseded,
    RouteRequestError,
    UnknownError,
)
from access_nav.providers.combined import Services, build_services

log = logging.getLogger(__name__)

_STATUS = {
    InputError: 400,
    NotFoundError: 404,
    NoRouteError: 422,
    UnknownError: 500,
}


# ---------------------------------------------------------------------------
# Request / Response models
# ---------------------------------------------------------------------------

class RouteRequest(BaseModel):
    # Empty strings are allowed through so the orchestrator reports InputError itself
    start: str = ""
    destination: str = ""


class WeatherRequest(BaseModel):
    lon: float = Field(ge=-180.0, le=180.0)
    lat: float = Field(ge=-90.0, le=90.0)


class StateOut(BaseModel):
    state: NavigationSnapshot
    display: Dict[str, Any] = {}


def _display(snap: NavigationSnapshot) -> Dict[str, Any]:
    out: Dict[str, Any] = {"progress": display.progress_summary(snap.progress)}
    if snap.weather is not None:
        out["weather"] = {
            "temperature": display.format_temperature_f(snap.weather),
            "precipitation": display.format_precipitation(snap.weather),
            "icon_url": snap.weather.icon_url,
            "warning": display.weather_warning(snap.weather),
        }
    return out


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------

def create_app(services: Optional[Services] = None, **orchestrator_kwargs: Any) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        svc = services or build_services(settings.provider)
        orch = Orchestrator.from_services(svc, **orchestrator_kwargs)
        app.state.orchestrator = orch

        # Proactive weather for the default location; failures are logged inside
        default = Coordinate(lon=settings.default_lon, lat=settings.default_lat)
        app.state.startup_weather = asyncio.create_task(orch.request_current_weather(default))
        try:
            yield
        finally:
            app.state.startup_weather.cancel()
            await orch.close()

    app = FastAPI(title="Access Nav", version="0.1.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def _orch(request: Request) -> Orchestrator:
        return request.app.state.orchestrator

    @app.get("/health")
    def health():
        redis_ok = False
        r = connection()
        try:
            if r is not None:
                r.ping()
                redis_ok = True
        except redis.RedisError as exc:
            log.debug("redis health check failed: %s", exc)

        return {"status": "ok", "redis": redis_ok}

    @app.get("/state", response_model=StateOut)
    async def get_state(request: Request):
        snap = _orch(request).snapshot()
        return StateOut(state=snap, display=_display(snap))

    @app.post("/route", response_model=Route)
    async def post_route(req: RouteRequest, request: Request):
        try:
            return await _orch(request).request_route(req.start, req.destination)
        except RequestSuperseded:
            raise HTTPException(status_code=409, detail="Superseded by a newer route request")
        except RouteRequestError as e:
            raise HTTPException(status_code=_STATUS.get(type(e), 500), detail=e.user_message)

    @app.get("/preferences", response_model=RoutePreferences)
    async def get_preferences(request: Request):
        return _orch(request).preferences

    @app.put("/preferences", response_model=RoutePreferences)
    async def put_preferences(prefs: RoutePreferences, request: Request):
        _orch(request).set_route_preferences(prefs)
        return prefs

    @app.post("/weather", response_model=WeatherSnapshot)
    async def post_weather(req: WeatherRequest, request: Request):
        snap = await _orch(request).request_current_weather(Coordinate(lon=req.lon, lat=req.lat))
        if snap is None:
            raise HTTPException(status_code=503, detail="Weather unavailable")
        return snap

    @app.delete("/error", status_code=204)
    async def dismiss_error(request: Request):
        _orch(request).dismiss_error()
        return None

    return app


app = create_app()
