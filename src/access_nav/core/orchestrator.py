"""Route planning and progress orchestration.

Sequence for one request::

    geocode(start), geocode(destination)  -> both, concurrently
    compute route                          -> only after both coordinates exist
    publish route + restart progress       -> synchronous, on the event loop
    enrich features, fetch weather         -> background tasks, best-effort

All shared state lives here and is only written from the event loop.
Background results carry the request sequence number they were started
under and are dropped if a newer request has started since.
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Coroutine, Iterable, List, Optional, Set, Tuple

from access_nav.config import settings
from access_nav.core.models import (
    AccessibilityFeature,
    Coordinate,
    NavigationSnapshot,
    ProgressState,
    Route,
    RoutePreferences,
    WeatherSnapshot,
)
from access_nav.core.progress import CancellationToken, ProgressSimulator
from access_nav.errors import (
    EnrichmentFailure,
    InputError,
    NoRouteError,
    NotFoundError,
    ProviderUnavailable,
    RequestSuperseded,
    RouteRequestError,
    UnknownError,
)
from access_nav.providers.base import AccessibilityEnricher, Geocoder, RouteCalculator, WeatherProvider

log = logging.getLogger(__name__)

Listener = Callable[[NavigationSnapshot], None]


def _dedupe(features: Iterable[AccessibilityFeature]) -> Tuple[AccessibilityFeature, ...]:
    seen = set()
    out: List[AccessibilityFeature] = []
    for f in features:
        if f.id in seen:
            continue
        seen.add(f.id)
        out.append(f)
    return tuple(out)


class Orchestrator:
    def __init__(
        self,
        geocoder: Geocoder,
        router: RouteCalculator,
        enricher: AccessibilityEnricher,
        weather: WeatherProvider,
        *,
        preferences: Optional[RoutePreferences] = None,
        tick_s: Optional[float] = None,
        step: Optional[float] = None,
        error_display_s: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._geocoder = geocoder
        self._router = router
        self._enricher = enricher
        self._weather_provider = weather

        self._preferences = preferences or RoutePreferences()
        self._error_display_s = error_display_s if error_display_s is not None else settings.error_display_s
        self._clock = clock

        self._simulator = ProgressSimulator(
            tick_s=tick_s if tick_s is not None else settings.progress_tick_s,
            step=step if step is not None else settings.progress_step,
            on_change=self._on_progress,
        )
        self._progress_token: Optional[CancellationToken] = None

        self._route: Optional[Route] = None
        self._features: Tuple[AccessibilityFeature, ...] = ()
        self._weather: Optional[WeatherSnapshot] = None
        self._calculating = 0
        self._loading_features = False
        self._error: Optional[str] = None
        self._error_at = 0.0

        self._route_seq = 0
        self._weather_seq = 0
        self._pending: Set[asyncio.Task] = set()
        self._listeners: List[Listener] = []

    @classmethod
    def from_services(cls, services, **kwargs) -> "Orchestrator":
        return cls(services.geocoder, services.router, services.enricher, services.weather, **kwargs)

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def route(self) -> Optional[Route]:
        return self._route

    @property
    def progress(self) -> ProgressState:
        return self._simulator.state

    @property
    def features(self) -> Tuple[AccessibilityFeature, ...]:
        return self._features

    @property
    def weather(self) -> Optional[WeatherSnapshot]:
        return self._weather

    @property
    def preferences(self) -> RoutePreferences:
        return self._preferences

    @property
    def is_calculating(self) -> bool:
        return self._calculating > 0

    @property
    def is_loading_features(self) -> bool:
        return self._loading_features

    @property
    def last_error(self) -> Optional[str]:
        """User-facing message of the latest failure; expires after ``error_display_s``."""
        if self._error is None or self._clock() - self._error_at >= self._error_display_s:
            return None
        return self._error

    @property
    def simulator(self) -> ProgressSimulator:
        return self._simulator

    def snapshot(self) -> NavigationSnapshot:
        return NavigationSnapshot(
            route=self._route,
            progress=self._simulator.state,
            features=self._features,
            weather=self._weather,
            preferences=self._preferences,
            is_calculating=self.is_calculating,
            is_loading_features=self._loading_features,
            last_error=self.last_error,
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener`` with a fresh snapshot on every change. Returns an unsubscribe."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ------------------------------------------------------------------
    # Write side
    # ------------------------------------------------------------------

    def set_route_preferences(self, prefs: RoutePreferences) -> None:
        """Takes effect from the next request; an in-flight one keeps its snapshot."""
        self._preferences = prefs
        self._notify()

    def dismiss_error(self) -> None:
        self._error = None
        self._notify()

    async def request_route(self, start_text: str, dest_text: str) -> Route:
        start_q = (start_text or "").strip()
        dest_q = (dest_text or "").strip()
        if not start_q or not dest_q:
            err = InputError()
            self._fail(err)
            raise err

        self._route_seq += 1
        seq = self._route_seq
        prefs = self._preferences

        self._calculating += 1
        self._error = None
        self._notify()
        try:
            start, end = await self._geocode_endpoints(start_q, dest_q)

            route = await self._router.compute(start, end, prefs)
            if route is None:
                log.info("No accessible route from %r to %r", start_q, dest_q)
                raise NoRouteError()

            if seq != self._route_seq:
                raise RequestSuperseded(f"route request {seq} superseded by {self._route_seq}")

            self._publish(route, seq)
            return route

        except RequestSuperseded as exc:
            log.info("%s", exc)
            raise
        except RouteRequestError as err:
            self._fail(err, seq)
            raise
        except Exception as exc:
            log.exception("Route request %d failed unexpectedly", seq)
            err = UnknownError()
            self._fail(err, seq)
            raise err from exc
        finally:
            self._calculating -= 1
            self._notify()

    async def request_current_weather(self, coordinate: Coordinate) -> Optional[WeatherSnapshot]:
        """Refresh only the weather field. Returns the snapshot if it was applied."""
        self._weather_seq += 1
        wseq = self._weather_seq

        snap = await self._fetch_weather(coordinate)
        if snap is None:
            return None
        if wseq != self._weather_seq:
            log.debug("Discarding stale weather for %s (request %d, current %d)", coordinate, wseq, self._weather_seq)
            return None

        self._weather = snap
        self._notify()
        return snap

    async def drain(self) -> None:
        """Wait for all in-flight enrichment/weather tasks."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def close(self) -> None:
        self._simulator.cancel()
        if self._progress_token is not None:
            self._progress_token.cancel()
        tasks = list(self._pending)
        for t in tasks:
            t.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _geocode_endpoints(self, start_q: str, dest_q: str) -> Tuple[Coordinate, Coordinate]:
        results = await asyncio.gather(
            self._geocoder.resolve(start_q),
            self._geocoder.resolve(dest_q),
            return_exceptions=True,
        )

        coords: List[Coordinate] = []
        # Start is checked first so its failure is the one reported
        for endpoint, query, res in zip(("start", "destination"), (start_q, dest_q), results):
            if isinstance(res, ProviderUnavailable):
                log.warning("Geocoder unavailable for %s %r: %s", endpoint, query, res)
                raise NotFoundError(endpoint, query)
            if isinstance(res, BaseException):
                raise res
            if res is None:
                log.info("Geocoder found no match for %s %r", endpoint, query)
                raise NotFoundError(endpoint, query)
            coords.append(res)

        return coords[0], coords[1]

    def _publish(self, route: Route, seq: int) -> None:
        self._route = route
        self._features = ()
        self._loading_features = True

        if self._progress_token is not None:
            self._progress_token.cancel()
        self._progress_token = CancellationToken()
        self._simulator.start(route.duration_s, route.distance_m, self._progress_token)

        log.info(
            "Route %d accepted: %d points, %.0f s, %.0f m",
            seq, len(route.path), route.duration_s, route.distance_m,
        )
        self._notify()

        self._spawn(self._load_features(seq, route))
        self._weather_seq += 1
        self._spawn(self._load_route_weather(seq, self._weather_seq, route.start))

    def _fail(self, err: RouteRequestError, seq: Optional[int] = None) -> None:
        if seq is not None and seq != self._route_seq:
            # A newer request owns the error slot now
            log.info("Dropping error from superseded request %d: %s", seq, err.user_message)
            return
        if seq is not None:
            # Enrichment for the previous route was orphaned by this request
            self._loading_features = False
        self._error = err.user_message
        self._error_at = self._clock()
        self._notify()

    async def _load_features(self, seq: int, route: Route) -> None:
        features: Optional[Tuple[AccessibilityFeature, ...]]
        try:
            features = _dedupe(await self._enricher.enrich(route.path))
        except Exception as exc:
            log.warning("%s", EnrichmentFailure(f"accessibility lookup failed: {type(exc).__name__}: {exc}"))
            features = None

        if seq != self._route_seq:
            log.debug("Discarding stale accessibility features (request %d, current %d)", seq, self._route_seq)
            return

        if features is not None:
            self._features = features
            log.info("Loaded %d accessibility features", len(features))
        self._loading_features = False
        self._notify()

    async def _load_route_weather(self, seq: int, wseq: int, coordinate: Coordinate) -> None:
        snap = await self._fetch_weather(coordinate)
        if snap is None:
            return
        if seq != self._route_seq or wseq != self._weather_seq:
            log.debug("Discarding stale route weather (request %d, current %d)", seq, self._route_seq)
            return

        self._weather = snap
        self._notify()

    async def _fetch_weather(self, coordinate: Coordinate) -> Optional[WeatherSnapshot]:
        try:
            return await self._weather_provider.fetch(coordinate)
        except Exception as exc:
            log.warning("%s", EnrichmentFailure(f"weather lookup failed: {type(exc).__name__}: {exc}"))
            return None

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def _on_progress(self, _state: ProgressState) -> None:
        self._notify()

    def _notify(self) -> None:
        if not self._listeners:
            return
        snap = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snap)
            except Exception:
                log.exception("Snapshot listener failed")
