from __future__ import annotations

import argparse
import asyncio
import logging

from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.table import Table

from access_nav.config import settings
from access_nav.core import display
from access_nav.core.models import Coordinate, NavigationSnapshot, RoutePreferences
from access_nav.core.orchestrator import Orchestrator
from access_nav.errors import RouteRequestError
from access_nav.providers.combined import build_services


def _prefs_from_args(args: argparse.Namespace) -> RoutePreferences:
    surfaces = frozenset(s.strip() for s in args.surfaces.split(",") if s.strip())
    return RoutePreferences(
        max_slope_pct=args.max_slope,
        preferred_surfaces=surfaces,
        avoid_stairs=not args.allow_stairs,
        require_elevators=not args.no_elevators,
        min_path_width_in=args.min_width,
    )


def _features_table(snap: NavigationSnapshot) -> Table:
    table = Table(title=f"Accessibility features ({len(snap.features)})")
    table.add_column("Type")
    table.add_column("Status")
    table.add_column("Lat")
    table.add_column("Lon")
    table.add_column("Rating")
    table.add_column("Description")
    for f in snap.features:
        table.add_row(
            f.type.value,
            f.status.value,
            f"{f.location.lat:.5f}",
            f"{f.location.lon:.5f}",
            "" if f.rating is None else f"{f.rating:.1f}",
            f.description,
        )
    return table


def _weather_line(snap: NavigationSnapshot) -> str:
    w = snap.weather
    if w is None:
        return "Weather: unavailable"
    line = (
        f"Weather: {display.format_temperature_f(w)}  {w.description or w.condition.value}  "
        f"precip {display.format_precipitation(w)}"
    )
    warning = display.weather_warning(w)
    if warning:
        line += f"  [yellow]⚠ {warning}[/yellow]"
    return line


def _progress_panel(snap: NavigationSnapshot) -> Panel:
    summary = display.progress_summary(snap.progress)
    if not summary:
        return Panel("No active route", title="Progress")
    body = [f"[bold]{summary['heading']}[/bold]: {summary['remaining']}"]
    if "distance" in summary:
        body.append(f"Distance: {summary['distance']}")
    if "complete" in summary:
        body.append(f"[green]{summary['complete']}[/green]")
    warning = display.weather_warning(snap.weather)
    if warning:
        body.append(f"[yellow]{warning}[/yellow]")
    return Panel("\n".join(body), title=f"Progress ({snap.progress.status.value})")


async def _run(args: argparse.Namespace, console: Console) -> None:
    services = build_services(args.provider)
    orch = Orchestrator.from_services(services, preferences=_prefs_from_args(args), tick_s=args.tick)
    try:
        await orch.request_current_weather(Coordinate(lon=settings.default_lon, lat=settings.default_lat))

        with console.status("Calculating accessible route..."):
            route = await orch.request_route(args.start, args.destination)
            await orch.drain()

        snap = orch.snapshot()
        table = Table(title=f"Route: {args.start} → {args.destination}")
        table.add_column("Points")
        table.add_column("Duration")
        table.add_column("Distance")
        table.add_column("Start")
        table.add_column("End")
        table.add_row(
            str(len(route.path)),
            display.format_duration(route.duration_s),
            display.format_distance_mi(route.distance_m),
            f"{route.start.lat:.5f}, {route.start.lon:.5f}",
            f"{route.end.lat:.5f}, {route.end.lon:.5f}",
        )
        console.print(table)
        console.print(_weather_line(snap))
        if snap.features:
            console.print(_features_table(snap))
        else:
            console.print("No accessibility features found along the route")

        if not args.follow:
            return

        with Live(_progress_panel(orch.snapshot()), console=console, refresh_per_second=4) as live:
            unsubscribe = orch.subscribe(lambda s: live.update(_progress_panel(s)))
            try:
                await orch.simulator.wait()
            finally:
                unsubscribe()
    finally:
        await orch.close()


def main() -> None:
    ap = argparse.ArgumentParser(description="Plan an accessible route and follow simulated progress")
    ap.add_argument("start", help="Start location, free text")
    ap.add_argument("destination", help="Destination, free text")
    ap.add_argument("--provider", default=settings.provider, help="live, mock, or e.g. nominatim+ors+overpass+owm")
    ap.add_argument("--follow", action="store_true", help="Follow simulated progress until arrival")
    ap.add_argument("--tick", type=float, default=None, help="Seconds between progress ticks")
    ap.add_argument("--max-slope", type=float, default=8.0, help="Maximum slope, percent")
    ap.add_argument("--surfaces", default="paved,smooth", help="Comma-separated preferred surfaces")
    ap.add_argument("--allow-stairs", action="store_true")
    ap.add_argument("--no-elevators", action="store_true", help="Do not require elevators")
    ap.add_argument("--min-width", type=float, default=32.0, help="Minimum path width, inches")
    ap.add_argument("--debug", action="store_true")
    args = ap.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(asctime)s [access-nav] %(levelname)s %(message)s",
    )

    console = Console()
    try:
        asyncio.run(_run(args, console))
    except RouteRequestError as e:
        console.print(f"[red]{e.user_message}[/red]")
        raise SystemExit(1)
    except KeyboardInterrupt:
        console.print("Stopped")


if __name__ == "__main__":
    main()
