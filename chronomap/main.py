#!/usr/bin/env python3
"""
chronomap - historical map state core, command line front end

Runs the session flows against the live API and prints the results.

Usage:
    python -m chronomap.main areas 1000
    python -m chronomap.main outline 1000 ruler FRA --fit
    python -m chronomap.main labels 1000 culture --top 20
    python -m chronomap.main markers 1000 --limit 500 --hide battle
"""

import asyncio
import sys
from collections import Counter

import click
from loguru import logger
from rich.console import Console
from rich.table import Table

from chronomap import geometry
from chronomap.types import DEFAULT_MARKER_FILTERS, Dimension
from chronomap.session import MapSession

console = Console()

DIMENSION_CHOICES = [d.value for d in Dimension]


def make_session(base_url: str | None = None) -> MapSession:
    """Build a session for one command (patched in tests)."""
    return MapSession(base_url=base_url)


def _report_error(session: MapSession) -> bool:
    if session.error:
        console.print(f"[red]Error: {session.error}[/red]")
        return True
    return False


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--base-url", default=None, help="Override the API base URL")
@click.pass_context
def cli(ctx, debug, base_url):
    """chronomap - Historical Map State Core"""
    ctx.ensure_object(dict)
    ctx.obj["base_url"] = base_url
    if debug:
        from chronomap.utils.logging import setup_logging
        setup_logging(level="DEBUG")


@cli.command()
@click.argument("year", type=int)
@click.pass_context
def areas(ctx, year: int):
    """Load a year's territory attributes and summarize them per dimension."""

    async def run():
        async with make_session(ctx.obj["base_url"]) as session:
            snapshot = await session.areas.load_area_data(year)
            if snapshot is None:
                _report_error(session)
                return None
            return snapshot

    snapshot = asyncio.run(run())
    if snapshot is None:
        sys.exit(1)

    console.print(f"\n[bold blue]Area data for {year}[/bold blue]")
    console.print(f"Provinces: {len(snapshot)}\n")

    table = Table()
    table.add_column("Dimension")
    table.add_column("Distinct values", justify="right")
    table.add_column("Largest group")

    for dimension in (Dimension.RULER, Dimension.CULTURE, Dimension.RELIGION):
        counts = Counter(data.value_at(dimension) for data in snapshot.values())
        counts.pop("", None)
        largest = counts.most_common(1)
        table.add_row(
            dimension.value,
            str(len(counts)),
            f"{largest[0][0]} ({largest[0][1]})" if largest else "-",
        )

    total_population = sum(data.population for data in snapshot.values())
    table.add_row(Dimension.POPULATION.value, "-", f"total {total_population:,.0f}")
    console.print(table)


@cli.command()
@click.argument("year", type=int)
@click.argument("dimension", type=click.Choice(DIMENSION_CHOICES))
@click.argument("value")
@click.option("--fit", is_flag=True, help="Also compute the fitted fly-to target")
@click.pass_context
def outline(ctx, year: int, dimension: str, value: str, fit: bool):
    """Compute the merged outline of every province where DIMENSION equals VALUE."""

    async def run():
        async with make_session(ctx.obj["base_url"]) as session:
            await session.load_metadata()
            if await session.areas.load_area_data(year) is None:
                _report_error(session)
                return None, None

            result = session.outline.calculate_entity_outline(value, dimension)
            target = session.outline.fit_to_entity_outline() if fit and result else None
            return result, target

    result, target = asyncio.run(run())
    if result is None:
        console.print(f"[yellow]No outline for {dimension}={value} in {year}[/yellow]")
        sys.exit(1)

    min_lng, min_lat, max_lng, max_lat = geometry.bounding_box(result.geometry)

    table = Table(title=f"{dimension}={value} ({year})")
    table.add_column("Property")
    table.add_column("Value")
    table.add_row("Color", result.color)
    table.add_row("Geometry", result.geometry.geom_type)
    table.add_row("Parts", str(len(geometry.polygon_parts(result.geometry))))
    table.add_row("Bounds", f"{min_lng:.3f}, {min_lat:.3f}, {max_lng:.3f}, {max_lat:.3f}")
    table.add_row("Area", f"{geometry.geodesic_area(result.geometry) / 1e6:,.0f} km²")
    if target:
        table.add_row("Fly to", f"{target.latitude:.4f}, {target.longitude:.4f} @ z{target.zoom:.2f}")
    console.print(table)


@cli.command()
@click.argument("year", type=int)
@click.argument("dimension", type=click.Choice(DIMENSION_CHOICES))
@click.option("--top", type=int, default=10, help="Number of labels to show")
@click.pass_context
def labels(ctx, year: int, dimension: str, top: int):
    """Compute label placements for DIMENSION and show the largest groups."""

    async def run():
        async with make_session(ctx.obj["base_url"]) as session:
            await session.load_metadata()
            if await session.areas.load_area_data(year) is None:
                _report_error(session)
                return None
            return session.labels.calculate_labels(dimension)

    placed = asyncio.run(run())
    if placed is None:
        sys.exit(1)

    console.print(f"\n[bold blue]{len(placed)} {dimension} labels for {year}[/bold blue]\n")

    table = Table()
    table.add_column("Entity")
    table.add_column("Name")
    table.add_column("Position")
    table.add_column("Font", justify="right")
    table.add_column("Area (km²)", justify="right")

    for label in placed[:top]:
        lng, lat = label.position
        table.add_row(
            label.entity_id,
            label.display_name,
            f"{lat:.3f}, {lng:.3f}",
            f"{label.font_size:.1f}",
            f"{label.area_m2 / 1e6:,.0f}",
        )

    console.print(table)


@cli.command()
@click.argument("year", type=int)
@click.option("--limit", type=int, default=None, help="Maximum markers to fetch (0 disables)")
@click.option("--hide", multiple=True, help="Marker type or category to hide (repeatable)")
@click.pass_context
def markers(ctx, year: int, limit: int | None, hide: tuple[str, ...]):
    """Load markers for YEAR and show per-category counts after filtering."""

    async def run():
        async with make_session(ctx.obj["base_url"]) as session:
            if limit is not None:
                session.markers.set_marker_limit(limit)
            for marker_type in hide:
                session.markers.set_marker_filter(marker_type, False)

            loaded = await session.markers.load_markers(year)
            if _report_error(session):
                return None
            return loaded, session.markers.get_filtered_markers()

    result = asyncio.run(run())
    if result is None:
        sys.exit(1)

    loaded, visible = result
    logger.debug(f"{len(visible)}/{len(loaded)} markers visible")

    console.print(f"\n[bold blue]Markers for {year}[/bold blue]")
    console.print(f"Loaded: {len(loaded)}  Visible: {len(visible)}\n")

    loaded_by_category = Counter(m.category for m in loaded)
    visible_by_category = Counter(m.category for m in visible)

    table = Table()
    table.add_column("Category")
    table.add_column("Loaded", justify="right")
    table.add_column("Visible", justify="right")
    for category in DEFAULT_MARKER_FILTERS:
        table.add_row(
            category,
            str(loaded_by_category[category]),
            str(visible_by_category[category]),
        )
    console.print(table)


if __name__ == "__main__":
    cli()
