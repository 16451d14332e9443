"""Command-line interface for the wallpaper renderer."""

import asyncio
import logging
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import BarColumn, MofNCompleteColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

from .config import AppConfig, get_config
from .errors import CaptureFailed, EngineError, ExportInProgress, InvalidCoordinate, PlaceSearchError
from .models.batch import BatchSpec
from .models.export import build_file_name
from .models.location import Location
from .models.params import WallpaperParams
from .models.place import DEFAULT_ACCENT_COLOR, AdminGranularity, PlaceLabel, normalize_hex_color
from .models.style import MAP_STYLES, get_style
from .models.viewport import AspectRatio
from .services.capture_service import CapturePipeline
from .services.geocoding_service import AdminNameResolver, PlaceNameTracker
from .services.search_service import PlaceSearchService
from .services.surface import RenderSurface, SurfaceState, create_surface
from .utils.image_utils import save_image

console = Console()

STYLE_CHOICES = [s.id.value for s in MAP_STYLES]
RATIO_CHOICES = [r.value for r in AspectRatio]
GRANULARITY_CHOICES = [g.value for g in AdminGranularity]


def _make_surface(config: AppConfig, state: Optional[SurfaceState] = None) -> RenderSurface:
    return create_surface(config, state=state)


def _make_resolver(config: AppConfig) -> AdminNameResolver:
    return AdminNameResolver(
        base_url=config.geocoder_url,
        locale=config.geocoder_locale,
        detail_level=config.geocoder_detail_level,
        user_agent=config.user_agent,
    )


def _make_pipeline(config: AppConfig, output_dir: Path) -> CapturePipeline:
    return CapturePipeline(
        output_dir=output_dir,
        settle_delay=config.settle_delay,
        pixel_ratio=config.pixel_ratio,
    )


def _fail(message: str) -> None:
    console.print(f"[red]Error:[/red] {message}")
    raise SystemExit(1)


@click.group()
@click.version_option(version="0.1.0")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
def main(verbose: bool):
    """CityPaper - Styled map wallpapers for any place on earth."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


@main.command()
def styles():
    """List the available map styles."""
    table = Table(title="Map Styles")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="green")
    table.add_column("Text")
    table.add_column("Background")
    table.add_column("Attribution", style="dim")

    for style in MAP_STYLES:
        table.add_row(style.id.value, style.name, style.text_color, style.background_color, style.attribution)

    console.print(table)


@main.command()
@click.option("--lat", type=float, help="Latitude")
@click.option("--lng", type=float, help="Longitude")
@click.option("--params", "query", help="Query string, e.g. 'lat=35.6&lng=139.6&style=dark'")
@click.option("--style", "-s", type=click.Choice(STYLE_CHOICES), help="Map style")
@click.option("--zoom", "-z", type=float, help="Zoom level (clamped to 10-18)")
@click.option("--ratio", "-r", type=click.Choice(RATIO_CHOICES), help="Aspect ratio")
@click.option("--name", "-n", help="Display name (reverse geocoded when omitted)")
@click.option("--country", default="", help="Country line")
@click.option("--description", "-d", default="", help="Description line")
@click.option("--accent", help="Accent color (hex)")
@click.option("--granularity", "-g", type=click.Choice(GRANULARITY_CHOICES), default="city",
              help="Administrative level of a resolved name")
@click.option("--labels/--no-labels", default=True, help="Draw the label block")
@click.option("--output", "-o", type=click.Path(), help="Output directory")
@click.option("--preview", is_flag=True, help="Also save the framed on-screen preview")
def render(
    lat: Optional[float],
    lng: Optional[float],
    query: Optional[str],
    style: Optional[str],
    zoom: Optional[float],
    ratio: Optional[str],
    name: Optional[str],
    country: str,
    description: str,
    accent: Optional[str],
    granularity: str,
    labels: bool,
    output: Optional[str],
    preview: bool,
):
    """Render one wallpaper and export it as PNG."""
    config = get_config()
    try:
        params = WallpaperParams.from_query_string(query) if query else WallpaperParams()
        overrides = {
            key: value
            for key, value in {
                "lat": lat, "lng": lng, "zoom": zoom, "style": style,
                "ratio": ratio, "name": name, "accent": accent,
            }.items()
            if value is not None
        }
        params = WallpaperParams(**{**params.model_dump(), **overrides})
        location = params.location
        label = params.apply_to(PlaceLabel(country=country, description=description))
    except InvalidCoordinate as e:
        _fail(str(e))
    except ValueError as e:
        _fail(f"Invalid parameters: {e}")

    output_dir = Path(output) if output else config.output_dir
    console.print(f"[bold]Location:[/bold] {location.format_coordinates()}")
    console.print(f"[bold]Style:[/bold] {get_style(params.style).name}  "
                  f"[bold]Zoom:[/bold] {params.zoom:g}  [bold]Ratio:[/bold] {params.ratio.value}")

    try:
        path = asyncio.run(
            _render_one(
                config,
                location,
                params,
                label,
                resolve_name=not params.name,
                granularity=AdminGranularity(granularity),
                show_labels=labels,
                output_dir=output_dir,
                preview=preview,
            )
        )
    except EngineError as e:
        _fail(f"Tile engine failed: {e}")
    except (CaptureFailed, ExportInProgress) as e:
        _fail(str(e))

    console.print(f"[green]Saved:[/green] {path}")


async def _render_one(
    config: AppConfig,
    location: Location,
    params: WallpaperParams,
    label: PlaceLabel,
    resolve_name: bool,
    granularity: AdminGranularity,
    show_labels: bool,
    output_dir: Path,
    preview: bool,
) -> Path:
    style = get_style(params.style)
    viewport = params.viewport
    pipeline = _make_pipeline(config, output_dir)
    resolver = _make_resolver(config) if resolve_name else None

    try:
        async with _make_surface(config) as surface:
            await surface.render(location, style, viewport, label, show_labels)
            if resolver is not None:
                tracker = PlaceNameTracker.for_surface(resolver, surface)
                resolved = await tracker.refresh(location, granularity)
                console.print(f"[bold]Name:[/bold] {resolved}")

            await pipeline.capture_one(surface)
            file_name = build_file_name(surface.state.label.display_name, style.id, viewport.aspect_ratio)

            if preview:
                preview_path = output_dir / file_name.replace(".png", "_preview.png")
                save_image(surface.preview(pixel_ratio=2), preview_path)
                console.print(f"[green]Preview:[/green] {preview_path}")
    finally:
        if resolver is not None:
            await resolver.aclose()

    return output_dir / file_name


@main.command()
@click.argument("batch_path", type=click.Path(exists=True))
@click.option("--output", "-o", type=click.Path(), help="Output directory")
def batch(batch_path: str, output: Optional[str]):
    """Export every location of a batch YAML file."""
    config = get_config()
    spec = BatchSpec.from_yaml(Path(batch_path))
    if not spec.locations:
        console.print("[yellow]Batch has no locations, nothing to do.[/yellow]")
        return

    output_dir = Path(output) if output else config.output_dir
    console.print(f"[bold]Batch:[/bold] {len(spec.locations)} locations -> {output_dir}")

    try:
        report = asyncio.run(_run_batch(config, spec, output_dir))
    except EngineError as e:
        _fail(f"Tile engine failed: {e}")
    except ExportInProgress as e:
        _fail(str(e))

    table = Table(title="Batch Results")
    table.add_column("#", style="dim")
    table.add_column("Place", style="cyan")
    table.add_column("File")
    table.add_column("Status")
    for result in report.results:
        status = "[green]ok[/green]" if result.ok else f"[red]{result.error}[/red]"
        table.add_row(str(result.sequence_index), result.label, result.file_name, status)
    console.print(table)

    console.print(f"[green]{len(report.succeeded)} exported[/green], "
                  f"[red]{len(report.failed)} failed[/red]")
    if report.failed and not report.succeeded:
        raise SystemExit(1)


async def _run_batch(config: AppConfig, spec: BatchSpec, output_dir: Path):
    items = spec.to_items()
    pipeline = _make_pipeline(config, output_dir)
    pipeline.file_name_template = spec.file_name_template
    resolver = _make_resolver(config) if any(item.resolve_name for item in items) else None
    first = items[0]
    state = SurfaceState(location=first.location, style=first.style, viewport=first.viewport, label=first.label)

    try:
        async with _make_surface(config, state) as surface:
            tracker = PlaceNameTracker.for_surface(resolver, surface) if resolver else None
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                MofNCompleteColumn(),
                console=console,
            ) as progress:
                task = progress.add_task("Exporting...", total=len(items))

                def on_progress(index: int, total: int, label: str) -> None:
                    progress.update(task, completed=index - 1, description=f"[{index}/{total}] {label}")

                report = await pipeline.capture_batch(
                    surface,
                    items,
                    on_progress=on_progress,
                    name_tracker=tracker,
                    granularity=spec.granularity,
                )
                progress.update(task, completed=len(items), description="[green]Batch complete")
    finally:
        if resolver is not None:
            await resolver.aclose()

    return report


@main.command()
@click.argument("lat", type=float)
@click.argument("lng", type=float)
@click.option("--granularity", "-g", type=click.Choice(GRANULARITY_CHOICES), default="city",
              help="Administrative level")
def resolve(lat: float, lng: float, granularity: str):
    """Reverse geocode a point into a place name."""
    config = get_config()
    try:
        location = Location.parse(lat, lng)
    except InvalidCoordinate as e:
        _fail(str(e))

    async def _resolve() -> str:
        resolver = _make_resolver(config)
        try:
            return await resolver.resolve(location, AdminGranularity(granularity))
        finally:
            await resolver.aclose()

    console.print(asyncio.run(_resolve()))


@main.command()
@click.argument("query")
def search(query: str):
    """Find a place by free text (requires GOOGLE_API_KEY)."""
    config = get_config()
    try:
        service = PlaceSearchService(api_key=config.google_api_key, model=config.gemini_model)
        result = asyncio.run(service.search(query))
    except ValueError as e:
        _fail(str(e))
    except PlaceSearchError as e:
        _fail(str(e))

    table = Table(title=f"Search: {query}")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Name", result.name)
    table.add_row("Country", result.country)
    table.add_row("Coordinates", f"{result.latitude:.4f}, {result.longitude:.4f}")
    table.add_row("Description", result.description)
    table.add_row("Accent", result.accent_color)
    for url in result.source_urls or []:
        table.add_row("Source", url)
    console.print(table)

    params = WallpaperParams(
        lat=result.latitude,
        lng=result.longitude,
        name=result.name,
        accent=result.to_label().accent_color,
    )
    console.print(f"\n[dim]citypaper render --params '{params.to_query_string()}'[/dim]", soft_wrap=True)


@main.command()
@click.option("--parse", "query", help="Parse and validate a query string")
@click.option("--lat", type=float, default=WallpaperParams.model_fields["lat"].default)
@click.option("--lng", type=float, default=WallpaperParams.model_fields["lng"].default)
@click.option("--zoom", "-z", type=float, default=WallpaperParams.model_fields["zoom"].default)
@click.option("--style", "-s", type=click.Choice(STYLE_CHOICES), default=STYLE_CHOICES[0])
@click.option("--accent", default=DEFAULT_ACCENT_COLOR)
@click.option("--ratio", "-r", type=click.Choice(RATIO_CHOICES), default=RATIO_CHOICES[0])
@click.option("--name", "-n")
def params(
    query: Optional[str],
    lat: float,
    lng: float,
    zoom: float,
    style: str,
    accent: str,
    ratio: str,
    name: Optional[str],
):
    """Build or check the shareable query string of a wallpaper."""
    try:
        if query:
            parsed = WallpaperParams.from_query_string(query)
            table = Table(title="Wallpaper Parameters")
            table.add_column("Key", style="cyan")
            table.add_column("Value", style="green")
            for key, value in parsed.model_dump(mode="json").items():
                table.add_row(key, "" if value is None else str(value))
            console.print(table)
            return
        Location.parse(lat, lng)
        built = WallpaperParams(
            lat=lat, lng=lng, zoom=zoom, style=style, accent=normalize_hex_color(accent),
            ratio=AspectRatio(ratio), name=name,
        )
    except ValueError as e:
        _fail(str(e))

    console.print(built.to_query_string(), soft_wrap=True)


if __name__ == "__main__":
    main()
