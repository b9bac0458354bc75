"""
Command-line interface for PaceFlow.

This module provides CLI commands for decoding activity files, re-encoding
them with edits, and listing the sport and manufacturer catalogs.
"""

import sys
from pathlib import Path
from typing import List, Optional, Tuple

import click

from paceflow.config import get_settings
from paceflow.models import catalog
from paceflow.models.spec import EncodeSpecifications, FileType, Marker, ToolMode
from paceflow.services import ActivityService
from paceflow.toolkit import distance_to_human, format_pace, format_seconds, session_has_pace
from paceflow.utils import setup_logging


def _parse_marker(ctx, param, values: Tuple[str, ...]) -> List[Marker]:
    markers = []
    for value in values:
        start, sep, end = value.partition(":")
        if not sep:
            raise click.BadParameter(f"'{value}' is not START:END", ctx=ctx, param=param)
        try:
            markers.append(Marker(start_n=int(start), end_n=int(end)))
        except ValueError as e:
            raise click.BadParameter(f"'{value}': {e}", ctx=ctx, param=param)
    return markers


def _read_inputs(files: Tuple[str, ...]) -> List[bytes]:
    return [Path(path).read_bytes() for path in files]


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def cli(debug: bool) -> None:
    """PaceFlow command-line interface."""
    settings = get_settings()
    setup_logging("DEBUG" if debug else settings.log_level, settings.log_format, settings.log_file, force=True)


@cli.command()
@click.argument("files", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@click.option("--json", "as_json", is_flag=True, help="Print the decode result as JSON")
def decode(files: Tuple[str, ...], as_json: bool) -> None:
    """Decode FIT, GPX or TCX files and print their sessions."""
    result = ActivityService().decode(*_read_inputs(files))

    if as_json:
        click.echo(result.model_dump_json(by_alias=True, indent=2))
        if not result.ok:
            sys.exit(1)
        return

    if not result.ok:
        click.echo(f"❌ Decode failed: {result.err}", err=True)
        sys.exit(1)

    for i, activity in enumerate(result.activities):
        created = activity.creator.time_created.isoformat() if activity.creator.time_created else "-"
        click.echo(f"📁 Activity {i + 1}: {activity.creator.name} ({created})")
        for session in activity.sessions:
            pace = format_pace(session.avg_pace) if session_has_pace(session) else "-"
            heart_rate = f"{session.avg_heart_rate:.0f}" if session.avg_heart_rate is not None else "-"
            click.echo(
                f"  • {session.sport:<12} "
                f"{format_seconds(session.total_elapsed_time):>12}  "
                f"{distance_to_human(session.total_distance, 2):>10}  "
                f"pace {pace:>6}  hr {heart_rate:>4}  "
                f"laps {len(session.laps)}  records {len(session.records)}"
            )

    click.echo(f"✅ Decoded {len(files)} file(s) in {result.total_elapsed:.1f} ms")


@cli.command()
@click.argument("files", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@click.option("--to", "target", type=click.Choice(["fit", "gpx", "tcx"]), default="fit", help="Target file type")
@click.option("--mode", type=click.Choice(["edit", "combine", "split"]), default="edit", help="Tool mode")
@click.option("--sport", "sports", multiple=True, help="Sport per session, or one for all (edit/combine)")
@click.option("--remove-field", "remove_fields", multiple=True, help="Record field to remove, e.g. heartRate")
@click.option("--trim", "trim_markers", multiple=True, callback=_parse_marker,
              help="Records START:END to keep, one per session")
@click.option("--conceal", "conceal_markers", multiple=True, callback=_parse_marker,
              help="Records START:END whose positions stay visible, one per session")
@click.option("--manufacturer", default=None, help="Manufacturer id or name (default: first file's)")
@click.option("--product", type=int, default=None, help="Product id")
@click.option("--device-name", default=None, help="Device name written into the files")
@click.option("--output", "-o", type=click.Path(file_okay=False), default=".", help="Output directory")
def encode(
    files: Tuple[str, ...],
    target: str,
    mode: str,
    sports: Tuple[str, ...],
    remove_fields: Tuple[str, ...],
    trim_markers: List[Marker],
    conceal_markers: List[Marker],
    manufacturer: Optional[str],
    product: Optional[int],
    device_name: Optional[str],
    output: str,
) -> None:
    """Re-encode activity files with edits."""
    service = ActivityService()
    decoded = service.decode(*_read_inputs(files))
    if not decoded.ok:
        click.echo(f"❌ Decode failed: {decoded.err}", err=True)
        sys.exit(1)

    spec = EncodeSpecifications.identity(
        decoded.activities, FileType.from_extension(target), ToolMode.from_label(mode),
    )
    updates = {
        "sports": list(sports) if sports else spec.sports,
        "trim_markers": trim_markers,
        "conceal_markers": conceal_markers,
        "remove_fields": list(remove_fields),
    }
    if manufacturer is not None:
        manufacturer_id = catalog.find_manufacturer_id(manufacturer)
        if manufacturer_id is None:
            click.echo(f"❌ Unknown manufacturer: {manufacturer}", err=True)
            sys.exit(1)
        updates["manufacturer_id"] = manufacturer_id
    if product is not None:
        updates["product_id"] = product
    if device_name is not None:
        updates["device_name"] = device_name
    spec = EncodeSpecifications.model_validate({**spec.model_dump(), **updates})

    result = service.encode(decoded.activities, spec)
    if not result.ok:
        click.echo(f"❌ Encode failed: {result.err}", err=True)
        sys.exit(1)

    directory = Path(output)
    directory.mkdir(parents=True, exist_ok=True)
    for encoded in result.files:
        path = directory / encoded.name
        path.write_bytes(encoded.content)
        click.echo(f"💾 {path} ({encoded.size} bytes)")

    click.echo(f"✅ Encoded {len(result.files)} file(s) in {result.total_elapsed:.1f} ms")


@cli.command()
def sports() -> None:
    """List catalog sports."""
    for sport in ActivityService().list_sports().sports:
        click.echo(f"{sport.id:>4}  {sport.name:<28} moving > {sport.tolerance_moving_speed} m/s")


@cli.command()
@click.option("--products", is_flag=True, help="Also list each manufacturer's products")
def manufacturers(products: bool) -> None:
    """List catalog manufacturers."""
    for manufacturer in ActivityService().list_manufacturers().manufacturers:
        click.echo(f"{manufacturer.id:>5}  {manufacturer.name} ({len(manufacturer.products)} products)")
        if products:
            for item in manufacturer.products:
                click.echo(f"         {item.id:>5}  {item.name}")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
