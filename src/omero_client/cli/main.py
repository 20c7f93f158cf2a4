"""omero-client CLI.

Command-line access to an OMERO server: check a connection, print the
browsing tree, read a tile, list ROIs.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Annotated, Any

import typer

from omero_client import __version__
from omero_client.utils.logging import configure_logging, get_logger

app = typer.Typer(
    name="omero-client",
    help="omero-client: browse and read images of an OMERO server",
    add_completion=False,
)

UrlArgument = Annotated[str, typer.Argument(help="Server URL (any page of the server)")]
ImageIdArgument = Annotated[int, typer.Argument(help="OMERO image ID")]
VerboseOption = Annotated[
    int,
    typer.Option("--verbose", "-v", count=True, help="Increase verbosity (-v, -vv)"),
]
JsonOption = Annotated[bool, typer.Option("--json", help="Output as JSON")]


# =============================================================================
# Commands
# =============================================================================


@app.command()
def version(json_output: JsonOption = False) -> None:
    """Show version information."""
    if json_output:
        typer.echo(json.dumps({"version": __version__}))
    else:
        typer.echo(f"omero-client {__version__}")


@app.command()
def ping(url: UrlArgument, verbose: VerboseOption = 0, json_output: JsonOption = False) -> None:
    """Connect to a server and check that its session is alive."""
    from omero_client.cli.runners import ping_server  # noqa: PLC0415

    _configure_logging(verbose)
    result = _run("Ping", ping_server(url), json_output)

    if json_output:
        typer.echo(json.dumps(result, indent=2))
    else:
        user = result["username"] if result["authenticated"] else "anonymous"
        status = "alive" if result["alive"] else "not responding"
        typer.echo(f"{result['host']} ({user}): {status}")
    raise typer.Exit(0 if result["alive"] else 1)


@app.command()
def browse(
    url: UrlArgument,
    depth: Annotated[
        int, typer.Option("--depth", "-d", min=0, help="Levels of the tree to expand")
    ] = 1,
    verbose: VerboseOption = 0,
    json_output: JsonOption = False,
) -> None:
    """Print the project/dataset/image tree of a server."""
    from omero_client.cli.runners import browse_server  # noqa: PLC0415

    _configure_logging(verbose)
    tree = _run("Browse", browse_server(url, depth), json_output)

    if json_output:
        typer.echo(json.dumps(tree, indent=2))
    else:
        _echo_tree(tree, 0)


@app.command()
def tile(  # noqa: PLR0913
    url: UrlArgument,
    image_id: ImageIdArgument,
    level: Annotated[int, typer.Option("--level", "-l", min=0, help="Resolution level, 0 is full")] = 0,
    x: Annotated[int, typer.Option("--x", min=0, help="Left edge at that level")] = 0,
    y: Annotated[int, typer.Option("--y", min=0, help="Top edge at that level")] = 0,
    width: Annotated[int, typer.Option("--width", "-W", min=1, help="Tile width")] = 512,
    height: Annotated[int, typer.Option("--height", "-H", min=1, help="Tile height")] = 512,
    output: Annotated[
        Path, typer.Option("--output", "-o", help="Output file (.png, .jpg, .tif)")
    ] = Path("tile.png"),
    verbose: VerboseOption = 0,
    json_output: JsonOption = False,
) -> None:
    """Read one tile of an image and save it."""
    from omero_client.cli.runners import read_tile_to_file  # noqa: PLC0415
    from omero_client.pixels.tiles import TileRequest  # noqa: PLC0415

    _configure_logging(verbose)
    request = TileRequest(level=level, x=x, y=y, width=width, height=height)
    result = _run("Tile read", read_tile_to_file(url, image_id, request, output), json_output)

    if json_output:
        typer.echo(json.dumps(result, indent=2))
    else:
        typer.echo(f"Tile saved to {result['path']}")


@app.command()
def rois(
    url: UrlArgument,
    image_id: ImageIdArgument,
    verbose: VerboseOption = 0,
    json_output: JsonOption = False,
) -> None:
    """List the ROI shapes of an image."""
    from omero_client.cli.runners import list_rois  # noqa: PLC0415

    _configure_logging(verbose)
    shapes = _run("ROI listing", list_rois(url, image_id), json_output)

    if json_output:
        typer.echo(json.dumps(shapes, indent=2))
    else:
        for shape in shapes:
            kind = shape["@type"].rsplit("#", 1)[-1]
            typer.echo(f"ROI {shape['roi_id']}: {kind} {shape.get('Text', '')}".rstrip())
        typer.echo(f"{len(shapes)} shape(s)")


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context) -> None:
    """omero-client: browse and read images of an OMERO server."""
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())


def _run(action: str, coroutine: Any, json_output: bool) -> Any:
    """Run a runner coroutine, turning any failure into exit code 1."""
    logger = get_logger(__name__)
    try:
        return asyncio.run(coroutine)
    except Exception as e:
        logger.exception(f"{action} failed")
        if json_output:
            typer.echo(json.dumps({"error": str(e)}))
        else:
            typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None


def _echo_tree(node: dict[str, Any], indent: int) -> None:
    typer.echo("  " * indent + node["label"])
    for child in node.get("children", []):
        _echo_tree(child, indent + 1)


def _configure_logging(verbose: int) -> None:
    """Configure logging based on verbosity level."""
    if verbose == 0:
        level = "WARNING"
    elif verbose == 1:
        level = "INFO"
    else:  # verbose >= 2
        level = "DEBUG"

    configure_logging(level=level)


if __name__ == "__main__":  # pragma: no cover
    app()
