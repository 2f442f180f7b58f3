"""Command-line interface for vidstream."""

import asyncio
import sys
from pathlib import Path

import click

from vidstream import __version__
from vidstream.api.models import MetadataResponse
from vidstream.config import load_config
from vidstream.core.delivery import DeliveryEngine
from vidstream.core.errors import VidstreamError
from vidstream.core.scanner import MediaScanner
from vidstream.core.transcoder import audio_action_for
from vidstream.models.delivery import StreamAction
from vidstream.utils.logger import setup_logging


def _human_size(size: int) -> str:
    value = float(size)
    for unit in ("B", "KiB", "MiB", "GiB"):
        if value < 1024:
            return f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} TiB"


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    default=None,
    help="Path to YAML configuration file (defaults to environment + built-in defaults)",
)
@click.option(
    "--media-dir",
    "-m",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Override the media directory",
)
@click.pass_context
def cli(ctx, config, media_dir):
    """vidstream - stream local videos with on-the-fly audio transcoding."""
    try:
        cfg = load_config(config)
        if media_dir is not None:
            cfg = cfg.model_copy(update={"media_dir": media_dir.expanduser().absolute()})
        ctx.ensure_object(dict)
        ctx.obj["config"] = cfg

        setup_logging(cfg.logging)

    except Exception as e:
        click.echo(f"Error loading configuration: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.option("--host", default=None, help="Bind address (overrides config)")
@click.option("--port", "-p", type=int, default=None, help="Port (overrides config)")
@click.option("--hwaccel", default=None, help="ffmpeg -hwaccel hint, e.g. cuda or vaapi")
@click.pass_context
def serve(ctx, host, port, hwaccel):
    """Start the HTTP server."""
    config = ctx.obj["config"]

    api_updates = {}
    if host is not None:
        api_updates["host"] = host
    if port is not None:
        api_updates["port"] = port
    updates = {"api": config.api.model_copy(update=api_updates)}
    if hwaccel:
        updates["hwaccel"] = hwaccel
    config = config.model_copy(update=updates)

    if not config.media_dir.is_dir():
        click.secho(f"✗ Media directory does not exist: {config.media_dir}", fg="red", err=True)
        click.echo("Create the directory or set MEDIA_DIR / --media-dir.", err=True)
        sys.exit(1)

    click.echo(f"Server running on http://{config.api.host}:{config.api.port}")
    click.echo(f"Media directory: {config.media_dir}")
    if config.hwaccel:
        click.echo(f"Hardware acceleration: {config.hwaccel}")
    click.echo("")
    click.echo("Press Ctrl+C to stop")

    from vidstream.daemon import start_server

    try:
        start_server(config)
    except KeyboardInterrupt:
        click.echo("\n\nServer stopped")
        sys.exit(0)


@cli.command("list")
@click.pass_context
def list_files(ctx):
    """List streamable video files in the media directory."""
    config = ctx.obj["config"]
    scanner = MediaScanner(config.media_dir)

    try:
        files = scanner.scan()
    except OSError as e:
        click.secho(f"✗ Error scanning {config.media_dir}: {e}", fg="red", err=True)
        sys.exit(1)

    if not files:
        click.secho("⊘ No video files found", fg="yellow")
        return

    for media_file in files:
        click.echo(f"{_human_size(media_file.size):>12}  {media_file.filename}")

    click.echo("")
    click.echo(f"Total: {len(files)}")


@cli.command()
@click.argument("filename")
@click.option("--json", "as_json", is_flag=True, help="Print the API JSON response")
@click.pass_context
def probe(ctx, filename, as_json):
    """Probe FILENAME (relative to the media directory)."""
    config = ctx.obj["config"]
    engine = DeliveryEngine(config)

    try:
        result = asyncio.run(engine.describe(filename))
    except VidstreamError as e:
        click.secho(f"✗ {e.message}", fg="red", err=True)
        sys.exit(1)

    if as_json:
        click.echo(MetadataResponse.from_probe(result).model_dump_json(by_alias=True, indent=2))
        return

    click.echo(f"{result.filename}: {result.format_name}, {result.duration:.1f}s")
    for stream in result.streams:
        details = [stream.codec_name]
        if stream.width and stream.height:
            details.append(f"{stream.width}x{stream.height}")
        if stream.channels:
            details.append(f"{stream.channels}ch")
        if stream.language:
            details.append(stream.language)
        click.echo(f"  #{stream.index} {stream.type.value}: {' '.join(details)}")

    action = audio_action_for(result.first_audio_codec)
    color = "yellow" if action is StreamAction.REENCODE else "green"
    click.secho(f"Transcode audio action: {action.value}", fg=color)


@cli.command()
def version():
    """Show version information."""
    click.echo(f"vidstream v{__version__}")


def main():
    """Entry point for the CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()
