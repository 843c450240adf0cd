import typer
import uvicorn
import yaml
from pathlib import Path
from typing import Optional
from pydantic import ValidationError
from rich.console import Console
from rich.progress import Progress, BarColumn, TextColumn, TimeElapsedColumn

from hlsd.config.loader import DEFAULT_CONFIG_PATH, load_config
from hlsd.config.models import AppConfig
from hlsd.infrastructure.logging import setup_logging
from hlsd.infrastructure.event_bus import EventBus
from hlsd.infrastructure.ffprobe import FFprobeAdapter
from hlsd.infrastructure.ffmpeg import FFmpegAdapter
from hlsd.infrastructure.housekeeping import HousekeepingService
from hlsd.infrastructure.ipfs import IPFSStore
from hlsd.pipeline.orchestrator import TranscodeOrchestrator
from hlsd.api.app import create_app
from hlsd.domain.events import JobEncodingStarted, JobProgressUpdated
from hlsd.domain.models import Done, Failed

app = typer.Typer(help="hlsd - transcode uploads to adaptive HLS and publish them to IPFS")

console = Console()


def build_orchestrator(config: AppConfig, bus: EventBus) -> TranscodeOrchestrator:
    return TranscodeOrchestrator(
        config=config,
        event_bus=bus,
        ffprobe_adapter=FFprobeAdapter(config.ffmpeg.ffprobe_path),
        ffmpeg_adapter=FFmpegAdapter(config.ffmpeg),
        store=IPFSStore(config.ipfs),
    )


def _load(config_path: Optional[Path], debug: bool, temp_dir: Optional[Path] = None) -> AppConfig:
    try:
        config = load_config(config_path)
    except (ValidationError, yaml.YAMLError) as e:
        typer.secho(f"Invalid configuration: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    # Apply CLI overrides
    if debug: config.general.debug = True
    if temp_dir: config.storage.temp_dir = temp_dir
    return config


@app.command()
def serve(
    config_path: Optional[Path] = typer.Option(DEFAULT_CONFIG_PATH, "--config", "-c", help="Path to YAML config"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Override HTTP port"),
    temp_dir: Optional[Path] = typer.Option(None, "--temp-dir", help="Override scratch/output directory"),
    debug: bool = typer.Option(False, "--debug/--no-debug", help="Enable verbose debug logging"),
):
    """Start the HTTP API that accepts uploads and reports transcode progress."""
    config = _load(config_path, debug, temp_dir)
    if port: config.server.port = port

    logger = setup_logging(config.general.log_dir, debug=config.general.debug)
    logger.info(f"hlsd starting: port={config.server.port}, temp_dir={config.storage.temp_dir}, ipfs={config.ipfs.host}")

    HousekeepingService(config.storage).prepare()

    orchestrator = build_orchestrator(config, EventBus())
    api = create_app(orchestrator, config)
    try:
        uvicorn.run(api, host=config.server.host, port=config.server.port, log_config=None)
    finally:
        orchestrator.store.close()


@app.command()
def transcode(
    input_file: Path = typer.Argument(..., help="Video file to transcode"),
    config_path: Optional[Path] = typer.Option(DEFAULT_CONFIG_PATH, "--config", "-c", help="Path to YAML config"),
    temp_dir: Optional[Path] = typer.Option(None, "--temp-dir", help="Override output directory"),
    debug: bool = typer.Option(False, "--debug/--no-debug", help="Enable verbose debug logging"),
):
    """Transcode a single local file and print the resulting content id."""
    if not input_file.is_file():
        typer.secho(f"Error: File {input_file} does not exist.", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    config = _load(config_path, debug, temp_dir)
    setup_logging(config.general.log_dir, debug=config.general.debug)
    config.storage.temp_dir.mkdir(parents=True, exist_ok=True)

    bus = EventBus()
    orchestrator = build_orchestrator(config, bus)

    with Progress(
        TextColumn("[bold blue]{task.description}"),
        BarColumn(),
        TextColumn("{task.percentage:>3.0f}%"),
        TimeElapsedColumn(),
        console=console,
    ) as progress:
        task = progress.add_task("probing", total=100)
        bus.subscribe(JobEncodingStarted, lambda e: progress.update(
            task, description=f"encoding {', '.join(r.name for r in e.ladder)}"))
        bus.subscribe(JobProgressUpdated, lambda e: progress.update(task, completed=e.progress_percent))

        try:
            job_id = orchestrator.submit(input_file, remove_source=False)
            orchestrator.wait(job_id)
        except KeyboardInterrupt:
            typer.echo("\nInterrupted by user")
            raise typer.Exit(code=130)
        finally:
            orchestrator.store.close()
        status = orchestrator.query(job_id)
        if isinstance(status, Done):
            progress.update(task, completed=100, description="done")

    if isinstance(status, Done):
        console.print(f"[green]CID:[/green] {status.content_id}  [green]length:[/green] {status.length}s")
    elif isinstance(status, Failed):
        typer.secho(f"{status.error_kind}: {status.message}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    else:
        typer.secho(f"Unexpected job state: {status.state}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
