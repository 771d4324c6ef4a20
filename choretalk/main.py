"""Main application entry point for ChoreTalk."""

import sys
import asyncio
import argparse
import logging
import threading
from pathlib import Path

from aiohttp import web
from pubsub import pub
from rich.console import Console
from rich.table import Table

from . import __version__
from .config import ChoreTalkConfig
from .models.recording import RecordingSessionState, StateChangeEvent
from .models.transcription import TranscriptionError
from .services.recording_service import RecordingService, SessionOutcome
from .tasks.extractor import TaskExtractor, assign_to_rooms
from .transcription import available_providers, create_app, create_backend

logger = logging.getLogger(__name__)

console = Console()


def setup_logging(config, level: str = "INFO") -> None:
    """Set up logging configuration from YAML config."""
    log_file_path = config.get('logging.file_path', 'data/logs/choretalk.log')
    console_output = config.get('logging.console_output', True)

    log_dir = Path(log_file_path).parent
    log_dir.mkdir(parents=True, exist_ok=True)

    handlers = []

    # File handler - always write to file
    file_handler = logging.FileHandler(log_file_path)
    file_handler.setLevel(logging.DEBUG)
    file_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
    )
    file_handler.setFormatter(file_formatter)
    handlers.append(file_handler)

    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.WARNING)  # Only show warnings and above on console
        console_formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        console_handler.setFormatter(console_formatter)
        handlers.append(console_handler)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper()))
    for handler in handlers:
        root_logger.addHandler(handler)

    logger.info("=" * 50)
    logger.info("ChoreTalk starting up")
    logger.info(f"Log file: {log_file_path}")
    logger.info(f"Log level set to: {level}")
    logger.info("=" * 50)


def format_time(seconds: int) -> str:
    """Format seconds as mm:ss."""
    minutes, secs = divmod(max(0, int(seconds)), 60)
    return f"{minutes:02d}:{secs:02d}"


def run_server(config: ChoreTalkConfig, provider: str = None) -> None:
    """Serve the transcription endpoint until interrupted."""
    backend = create_backend(config, provider)
    host = config.get('endpoint.host', '127.0.0.1')
    port = config.get('endpoint.port', 8787)
    logger.info(f"Serving transcription endpoint on http://{host}:{port}/transcribe ({backend.name})")
    web.run_app(create_app(backend), host=host, port=port, print=None)


def _watch_stdin(loop: asyncio.AbstractEventLoop, stop_signal: asyncio.Event) -> None:
    """Daemon thread: set the stop signal when Enter is pressed."""
    sys.stdin.readline()
    try:
        loop.call_soon_threadsafe(stop_signal.set)
    except RuntimeError:
        # Loop already finished
        pass


async def record(config: ChoreTalkConfig, extract_tasks: bool = False) -> int:
    """Record one walkthrough from the microphone and print its transcript.

    Returns:
        Process exit code
    """
    service = RecordingService(config)
    timer = service.orchestrator.timer

    def show_tick(elapsed: int) -> None:
        line = f"[red]●[/red] Recording {format_time(elapsed)} / {format_time(timer.max_seconds)}"
        if timer.ending_soon:
            line += " [yellow](Ending soon...)[/yellow]"
        console.print(line)

    service.on_tick(show_tick)

    def show_state(event: StateChangeEvent) -> None:
        if event.current is RecordingSessionState.ACTIVE:
            console.print("[green]Microphone ready. Recording...[/green]")
        elif event.current is RecordingSessionState.FINALIZING:
            console.print("Finishing recording...")

    # pypubsub holds weak references; show_state lives until record() returns
    pub.subscribe(show_state, service.publisher.state_topic)

    stop_signal = asyncio.Event()
    threading.Thread(target=_watch_stdin, args=(asyncio.get_running_loop(), stop_signal),
                     daemon=True).start()

    console.print("Press [bold]Enter[/bold] to stop recording.")
    try:
        outcome = await service.record_once(stop_signal)
    finally:
        # Releases the microphone if recording was interrupted
        service.orchestrator.cancel()
    return await _report(config, outcome, extract_tasks)


async def _report(config: ChoreTalkConfig, outcome: SessionOutcome, extract_tasks: bool) -> int:
    if outcome.failure is not None:
        console.print(f"[red]{outcome.failure.message}[/red]")
        if outcome.failure.detail:
            console.print(f"[dim]{outcome.failure.detail}[/dim]")
        return 1
    if outcome.result is None:
        console.print("[yellow]Recording was cancelled.[/yellow]")
        return 1

    if isinstance(outcome.result, TranscriptionError):
        console.print(f"[red]{outcome.result.user_message}[/red]")
        console.print(f"[dim]{outcome.result.message}[/dim]")
        return 1

    console.print(f"\n[bold]Transcript:[/bold] {outcome.result.text}")
    if outcome.stored is not None:
        console.print(f"[dim]Saved as {outcome.stored.session_id}[/dim]")

    if extract_tasks:
        api_key = config.get_secret('openai.api_key', 'OPENAI_API_KEY')
        if not api_key:
            console.print("[red]Task extraction needs an OpenAI API key (OPENAI_API_KEY).[/red]")
            return 1
        extractor = TaskExtractor(
            api_key=api_key,
            model=config.get('openai.task_model', 'gpt-4o-mini'),
            timeout_seconds=config.get('transcription.timeout_seconds', 30.0),
        )
        try:
            extracted = await extractor.extract(outcome.result.text)
        except Exception as e:
            logger.error(f"Task extraction failed: {e}")
            console.print(f"[red]Task extraction failed: {e}[/red]")
            return 1

        rooms, tasks = assign_to_rooms(extracted, [])
        room_names = {room.id: room.name for room in rooms}
        table = Table(title="Tasks")
        table.add_column("Room", style="cyan")
        table.add_column("Task")
        for task in tasks:
            table.add_row(room_names[task.room_id], task.text)
        console.print(table)
    return 0


def main() -> None:
    """Main entry point for ChoreTalk."""
    parser = argparse.ArgumentParser(
        description="ChoreTalk - voice walkthroughs to chore lists",
    )
    parser.add_argument(
        "--config",
        type=str,
        default="choretalk.yaml",
        help="Path to configuration YAML file (default: choretalk.yaml)"
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set logging level (overrides config)"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"ChoreTalk v{__version__}"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    serve_parser = subparsers.add_parser("serve", help="Run the transcription endpoint")
    serve_parser.add_argument(
        "--provider",
        choices=available_providers(),
        help="Speech-recognition provider (overrides endpoint.provider)"
    )

    record_parser = subparsers.add_parser("record", help="Record and transcribe one walkthrough")
    record_parser.add_argument(
        "--extract-tasks",
        action="store_true",
        help="Split the transcript into room-tagged tasks"
    )

    args = parser.parse_args()

    try:
        config = ChoreTalkConfig(args.config)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)
    setup_logging(config, args.log_level or config.get('logging.level', 'INFO'))

    try:
        if args.command == "serve":
            run_server(config, args.provider)
        else:
            sys.exit(asyncio.run(record(config, args.extract_tasks)))
    except KeyboardInterrupt:
        console.print("\nGoodbye!")
    except (KeyError, ValueError, RuntimeError, FileNotFoundError) as e:
        console.print(f"[red]Error: {e}[/red]")
        logger.error(f"Application error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
