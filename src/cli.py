#!/usr/bin/env python3
"""
CLI for the web IDE server.

Usage:
    python -m src.cli serve --workspace ./workspace --port 3000
    python -m src.cli watch ./workspace
    python -m src.cli sync --url http://localhost:3000
"""

import argparse
import asyncio
import logging
import signal
import sys
import time
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from src.assistant import AssistantConfig
from src.hub import FILE_ADDED, FILE_CHANGED, FILE_DELETED
from src.reconciler import Reconciler, SyncClient, WorkspaceAPIClient
from src.server import ServerConfig, create_app
from src.watcher import ChangeWatcher, WatcherConfig, WatcherError

# Load .env from project root
_env_file = Path(__file__).parent.parent / ".env"
if _env_file.exists():
    load_dotenv(_env_file)
else:
    load_dotenv()


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

logging.basicConfig(level=logging.INFO, format=LOG_FORMAT, datefmt=LOG_DATEFMT)
logger = logging.getLogger("cli")


def setup_logging(verbose: bool = False, log_file: Optional[str] = None) -> None:
    """Apply verbosity, attach an optional file handler and quiet noisy libraries."""
    root_logger = logging.getLogger()
    if verbose:
        root_logger.setLevel(logging.DEBUG)

    if log_file:
        path = Path(log_file).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        # File handler - DEBUG level for detailed logs
        file_handler = logging.FileHandler(path, mode="a", encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT))
        root_logger.addHandler(file_handler)

    for name in ("uvicorn.access", "watchdog", "httpx", "httpcore", "websockets"):
        logging.getLogger(name).setLevel(logging.WARNING)


class GracefulShutdown:
    """Handle graceful shutdown on SIGINT/SIGTERM."""

    def __init__(self):
        self.should_exit = False
        signal.signal(signal.SIGINT, self._handler)
        signal.signal(signal.SIGTERM, self._handler)

    def _handler(self, signum, frame):
        logger.info("Received shutdown signal, stopping...")
        self.should_exit = True


def _watcher_config(args) -> WatcherConfig:
    config = WatcherConfig(debounce_ms=args.debounce)
    if args.show_hidden:
        config.ignore_hidden = False
    return config


def cmd_serve(args):
    """Run the IDE server in the foreground."""
    import uvicorn

    cfg = ServerConfig(
        workspace_dir=Path(args.workspace).resolve() if args.workspace else ServerConfig().workspace_dir,
        watch=not args.no_watch,
        watcher=_watcher_config(args),
        assistant=AssistantConfig(model=args.model),
    )
    if args.host:
        cfg.host = args.host
    if args.port:
        cfg.port = args.port

    app = create_app(cfg)

    logger.info(f"Server running on http://{cfg.host}:{cfg.port}")
    logger.info(f"Workspace: {app.state.store.root}")
    logger.info(f"AI model: {cfg.assistant.get_model()}")
    logger.info(f"Deep thinking: {'enabled' if cfg.assistant.deep_thinking_enabled() else 'disabled'}")
    logger.info(f"TDD mode: {'enabled' if cfg.assistant.tdd_enabled() else 'disabled'}")
    if not cfg.assistant.get_api_key():
        logger.warning(f"{cfg.assistant.api_key_env} is not set, AI routes will return 503")

    uvicorn.run(
        app,
        host=cfg.host,
        port=cfg.port,
        log_level="debug" if args.verbose else "info",
    )


def cmd_watch(args):
    """Print workspace change events until interrupted."""
    root = Path(args.root).resolve()

    if not root.is_dir():
        logger.error(f"Root path is not a directory: {root}")
        sys.exit(1)

    shutdown = GracefulShutdown()

    def on_event(event):
        print(f"{event.kind.value:8} {event.path}{'/' if event.is_directory else ''}", flush=True)

    def on_error(error):
        logger.error(f"Watcher stopped: {error}")
        shutdown.should_exit = True

    watcher = ChangeWatcher(root, _watcher_config(args), on_event=on_event, on_error=on_error)
    try:
        watcher.start()
    except WatcherError as e:
        logger.error(str(e))
        sys.exit(1)

    logger.info("Press Ctrl+C to stop")
    try:
        while not shutdown.should_exit:
            time.sleep(0.5)
    finally:
        watcher.stop()

    if watcher.error:
        sys.exit(1)


def cmd_sync(args):
    """Mirror a running server's workspace model and log what changes."""
    base_url = args.url.rstrip("/")
    ws_url = "ws" + base_url[len("http"):] + "/ws" if base_url.startswith("http") else base_url + "/ws"

    async def run():
        async with WorkspaceAPIClient(base_url) as api:
            reconciler = Reconciler(api)

            def on_message(message):
                if message.get("type") in (FILE_ADDED, FILE_CHANGED, FILE_DELETED):
                    print(f"{message['type']:13} {message.get('path')}", flush=True)
                    print(f"  tree: {len(reconciler.state.tree_paths())} entries", flush=True)

            client = SyncClient(ws_url, reconciler, on_message=on_message)
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, lambda: asyncio.ensure_future(client.stop()))
            await client.run()

    asyncio.run(run())


def main():
    parser = argparse.ArgumentParser(
        description="Web IDE server: workspace API, live sync and AI gateway",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Serve ./workspace on port 3000
  python -m src.cli serve

  # Serve another directory without the change watcher
  python -m src.cli serve --workspace ~/project --no-watch

  # Print change events for a directory
  python -m src.cli watch ./workspace

  # Follow a running server
  python -m src.cli sync --url http://localhost:3000
        """,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--log-file", default=None, help="Also write DEBUG logs to this file")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Run the IDE server")
    serve_parser.add_argument("--workspace", default=None, help="Workspace directory (or WORKSPACE_DIR, default: ./workspace)")
    serve_parser.add_argument("--host", default=None, help="Server host (or HOST, default: 0.0.0.0)")
    serve_parser.add_argument("--port", type=int, default=None, help="Server port (or PORT, default: 3000)")
    serve_parser.add_argument("--model", default=None, help="Gemini model (or GEMINI_MODEL)")
    serve_parser.add_argument("--no-watch", action="store_true", help="Disable change broadcasting")
    serve_parser.add_argument("--debounce", type=int, default=50, help="Debounce time in ms")
    serve_parser.add_argument("--show-hidden", action="store_true", help="Report changes to hidden entries")
    serve_parser.set_defaults(func=cmd_serve)

    # Watch command
    watch_parser = subparsers.add_parser("watch", help="Print change events for a directory")
    watch_parser.add_argument("root", help="Directory to watch")
    watch_parser.add_argument("--debounce", type=int, default=50, help="Debounce time in ms")
    watch_parser.add_argument("--show-hidden", action="store_true", help="Report changes to hidden entries")
    watch_parser.set_defaults(func=cmd_watch)

    # Sync command
    sync_parser = subparsers.add_parser("sync", help="Follow a running server's change stream")
    sync_parser.add_argument("--url", default="http://localhost:3000", help="Server base URL")
    sync_parser.set_defaults(func=cmd_sync)

    args = parser.parse_args()

    setup_logging(args.verbose, args.log_file)

    args.func(args)


if __name__ == "__main__":
    main()
