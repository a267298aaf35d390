import asyncio
import sys
import signal
import logging
from pathlib import Path
from typing import Optional

from .config import ListenerConfig, load_saved_port, save_port
from .constants import ListenerDefaults, WebSocketDefaults
from .state.display_state import SharedDisplayState
from .udp_listener.listener import CueListener
from .udp_listener.packet_source import StartupError
from .utils.metrics import MetricsCollector
from .websocket.server import SnapshotWebSocketServer


logger = logging.getLogger(__name__)


USAGE = """\
Usage: cue-display [OPTIONS]

Listener Options:
  --port=PORT       - UDP port for OSC input (default: last used, else 9000)
  --host=ADDR       - Interface to bind (default: 0.0.0.0)

WebSocket Options:
  --ws-host=HOST    - WebSocket host (default: localhost)
  --ws-port=PORT    - WebSocket port (default: 8765)
  --no-websocket    - Only run the listener, print cue changes to the log

Logging Options:
  --log-file=PATH   - Log to file (default: stdout only)
  --log-level=LEVEL - Logging level: DEBUG, INFO, WARNING, ERROR (default: INFO)
"""


def setup_logging(log_file: Optional[Path] = None, level: str = "INFO"):
    """
    Configure logging to both file and console.

    Args:
        log_file: Path to log file (optional)
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    detailed_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(threadName)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    simple_formatter = logging.Formatter(
        '%(levelname)s: %(message)s'
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    # Clear existing handlers
    root_logger.handlers = []

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(getattr(logging, level.upper()))
    console_handler.setFormatter(simple_formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file, mode='a')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(detailed_formatter)
        root_logger.addHandler(file_handler)

        logger.info(f"Logging to file: {log_file}")

    return root_logger


def parse_args(argv):
    """
    Parse --key=value style options.

    Returns:
        dict of options

    Raises:
        ValueError: On unknown options or malformed values
    """
    options = {
        "port": None,
        "host": ListenerDefaults.HOST,
        "ws_host": WebSocketDefaults.HOST,
        "ws_port": WebSocketDefaults.PORT,
        "websocket": True,
        "log_file": None,
        "log_level": "INFO",
    }

    for arg in argv:
        if arg.startswith("--port="):
            options["port"] = int(arg.split("=", 1)[1])
        elif arg.startswith("--host="):
            options["host"] = arg.split("=", 1)[1]
        elif arg.startswith("--ws-host="):
            options["ws_host"] = arg.split("=", 1)[1]
        elif arg.startswith("--ws-port="):
            options["ws_port"] = int(arg.split("=", 1)[1])
        elif arg == "--no-websocket":
            options["websocket"] = False
        elif arg.startswith("--log-file="):
            options["log_file"] = Path(arg.split("=", 1)[1])
        elif arg.startswith("--log-level="):
            level = arg.split("=", 1)[1].upper()
            if level not in ("DEBUG", "INFO", "WARNING", "ERROR"):
                raise ValueError(f"Unknown log level: {level}")
            options["log_level"] = level
        else:
            raise ValueError(f"Unknown option: {arg}")

    return options


async def run_display(listener: CueListener, ws_server: Optional[SnapshotWebSocketServer]):
    """Run until SIGINT/SIGTERM, then shut everything down."""
    stop_event = asyncio.Event()

    def signal_handler():
        print("\nShutting down...")
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, signal_handler)
        except NotImplementedError:
            # Windows event loops have no signal handlers; Ctrl+C raises KeyboardInterrupt
            pass

    if ws_server:
        await ws_server.start()
        print(f"WebSocket server on ws://{ws_server.host}:{ws_server.port}")

    print("\nDisplay is running. Press Ctrl+C to stop.")

    # Also wake up if the listener dies on a socket error
    async def watch_listener():
        while listener.is_running:
            await asyncio.sleep(0.5)
        stop_event.set()

    watcher = asyncio.create_task(watch_listener())
    await stop_event.wait()
    watcher.cancel()

    if ws_server:
        print("Stopping WebSocket server...")
        await ws_server.stop()

    print("Stopping UDP listener...")
    listener.stop()


def main():
    try:
        options = parse_args(sys.argv[1:])
    except ValueError as e:
        print(f"Error: {e}\n")
        print(USAGE)
        sys.exit(2)

    setup_logging(log_file=options["log_file"], level=options["log_level"])

    port = options["port"]
    if port is None:
        port = load_saved_port() or ListenerDefaults.PORT

    try:
        config = ListenerConfig(host=options["host"], port=port)
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(2)

    display = SharedDisplayState()
    metrics = MetricsCollector()
    listener = CueListener(display=display, config=config, metrics=metrics)

    try:
        listener.start()
    except StartupError as e:
        print(f"UDP Listener failed to start: {e}")
        sys.exit(1)

    print(f"Listening for OSC on udp://{config.host}:{listener.port}")

    if options["port"] is not None:
        try:
            save_port(listener.port)
        except OSError as e:
            logger.warning(f"Could not save port: {e}")

    ws_server = None
    if options["websocket"]:
        ws_server = SnapshotWebSocketServer(
            display,
            listener=listener,
            metrics=metrics,
            host=options["ws_host"],
            port=options["ws_port"],
        )

    try:
        asyncio.run(run_display(listener, ws_server))
    except KeyboardInterrupt:
        listener.stop()
    except OSError as e:
        # WebSocket port unavailable
        print(f"WebSocket server failed to start: {e}")
        listener.stop()
        sys.exit(1)

    stats = listener.get_stats()
    print("\nUDP Listener Statistics:")
    print(f"  Packets received: {stats['packets_received']}")
    print(f"  Updates applied: {stats['packets_applied']}")
    print(f"  Malformed: {stats['malformed']}")
    print(f"  Unsupported: {stats['unsupported']}")
    print(f"  Ignored messages: {stats['mapping_misses']}")

    if listener.error:
        sys.exit(1)

    print("Display stopped.")


if __name__ == "__main__":
    main()
