"""
Headless monitor: connects to the device and logs samples, status and link events.
"""
import sys
import argparse
import asyncio
from typing import Optional

from biolink.config import settings, ConfigurationError
from biolink.utils.logging import setup_logging, get_logger
from biolink.core import (
    ConnectionManager, ConnectionState, ControlCommand, CommandType, LinkEventKind,
    ProtocolError, SerialTransport
)

def parse_arguments(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description='PPG/ECG sensor link monitor')

    # Configuration options
    parser.add_argument('--config', help='Path to configuration file')
    parser.add_argument('--profile', help='Configuration profile to load')
    parser.add_argument('--debug', action='store_true', help='Enable debug mode')

    # Connection options
    parser.add_argument('--endpoint',
                        help='Device endpoint, e.g. ws://192.168.4.1:81 or serial:///dev/ttyUSB0')
    parser.add_argument('--max-attempts', type=int, help='Automatic reconnection attempts')
    parser.add_argument('--stale-policy', choices=['warn', 'reconnect'],
                        help='What to do when no data arrives')

    # Run options
    parser.add_argument('--duration', type=float,
                        help='Seconds to run before disconnecting (default: until interrupted)')
    parser.add_argument('--command', choices=[c.value for c in CommandType],
                        help='Control command to send once connected')
    parser.add_argument('--list-ports', action='store_true',
                        help='List available serial ports and exit')

    return parser.parse_args(argv)

def apply_command_line_settings(args):
    """Apply command line arguments to settings."""
    if args.config:
        settings.load_file(args.config)

    # Load specified configuration profile
    if args.profile:
        if not settings.load_profile(args.profile):
            print(f"Warning: Could not load profile '{args.profile}'")

    if args.debug:
        settings.update({"DEBUG": True, "LOG_LEVEL": "DEBUG"})

    if args.endpoint:
        settings.update({"DEFAULT_ENDPOINT": args.endpoint})

    if args.max_attempts is not None:
        settings.update({"MAX_RECONNECT_ATTEMPTS": args.max_attempts})

    if args.stale_policy:
        settings.update({"STALE_POLICY": args.stale_policy})

async def monitor(duration: Optional[float] = None,
                  command: Optional[ControlCommand] = None) -> int:
    """
    Run the connection manager until interrupted or ``duration`` elapses.

    Returns:
        int: Exit code
    """
    logger = get_logger("biolink.monitor")
    manager = ConnectionManager()
    finished = asyncio.Event()

    def on_signal(sample):
        logger.info("%s t=%d value=%.4f quality=%.2f",
                    sample.kind.value, sample.timestamp, sample.value, sample.quality)

    def on_status(state):
        if state is ConnectionState.CONNECTED and command is not None:
            manager.send_command(command)

    def on_event(event):
        if event.kind is LinkEventKind.RECONNECT_EXHAUSTED:
            finished.set()
        # A transport that could not even be started is never retried
        elif event.kind is LinkEventKind.TRANSPORT_ERROR and event.details.get("phase") == "open":
            finished.set()

    manager.on_signal(on_signal)
    manager.on_status_change(on_status)
    manager.on_event(on_event)

    manager.connect()
    try:
        await asyncio.wait_for(finished.wait(), timeout=duration)
        logger.error("Could not reach %s", manager.url)
        return 1
    except asyncio.TimeoutError:
        return 0
    finally:
        manager.disconnect()
        logger.info("Stats: %s", manager.stats)

def main(argv=None):
    """Main entry point for the application."""
    args = parse_arguments(argv)

    try:
        apply_command_line_settings(args)
    except ConfigurationError as e:
        print(f"Error: {e}")
        return 2

    if args.list_ports:
        ports = SerialTransport.list_available_ports()
        for port in ports:
            print(port)
        if not ports:
            print("No serial ports found")
        return 0

    setup_logging()
    app_logger = get_logger("main")
    app_logger.info("Starting %s v%s", settings.APP_NAME, settings.APP_VERSION)

    if settings.DEBUG:
        app_logger.debug("Current settings: %s", settings.as_dict())

    try:
        command = ControlCommand.create(args.command) if args.command else None
        return asyncio.run(monitor(args.duration, command))
    except KeyboardInterrupt:
        app_logger.info("Monitor terminated by user")
        return 0
    except (ConfigurationError, ProtocolError) as e:
        app_logger.error("%s", str(e))
        return 2

if __name__ == "__main__":
    sys.exit(main())
