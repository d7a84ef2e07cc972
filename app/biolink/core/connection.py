"""
Manages the lifecycle of the link to the sensor device.

This module builds on the transport, protocol, heartbeat and reconnection
modules to provide the single object the UI layer talks to.
"""
import asyncio
import time
from enum import Enum
from typing import Any, Callable, Dict, Optional, Union

from biolink.config import settings, ConfigurationError, validate_link_options
from biolink.utils.logging import get_logger
from biolink.core.events import LinkEvent, LinkEventKind, SubscriberRegistry
from biolink.core.exceptions import CommandRejected, CommunicationError, DecodeError
from biolink.core.heartbeat import HeartbeatMonitor
from biolink.core.protocol import ControlCommand, Protocol, SignalSample
from biolink.core.reconnect import ReconnectionPolicy
from biolink.core.transport import Transport, create_transport

class ConnectionState(Enum):
    """States of the link; values are the status strings shown to users."""
    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERRORED = "error"

# Edges the state machine may take
ALLOWED_TRANSITIONS = {
    ConnectionState.IDLE: {ConnectionState.CONNECTING, ConnectionState.DISCONNECTED},
    ConnectionState.CONNECTING: {ConnectionState.CONNECTED, ConnectionState.ERRORED,
                                 ConnectionState.DISCONNECTED},
    ConnectionState.CONNECTED: {ConnectionState.DISCONNECTED, ConnectionState.ERRORED},
    ConnectionState.DISCONNECTED: {ConnectionState.CONNECTING, ConnectionState.DISCONNECTED},
    ConnectionState.ERRORED: {ConnectionState.CONNECTING, ConnectionState.DISCONNECTED},
}

TransportFactory = Callable[[str, Any], Transport]

class ConnectionManager:
    """
    Owns the transport to the device and drives the connection state machine.

    All work happens on one event loop: transport callbacks, the heartbeat
    tick and the reconnect timer are discrete loop events, so no locking is
    needed. Transport failures never raise out of the public methods; they
    show up as status changes and ``LinkEvent`` objects.

    Every transport gets a generation number. Releasing a transport bumps the
    generation, and callbacks carrying an older generation are ignored.
    """

    def __init__(self, url: Optional[str] = None, *,
                 max_reconnect_attempts: Optional[int] = None,
                 reconnect_base_delay_ms: Optional[float] = None,
                 reconnect_max_delay_ms: Optional[float] = None,
                 heartbeat_interval_ms: Optional[float] = None,
                 stale_threshold_ms: Optional[float] = None,
                 stale_policy: Optional[str] = None,
                 loop=None,
                 transport_factory: Optional[TransportFactory] = None):
        """
        Initialize the connection manager.

        Options left as None come from the settings. Pass
        ``reconnect_max_delay_ms=0`` to disable the backoff ceiling.

        Args:
            url: Device endpoint (``ws://``, ``wss://`` or ``serial://``)
            max_reconnect_attempts: Automatic retries before giving up
            reconnect_base_delay_ms: Delay before the first retry
            reconnect_max_delay_ms: Ceiling for the backoff delay
            heartbeat_interval_ms: Period of the staleness check
            stale_threshold_ms: Silence after which the link counts as stale
            stale_policy: "warn" to only report staleness, "reconnect" to
                drop the link and retry
            loop: Event loop; defaults to the running asyncio loop
            transport_factory: Callable ``(url, loop) -> Transport``

        Raises:
            ConfigurationError: If an option is invalid or no loop is available
        """
        options = settings.link_options()
        overrides = {
            "max_reconnect_attempts": max_reconnect_attempts,
            "reconnect_base_delay_ms": reconnect_base_delay_ms,
            "reconnect_max_delay_ms": reconnect_max_delay_ms,
            "heartbeat_interval_ms": heartbeat_interval_ms,
            "stale_threshold_ms": stale_threshold_ms,
            "stale_policy": stale_policy,
        }
        options.update({key: value for key, value in overrides.items() if value is not None})
        if not options["reconnect_max_delay_ms"]:
            options["reconnect_max_delay_ms"] = None
        validate_link_options(**options)

        if loop is None:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                raise ConfigurationError(
                    "ConnectionManager must be created inside a running event loop "
                    "or given one explicitly") from None

        self.url = url or settings.DEFAULT_ENDPOINT
        self.stale_policy = options["stale_policy"]
        self._loop = loop
        self._transport_factory = transport_factory or create_transport
        self._logger = get_logger(__name__, endpoint=self.url)

        self._subscribers = SubscriberRegistry()
        self._policy = ReconnectionPolicy(
            loop,
            max_attempts=options["max_reconnect_attempts"],
            base_delay_ms=options["reconnect_base_delay_ms"],
            max_delay_ms=options["reconnect_max_delay_ms"],
        )
        self._heartbeat = HeartbeatMonitor(
            loop,
            interval_ms=options["heartbeat_interval_ms"],
            stale_threshold_ms=options["stale_threshold_ms"],
            on_stale=self._on_stale,
        )

        self._state = ConnectionState.IDLE
        self._transport: Optional[Transport] = None
        self._generation = 0

        self._stats = {
            "frames_received": 0,
            "samples_emitted": 0,
            "decode_failures": 0,
            "reconnects_scheduled": 0,
            "stale_warnings": 0,
            "commands_sent": 0,
            "commands_failed": 0,
            "last_connect_time": None,
        }

    # Public interface

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED and self._transport is not None

    @property
    def reconnect_attempts(self) -> int:
        return self._policy.attempts

    @property
    def policy(self) -> ReconnectionPolicy:
        return self._policy

    @property
    def heartbeat(self) -> HeartbeatMonitor:
        return self._heartbeat

    @property
    def stats(self) -> Dict[str, Any]:
        """Get connection statistics."""
        return self._stats.copy()

    def connect(self) -> None:
        """
        Open the link.

        Does nothing while a transport is connecting or connected. Otherwise
        a manual call cancels any pending retry and resets the attempt count.
        """
        if self._has_live_transport():
            self._logger.debug("Already %s, ignoring connect()", self._state.value)
            return

        self._policy.reset()
        self._open_transport()

    def disconnect(self) -> None:
        """Close the link and stop all automatic activity until connect() is called."""
        self._policy.reset()
        self._heartbeat.stop()
        self._release_transport()
        self._set_state(ConnectionState.DISCONNECTED)

    def send_command(self, command: Union[ControlCommand, str],
                     parameters: Optional[Dict[str, Any]] = None) -> bool:
        """
        Send a control command to the device.

        Args:
            command: Command object or command name
            parameters: Parameters when ``command`` is a name

        Returns:
            bool: True if the command was handed to the transport. A write that
            fails later is reported as a COMMAND_FAILED event.

        Raises:
            ProtocolError: If ``command`` is not a valid command
        """
        if not isinstance(command, ControlCommand):
            command = ControlCommand.create(command, parameters)
        name = command.command.value

        if not self.is_connected or not self._transport.is_open:
            error = CommandRejected(
                f"Cannot send command {name}: not connected (state: {self._state.value})")
            self._logger.warning(str(error))
            self._subscribers.emit_event(LinkEventKind.COMMAND_REJECTED, str(error),
                                         command=name, state=self._state)
            return False

        try:
            self._transport.send(Protocol.encode_message(command.to_message()))
        except CommunicationError as e:
            self._logger.error("Error sending command %s: %s", name, str(e))
            self._stats["commands_failed"] += 1
            self._subscribers.emit_event(LinkEventKind.COMMAND_FAILED, str(e),
                                         command=name, error=e)
            return False

        self._stats["commands_sent"] += 1
        self._logger.debug("Sent command: %s", name)
        return True

    def on_signal(self, callback: Callable[[SignalSample], None]) -> Callable[[], None]:
        """Register a callback for decoded samples; returns its unsubscribe function."""
        return self._subscribers.subscribe_signal(callback)

    def on_status_change(self, callback: Callable[[ConnectionState], None]) -> Callable[[], None]:
        """Register a callback for state transitions; returns its unsubscribe function."""
        return self._subscribers.subscribe_status(callback)

    def on_event(self, callback: Callable[[LinkEvent], None]) -> Callable[[], None]:
        """Register a callback for observability events; returns its unsubscribe function."""
        return self._subscribers.subscribe_events(callback)

    # State machine

    def _has_live_transport(self) -> bool:
        # The handle is assigned just after CONNECTING is announced
        return self._state in (ConnectionState.CONNECTING, ConnectionState.CONNECTED)

    def _set_state(self, state: ConnectionState) -> None:
        previous = self._state
        if state not in ALLOWED_TRANSITIONS[previous]:
            self._logger.warning("Unexpected state transition %s -> %s",
                                 previous.value, state.value)
        self._state = state
        self._logger.info("Connection state: %s -> %s", previous.value, state.value)

        self._subscribers.emit_status(state)
        self._subscribers.emit_event(LinkEventKind.STATE_CHANGED,
                                     f"{previous.value} -> {state.value}",
                                     previous=previous, state=state)

    def _open_transport(self) -> None:
        self._generation += 1
        generation = self._generation
        self._set_state(ConnectionState.CONNECTING)

        # A status callback may already have disconnected
        if generation != self._generation or self._state is not ConnectionState.CONNECTING:
            return

        try:
            transport = self._transport_factory(self.url, self._loop)
            transport.on_open = lambda: self._handle_open(generation)
            transport.on_message = lambda frame: self._handle_message(generation, frame)
            transport.on_error = lambda error: self._handle_error(generation, error)
            transport.on_close = lambda: self._handle_close(generation)
            transport.on_send_error = (
                lambda text, error: self._handle_send_error(generation, text, error))
            self._transport = transport
            transport.open()
        except Exception as e:
            # Failure before the transport could start: no automatic retry
            self._logger.error("Error opening connection to %s: %s", self.url, str(e))
            self._release_transport()
            self._subscribers.emit_event(LinkEventKind.TRANSPORT_ERROR, str(e),
                                         error=e, phase="open")
            self._set_state(ConnectionState.ERRORED)

    def _release_transport(self) -> None:
        self._generation += 1
        transport, self._transport = self._transport, None
        if transport is None:
            return
        try:
            transport.close()
        except Exception as e:
            self._logger.warning("Error closing transport: %s", str(e))

    def _reconnect(self) -> None:
        if self._has_live_transport():
            return
        self._logger.info("Reconnect attempt %d/%d", self._policy.attempts,
                          self._policy.max_attempts)
        self._open_transport()

    def _schedule_reconnect(self) -> None:
        delay = self._policy.schedule(self._reconnect)
        if delay is not None:
            self._stats["reconnects_scheduled"] += 1
            self._subscribers.emit_event(
                LinkEventKind.RECONNECT_SCHEDULED,
                f"Reconnecting in {delay:.0f}ms",
                delay_ms=delay, attempt=self._policy.attempts)
        elif self._policy.exhausted:
            self._logger.warning("Giving up after %d reconnection attempts",
                                 self._policy.max_attempts)
            self._subscribers.emit_event(
                LinkEventKind.RECONNECT_EXHAUSTED,
                "Max reconnection attempts reached",
                attempts=self._policy.attempts)

    # Transport callbacks

    def _handle_open(self, generation: int) -> None:
        if (generation != self._generation or self._transport is None
                or self._state is not ConnectionState.CONNECTING):
            return

        self._policy.reset()
        self._stats["last_connect_time"] = time.time()
        self._set_state(ConnectionState.CONNECTED)

        # A status callback may already have disconnected
        if generation == self._generation and self._state is ConnectionState.CONNECTED:
            self._heartbeat.start()

    def _handle_message(self, generation: int, frame: Any) -> None:
        if generation != self._generation or self._transport is None:
            return

        self._heartbeat.touch()
        self._stats["frames_received"] += 1

        try:
            samples = Protocol.decode_frame(frame)
        except DecodeError as e:
            self._stats["decode_failures"] += 1
            self._logger.warning("Error decoding frame: %s", str(e))
            self._subscribers.emit_event(LinkEventKind.DECODE_FAILED, str(e),
                                         error=e, frame=frame)
            return

        for sample in samples:
            self._stats["samples_emitted"] += 1
            self._subscribers.emit_signal(sample)

    def _handle_error(self, generation: int, error: Exception) -> None:
        if generation != self._generation or self._transport is None:
            return

        self._logger.error("Transport error: %s", str(error))
        self._heartbeat.stop()
        transport, self._transport = self._transport, None
        self._subscribers.emit_event(LinkEventKind.TRANSPORT_ERROR, str(error),
                                     error=error, phase="link")
        self._set_state(ConnectionState.ERRORED)

        # The close event that follows schedules the retry
        if generation == self._generation:
            try:
                transport.close()
            except Exception as e:
                self._logger.warning("Error closing transport: %s", str(e))

    def _handle_send_error(self, generation: int, text: str, error: Exception) -> None:
        if generation != self._generation:
            return

        try:
            name = Protocol.decode_message(text).get("command")
        except DecodeError:
            name = None
        self._stats["commands_failed"] += 1
        self._logger.error("Error sending command %s: %s", name, str(error))
        self._subscribers.emit_event(LinkEventKind.COMMAND_FAILED, str(error),
                                     command=name, error=error)

    def _handle_close(self, generation: int) -> None:
        if generation != self._generation:
            return

        self._logger.info("Connection to %s closed", self.url)
        self._generation += 1
        closed_generation = self._generation
        self._transport = None
        self._heartbeat.stop()
        self._set_state(ConnectionState.DISCONNECTED)

        # A status callback may already have reconnected or disconnected
        if self._generation == closed_generation:
            self._schedule_reconnect()

    def _on_stale(self, elapsed_ms: float) -> None:
        self._stats["stale_warnings"] += 1
        self._subscribers.emit_event(
            LinkEventKind.HEARTBEAT_STALE,
            f"No data received for {elapsed_ms:.0f}ms, connection may be stale",
            elapsed_ms=elapsed_ms, threshold_ms=self._heartbeat.stale_threshold_ms)

        if self.stale_policy == "reconnect" and self._state is ConnectionState.CONNECTED:
            self._logger.warning("Dropping stale connection to %s", self.url)
            transport = self._transport
            self._handle_close(self._generation)
            try:
                transport.close()
            except Exception as e:
                self._logger.warning("Error closing transport: %s", str(e))
