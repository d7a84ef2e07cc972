"""
Transports carrying JSON text frames between the application and the device.

A transport reports its lifecycle through four callbacks that always run on
the event loop thread: ``on_open()``, ``on_message(frame)``,
``on_error(exc)`` and ``on_close()``. ``on_close`` fires at most once per
transport instance. Transports that send in the background also report
failed writes through ``on_send_error(text, exc)``.
"""
import asyncio
import functools
import threading
from abc import ABC, abstractmethod
from typing import Any, Callable, List, Optional
from urllib.parse import urlparse, parse_qs

import serial
import serial.tools.list_ports
import websockets
from websockets.exceptions import ConnectionClosedError, WebSocketException

from biolink.config import settings
from biolink.utils.logging import get_logger
from biolink.core.exceptions import (
    TransportOpenError, TransportRuntimeError, TransportClosed
)

# Initialize module logger
logger = get_logger(__name__)

class Transport(ABC):
    """Base class for a bidirectional, event-driven frame transport."""

    def __init__(self, url: str, loop):
        self.url = url
        self._loop = loop
        self._open = False
        self._closed = False

        self.on_open: Optional[Callable[[], None]] = None
        self.on_message: Optional[Callable[[Any], None]] = None
        self.on_error: Optional[Callable[[Exception], None]] = None
        self.on_close: Optional[Callable[[], None]] = None
        self.on_send_error: Optional[Callable[[str, Exception], None]] = None

    @property
    def is_open(self) -> bool:
        return self._open and not self._closed

    @abstractmethod
    def open(self) -> None:
        """
        Start opening the transport.

        Raises:
            TransportOpenError: If the transport cannot even be started
        """

    @abstractmethod
    def send(self, text: str) -> None:
        """
        Send one text frame.

        Raises:
            TransportClosed: If the transport is not open
        """

    @abstractmethod
    def close(self) -> None:
        """Close the transport; ``on_close`` follows unless it already fired."""

    def _invoke(self, name: str, *args) -> None:
        callback = getattr(self, name)
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            logger.error("Error in transport %s callback: %s", name, str(e), exc_info=True)

    def _fire_open(self) -> None:
        if self._closed:
            return
        self._open = True
        self._invoke("on_open")

    def _fire_message(self, frame: Any) -> None:
        if not self._closed:
            self._invoke("on_message", frame)

    def _fire_error(self, error: Exception) -> None:
        if not self._closed:
            self._invoke("on_error", error)

    def _fire_send_error(self, text: str, error: Exception) -> None:
        if not self._closed:
            self._invoke("on_send_error", text, error)

    def _fire_close(self) -> None:
        if self._closed:
            return
        self._open = False
        self._closed = True
        self._invoke("on_close")

class WebSocketTransport(Transport):
    """
    WebSocket transport built on the ``websockets`` asyncio client.

    One task owns the connection: it connects, then forwards every received
    frame until the socket closes.
    """

    def __init__(self, url: str, loop, open_timeout: Optional[float] = None):
        super().__init__(url, loop)
        self.open_timeout = open_timeout if open_timeout is not None else settings.get("OPEN_TIMEOUT", 10.0)
        self._ws = None
        self._task = None
        self._closing = False
        self._connecting = False

    def open(self) -> None:
        if self._task is not None:
            raise TransportOpenError("Transport already opened")
        logger.debug("Connecting to %s", self.url)
        self._task = self._loop.create_task(self._run())

    async def _run(self) -> None:
        try:
            self._connecting = True
            try:
                self._ws = await websockets.connect(
                    self.url,
                    open_timeout=self.open_timeout,
                    close_timeout=5,
                )
            except (OSError, asyncio.TimeoutError, WebSocketException) as e:
                self._connecting = False
                logger.error("Failed to connect to %s: %s", self.url, str(e))
                self._fire_error(TransportOpenError(f"Connection failed: {str(e)}"))
                return
            self._connecting = False

            if self._closing:
                await self._ws.close()
                return

            logger.info("Connected to %s", self.url)
            self._fire_open()

            try:
                async for frame in self._ws:
                    self._fire_message(frame)
            except ConnectionClosedError as e:
                logger.warning("Connection to %s lost: %s", self.url, str(e))
                self._fire_error(TransportRuntimeError(f"Connection lost: {str(e)}"))
        finally:
            self._ws = None
            self._fire_close()

    def send(self, text: str) -> None:
        if not self.is_open or self._ws is None:
            raise TransportClosed("WebSocket is not open")
        task = self._loop.create_task(self._ws.send(text))
        task.add_done_callback(functools.partial(self._on_send_done, text))
        logger.debug("Sent data: %s", text)

    def _on_send_done(self, text: str, task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("Error sending data: %s", str(error))
            self._fire_send_error(text, TransportRuntimeError(f"Error sending data: {str(error)}"))

    def close(self) -> None:
        if self._closing or self._closed:
            return
        self._closing = True
        logger.debug("Closing connection to %s", self.url)

        if self._ws is not None:
            # The receive loop ends once the close handshake completes
            self._loop.create_task(self._ws.close())
        elif self._task is None or self._task.done():
            self._fire_close()
        elif self._connecting:
            self._task.cancel()
        # Otherwise the task is already exiting and fires on_close itself

class SerialTransport(Transport):
    """
    Serial transport carrying newline-delimited JSON frames.

    A background thread reads the port and hands complete lines to the event
    loop with ``call_soon_threadsafe``.
    """

    # Common vendor/product IDs for ESP32 USB bridges
    ESP32_VIDS_PIDS = [
        (0x10C4, 0xEA60),  # Silicon Labs CP210x
        (0x1A86, 0x7523),  # QinHeng CH340
        (0x1A86, 0x55D3),  # QinHeng CH343
        (0x0403, 0x6001),  # FTDI FT232
    ]

    def __init__(self, url: str, loop, port: Optional[str] = None,
                 baudrate: Optional[int] = None, timeout: Optional[float] = None):
        super().__init__(url, loop)
        self.port = port
        self.baudrate = baudrate or settings.DEFAULT_BAUDRATE
        self.timeout = timeout if timeout is not None else settings.get("SERIAL_TIMEOUT", 1.0)

        self._serial = None
        self._reading_thread = None
        self._stop_event = threading.Event()
        self._data_buffer = ""
        self._lock = threading.Lock()

    @classmethod
    def list_available_ports(cls) -> List[str]:
        """
        List all available serial ports.

        Returns:
            List[str]: List of available serial port names
        """
        return [port.device for port in serial.tools.list_ports.comports()]

    @classmethod
    def detect_device_port(cls) -> Optional[str]:
        """
        Try to automatically detect the sensor device port.

        Returns:
            Optional[str]: Detected port name or None if not found
        """
        for port in serial.tools.list_ports.comports():
            if getattr(port, 'vid', None) is not None:
                if (port.vid, port.pid) in cls.ESP32_VIDS_PIDS:
                    return port.device

            description = (getattr(port, 'description', '') or '').lower()
            if any(x in description for x in ['esp32', 'cp210x', 'ch340', 'ft232']):
                return port.device

        return None

    def open(self) -> None:
        port = self.port
        if not port or port == "auto":
            port = self.detect_device_port()
            if port is None:
                raise TransportOpenError("No port specified and auto-detection failed")
        self.port = port

        logger.debug("Connecting to %s at %d baud", port, self.baudrate)

        try:
            self._serial = serial.Serial(
                port=port,
                baudrate=self.baudrate,
                timeout=self.timeout,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE
            )
        except serial.SerialException as e:
            logger.error("Failed to connect to %s: %s", port, str(e))
            raise TransportOpenError(f"Connection failed: {str(e)}") from e

        self._stop_event.clear()
        self._reading_thread = threading.Thread(
            target=self._read_thread,
            name="SerialReadThread",
            daemon=True
        )
        self._reading_thread.start()

        logger.info("Connected to device on %s at %d baud", port, self.baudrate)
        self._loop.call_soon(self._fire_open)

    def send(self, text: str) -> None:
        if not self.is_open or self._serial is None:
            raise TransportClosed("Serial port is not open")

        with self._lock:
            try:
                self._serial.write((text + "\n").encode('utf-8'))
                self._serial.flush()
                logger.debug("Sent data: %s", text)
            except serial.SerialException as e:
                logger.error("Error sending data: %s", str(e))
                raise TransportRuntimeError(f"Error sending data: {str(e)}") from e

    def close(self) -> None:
        if self._closed or self._stop_event.is_set():
            return
        logger.debug("Disconnecting from device")
        self._open = False
        self._stop_event.set()
        # Joining the reader can take up to the port timeout
        future = self._loop.run_in_executor(None, self._shutdown)
        future.add_done_callback(self._on_shutdown_done)

    def _on_shutdown_done(self, future) -> None:
        if not future.cancelled() and future.exception() is not None:
            logger.warning("Error shutting down serial port: %s", str(future.exception()))
        self._fire_close()

    def _shutdown(self) -> None:
        self._stop_event.set()
        if (self._reading_thread and self._reading_thread.is_alive()
                and self._reading_thread is not threading.current_thread()):
            self._reading_thread.join(timeout=1.0)

        if self._serial and self._serial.is_open:
            try:
                self._serial.close()
            except serial.SerialException as e:
                logger.warning("Error closing serial port: %s", str(e))

        self._serial = None
        self._data_buffer = ""

    def _read_thread(self) -> None:
        """
        Background thread that reads data from the serial port.
        """
        logger.debug("Serial read thread started")

        while not self._stop_event.is_set():
            if not self._serial or not self._serial.is_open:
                logger.warning("Serial port closed unexpectedly")
                break

            try:
                # Blocks for at most the port timeout
                data = self._serial.read(self._serial.in_waiting or 1)
                if data:
                    self._process_incoming_data(data.decode('utf-8', errors='replace'))
            except serial.SerialException as e:
                if not self._stop_event.is_set():
                    logger.error("Serial read error: %s", str(e))
                    self._loop.call_soon_threadsafe(
                        self._fire_error, TransportRuntimeError(f"Serial read error: {str(e)}"))
                break

        logger.debug("Serial read thread stopped")
        if not self._stop_event.is_set():
            self._loop.call_soon_threadsafe(self._on_reader_exit)

    def _on_reader_exit(self) -> None:
        self.close()

    def _process_incoming_data(self, data: str) -> None:
        """
        Buffer partial frames and hand every complete line to the loop.

        Args:
            data: Data received from the serial port
        """
        self._data_buffer += data

        while '\n' in self._data_buffer:
            line, self._data_buffer = self._data_buffer.split('\n', 1)

            # Skip empty lines
            if not line.strip():
                continue

            self._loop.call_soon_threadsafe(self._fire_message, line)

def create_transport(url: str, loop, open_timeout: Optional[float] = None) -> Transport:
    """
    Build the transport matching the URL scheme.

    ``ws://`` and ``wss://`` use WebSockets; ``serial://<port>?baudrate=N``
    uses a serial port, where ``<port>`` may be ``auto``.

    Raises:
        TransportOpenError: If the scheme is not supported
    """
    parsed = urlparse(url)
    scheme = parsed.scheme.lower()

    if scheme in ("ws", "wss"):
        return WebSocketTransport(url, loop, open_timeout=open_timeout)

    if scheme == "serial":
        query = parse_qs(parsed.query)
        try:
            baudrate = int(query["baudrate"][0]) if "baudrate" in query else None
        except ValueError as e:
            raise TransportOpenError(f"Invalid baudrate in {url}") from e
        return SerialTransport(url, loop, port=parsed.netloc + parsed.path, baudrate=baudrate)

    raise TransportOpenError(f"Unsupported endpoint scheme: {url!r}")
