"""
Implementation of the JSON protocol spoken between the application and the sensor device.
"""
import json
import math
import numbers
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Any, Optional, Union, List

from biolink.core.exceptions import DecodeError, ProtocolError


class MessageType:
    """Message types for protocol messages."""
    SIGNAL_DATA = "signal_data"  # Sensor data from device to app
    CONTROL = "control"          # Command from app to device

class SignalKind(Enum):
    """Biosignal channels carried by a signal_data frame."""
    PPG = "PPG"
    ECG = "ECG"

class CommandType(Enum):
    """Control commands understood by the device."""
    START_ACQUISITION = "start_acquisition"
    STOP_ACQUISITION = "stop_acquisition"
    CALIBRATE = "calibrate"

# Payload field carrying each channel, in emission order
CHANNEL_FIELDS = (
    ("ppg_value", SignalKind.PPG),
    ("ecg_value", SignalKind.ECG),
)

@dataclass(frozen=True)
class SignalSample:
    """One decoded, timestamped biosignal reading."""
    timestamp: int
    kind: SignalKind
    value: float
    quality: float

@dataclass(frozen=True)
class ControlCommand:
    """Outbound control command."""
    command: CommandType
    parameters: Optional[Dict[str, Any]] = None

    @classmethod
    def create(cls, command: Union[str, CommandType],
               parameters: Optional[Dict[str, Any]] = None) -> "ControlCommand":
        """
        Build a command from its wire name or enum value.

        Raises:
            ProtocolError: If the command name or parameters are invalid
        """
        if not isinstance(command, CommandType):
            try:
                command = CommandType(command)
            except ValueError:
                raise ProtocolError(f"Unknown command: {command!r}") from None
        if parameters is not None and not isinstance(parameters, dict):
            raise ProtocolError("Command parameters must be a dictionary")
        return cls(command, parameters)

    def to_message(self) -> Dict[str, Any]:
        """Return the wire representation of the command."""
        return Protocol.create_command(self.command.value, self.parameters)

def _is_number(value: Any) -> bool:
    # bool is an int subclass but never a valid reading
    if not isinstance(value, numbers.Real) or isinstance(value, bool):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        # Integers beyond the float range
        return False

class Protocol:
    """
    Implements the communication protocol between the application and the device.

    This class handles message formatting, validation, and parsing.
    """

    @staticmethod
    def create_command(command: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Create a control message.

        Args:
            command: Command name
            params: Command parameters, omitted from the message when None

        Returns:
            Dict: Control message
        """
        message = {
            "type": MessageType.CONTROL,
            "command": command,
        }
        if params is not None:
            message["parameters"] = params
        return message

    @staticmethod
    def create_signal_message(timestamp: int, sample_rate: float, quality: float,
                              ppg_value: Optional[float] = None,
                              ecg_value: Optional[float] = None) -> Dict[str, Any]:
        """
        Create a signal_data message as sent by the device.

        Used by simulators and tests.
        """
        payload = {
            "timestamp": timestamp,
            "sample_rate": sample_rate,
            "quality": quality,
        }
        if ppg_value is not None:
            payload["ppg_value"] = ppg_value
        if ecg_value is not None:
            payload["ecg_value"] = ecg_value
        return {"type": MessageType.SIGNAL_DATA, "payload": payload}

    @staticmethod
    def encode_message(message: Dict[str, Any]) -> str:
        """
        Encode a message to JSON string.

        Args:
            message: Message to encode

        Returns:
            str: JSON string
        """
        return json.dumps(message)

    @staticmethod
    def decode_message(raw: Union[str, bytes, Dict[str, Any]]) -> Dict[str, Any]:
        """
        Decode a JSON frame to a message.

        Args:
            raw: JSON text, UTF-8 bytes or an already parsed message

        Returns:
            Dict: Decoded message

        Raises:
            DecodeError: If the frame cannot be decoded
        """
        if isinstance(raw, dict):
            return raw
        if isinstance(raw, (bytes, bytearray)):
            try:
                raw = raw.decode("utf-8")
            except UnicodeDecodeError as e:
                raise DecodeError(f"Invalid UTF-8: {e}") from e
        if not isinstance(raw, str):
            raise DecodeError(f"Unsupported frame type: {type(raw).__name__}")
        if not raw.strip():
            raise DecodeError("Empty message")
        try:
            message = json.loads(raw)
        except (ValueError, RecursionError) as e:
            raise DecodeError(f"Invalid JSON: {e}") from e
        if not isinstance(message, dict):
            raise DecodeError("Message must be a JSON object")
        return message

    @staticmethod
    def validate_signal_message(message: Dict[str, Any]) -> Dict[str, Any]:
        """
        Validate a signal_data message.

        Args:
            message: Decoded message

        Returns:
            Dict: The validated payload

        Raises:
            DecodeError: If the message is structurally invalid
        """
        if message.get("type") != MessageType.SIGNAL_DATA:
            raise DecodeError(f"Unsupported message type: {message.get('type')!r}")

        payload = message.get("payload")
        if not isinstance(payload, dict):
            raise DecodeError("Signal message missing 'payload' object")

        for field in ("timestamp", "sample_rate", "quality"):
            if field not in payload:
                raise DecodeError(f"Signal payload missing '{field}' field")
            if not _is_number(payload[field]):
                raise DecodeError(f"Signal payload '{field}' field must be a number")

        if not 0.0 <= payload["quality"] <= 1.0:
            raise DecodeError(f"Signal quality out of range: {payload['quality']}")

        for field, _ in CHANNEL_FIELDS:
            value = payload.get(field)
            if value is not None and not _is_number(value):
                raise DecodeError(f"Signal payload '{field}' field must be a number")

        return payload

    @staticmethod
    def decode_frame(raw: Union[str, bytes, Dict[str, Any]]) -> List[SignalSample]:
        """
        Decode one inbound frame into zero, one or two samples.

        A PPG sample is produced when ``ppg_value`` is present, then an ECG
        sample when ``ecg_value`` is present. Both share the frame's
        timestamp and quality.

        Raises:
            DecodeError: If the frame is malformed
        """
        payload = Protocol.validate_signal_message(Protocol.decode_message(raw))
        timestamp = int(payload["timestamp"])
        quality = float(payload["quality"])

        samples = []
        for field, kind in CHANNEL_FIELDS:
            value = payload.get(field)
            if value is None:
                continue
            samples.append(SignalSample(
                timestamp=timestamp,
                kind=kind,
                value=float(value),
                quality=quality,
            ))
        return samples

    @staticmethod
    def validate_command(command: Dict[str, Any]) -> bool:
        """
        Validate a control message.

        Args:
            command: Control message to validate

        Returns:
            bool: True if valid

        Raises:
            ProtocolError: If command is invalid
        """
        if not isinstance(command, dict):
            raise ProtocolError("Command must be a dictionary")

        if command.get("type") != MessageType.CONTROL:
            raise ProtocolError("Command 'type' field must be 'control'")

        if command.get("command") not in [c.value for c in CommandType]:
            raise ProtocolError(f"Invalid command: {command.get('command')!r}")

        if "parameters" in command and not isinstance(command["parameters"], dict):
            raise ProtocolError("Command 'parameters' field must be a dictionary")

        return True
