# core/__init__.py
"""
Core package for the biosignal link client.

This package provides the protocol codec, liveness and retry handling, the
transports and the connection manager that ties them together.
"""

from biolink.core.exceptions import (
    BioLinkError, CommunicationError, TransportOpenError, TransportRuntimeError,
    TransportClosed, ProtocolError, DecodeError, CommandRejected
)

from biolink.core.protocol import (
    Protocol, MessageType, SignalKind, SignalSample, CommandType, ControlCommand
)
from biolink.core.events import CallbackList, LinkEvent, LinkEventKind, SubscriberRegistry
from biolink.core.heartbeat import HeartbeatMonitor
from biolink.core.reconnect import ReconnectionPolicy
from biolink.core.transport import (
    Transport, WebSocketTransport, SerialTransport, create_transport
)
from biolink.core.connection import ConnectionManager, ConnectionState, ALLOWED_TRANSITIONS

__all__ = [
    # Exceptions
    'BioLinkError', 'CommunicationError', 'TransportOpenError', 'TransportRuntimeError',
    'TransportClosed', 'ProtocolError', 'DecodeError', 'CommandRejected',

    # Protocol classes
    'Protocol', 'MessageType', 'SignalKind', 'SignalSample', 'CommandType', 'ControlCommand',

    # Events
    'CallbackList', 'LinkEvent', 'LinkEventKind', 'SubscriberRegistry',

    # Core classes
    'HeartbeatMonitor', 'ReconnectionPolicy',
    'Transport', 'WebSocketTransport', 'SerialTransport', 'create_transport',
    'ConnectionManager', 'ConnectionState', 'ALLOWED_TRANSITIONS'
]
