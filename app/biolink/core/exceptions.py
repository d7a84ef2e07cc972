"""
Custom exceptions for the biosignal link client.
"""

class BioLinkError(Exception):
    """Base exception for all link-related errors."""
    pass

class CommunicationError(BioLinkError):
    """Exception raised for errors in the device communication."""
    pass

class TransportOpenError(CommunicationError):
    """Exception raised when the transport cannot be opened."""
    pass

class TransportRuntimeError(CommunicationError):
    """Exception raised when an open transport fails."""
    pass

class TransportClosed(CommunicationError):
    """Exception raised when the transport is closed."""
    pass

class ProtocolError(CommunicationError):
    """Exception raised for protocol-related errors."""
    pass

class DecodeError(ProtocolError):
    """Exception raised when an inbound frame cannot be decoded."""
    pass

class CommandRejected(CommunicationError):
    """Raised internally when a command is sent while not connected."""
    pass
