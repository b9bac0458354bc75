"""
Custom exception classes for PaceFlow.

This module defines the exception hierarchy used throughout the PaceFlow
package. Codec and input failures raised inside the service layer are
converted into ``err`` strings on results; lifecycle and protocol faults are
raised to the caller of the dispatcher.
"""

from typing import Optional, Any, Dict


class PaceflowError(Exception):
    """
    Base exception for all PaceFlow errors.

    All custom exceptions in this package should inherit from this class.
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} (details: {self.details})"
        return self.message


class ConfigurationError(PaceflowError):
    """
    Raised when there are configuration-related errors.

    Examples:
    - Invalid worker mode
    - Unknown multiprocessing start method
    """
    pass


class ValidationError(PaceflowError):
    """
    Raised when raw decoded structures cannot be turned into the canonical model.

    Examples:
    - Missing creator identity
    - Record without timestamp
    - Records out of time order
    """
    pass


class DecodeError(PaceflowError):
    """
    Raised when input bytes cannot be decoded.

    Examples:
    - Corrupted FIT file
    - Malformed GPX/TCX XML
    """
    pass


class UnsupportedFileTypeError(DecodeError):
    """Raised when the input or target file type is not FIT, GPX or TCX."""
    pass


class EncodeError(PaceflowError):
    """Raised when activities cannot be encoded into the target format."""
    pass


class EncodeSpecificationError(EncodeError):
    """
    Raised when EncodeSpecifications are inconsistent with the activities.

    Examples:
    - Sport labels count does not match session count
    - Marker out of range of the session records
    - Unknown manufacturer for FIT target
    """
    pass


class RegressionError(PaceflowError):
    """Raised on degenerate linear regression input."""
    pass


class DispatcherError(PaceflowError):
    """Base class for service dispatcher failures."""
    pass


class ServiceUnavailableError(DispatcherError):
    """
    Raised when a request reaches a dispatcher that cannot serve it.

    Examples:
    - Request issued after shutdown
    - Codec worker failed to initialize
    """
    pass


class ProtocolError(DispatcherError):
    """
    Raised when the codec worker returns a malformed, missing or
    mis-correlated response.
    """
    pass


# Convenience functions for creating common exceptions

def encode_spec_error(message: str, **details) -> EncodeSpecificationError:
    """Create an encode specification error with details."""
    return EncodeSpecificationError(message, details)


def protocol_error(message: str, **details) -> ProtocolError:
    """Create a protocol error with details."""
    return ProtocolError(message, details)


def service_unavailable(message: str, **details) -> ServiceUnavailableError:
    """Create a service unavailable error with details."""
    return ServiceUnavailableError(message, details)
