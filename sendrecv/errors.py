"""
Error taxonomy for the signalling client.

Only :class:`TransportError`, :class:`SignallingError`, :class:`EngineError`
(under the default policy) and the negotiation timeouts end a session.  The
remaining kinds are isolated to the operation that raised them.
"""

from __future__ import annotations


class ClientError(RuntimeError):
    """Base class for every error raised by the client."""


class TransportError(ClientError):
    """The signalling channel failed below the protocol level."""


class MalformedMessage(ClientError):
    """An inbound frame could not be decoded into a signalling message."""


class SignallingError(ClientError):
    """The signalling server answered with an explicit ``ERROR`` control word."""


class NegotiationPrecondition(ClientError):
    """Data required to act on an event was missing (e.g. stream caps)."""


class EngineError(ClientError):
    """The media engine reported a pipeline error or rejected a command."""


class EngineUnavailableError(EngineError):
    """Raised when the media engine cannot be materialised due to missing dependencies."""


class NegotiationTimeout(ClientError):
    """A negotiation phase did not complete in time."""


class RegistrationTimeout(NegotiationTimeout):
    """The server never confirmed the session after ``HELLO``."""


class AnswerTimeout(NegotiationTimeout):
    """No SDP answer arrived after the offer was sent."""


class ConfigError(ClientError):
    """Configuration could not be loaded or failed validation."""


class InvalidTransition(ClientError):
    """A state change would move the session backwards."""


class GraphError(ClientError):
    """An operation would corrupt the media graph description."""


__all__ = [
    "AnswerTimeout",
    "ClientError",
    "ConfigError",
    "EngineError",
    "EngineUnavailableError",
    "GraphError",
    "InvalidTransition",
    "MalformedMessage",
    "NegotiationPrecondition",
    "NegotiationTimeout",
    "RegistrationTimeout",
    "SignallingError",
    "TransportError",
]
