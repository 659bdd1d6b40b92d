"""Exceptions raised by TunLink transports."""


class TunLinkError(Exception):
    """Base class for TunLink errors."""


class TransportError(TunLinkError):
    """The transport could not reach or talk to the server."""


class HandshakeError(TransportError):
    """The server rejected or garbled the handshake."""


class AuthenticationError(HandshakeError):
    """The server rejected the verification key."""
