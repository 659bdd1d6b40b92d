"""TunLink version information."""

VERSION = "1.0.0"


def get_version() -> str:
    """Return the version string sent during the handshake."""
    return VERSION
