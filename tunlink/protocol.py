"""TunLink handshake and keepalive protocol."""

import hashlib
import json
import uuid
from enum import Enum
from typing import Any, Dict, Optional

from tunlink.errors import AuthenticationError, HandshakeError
from tunlink.version import get_version


class MessageType(str, Enum):
    """Message types in the TunLink protocol."""

    HELLO = "hello"
    SERVER_HELLO = "server_hello"
    PING = "ping"
    PONG = "pong"


class ServerHelloStatus(str, Enum):
    """Server hello response statuses."""

    SUCCESS = "success"
    AUTH_FAILED = "auth_failed"
    VERSION_MISMATCH = "version_mismatch"
    ERROR = "error"


def verify_token(verify_key: str) -> str:
    """Derive the token presented to the server from a verification key."""
    return hashlib.sha256(verify_key.encode("utf-8")).hexdigest()


def create_client_hello(
    verify_key: str, config_path: Optional[str] = None
) -> Dict[str, Any]:
    """Create a new client hello message."""
    hello: Dict[str, Any] = {
        "type": MessageType.HELLO.value,
        "id": str(uuid.uuid4()),
        "version": get_version(),
        "verify": verify_token(verify_key),
    }

    if config_path:
        hello["config_path"] = config_path

    return hello


def create_message(msg_type: MessageType, data: Optional[Any] = None) -> Dict[str, Any]:
    """Create a protocol message."""
    message: Dict[str, Any] = {"type": msg_type.value}

    if data is not None:
        message["data"] = data

    return message


def check_server_hello(hello: Dict[str, Any]) -> None:
    """Raise if the server refused the connection."""
    if hello.get("type") != MessageType.SERVER_HELLO.value:
        raise HandshakeError(f"Unexpected handshake message: {hello.get('type')}")

    status = hello.get("status")
    if status == ServerHelloStatus.SUCCESS.value:
        return

    error = hello.get("error") or f"Server hello failed: {status}"
    if status == ServerHelloStatus.AUTH_FAILED.value:
        raise AuthenticationError(error)
    raise HandshakeError(error)


def encode_message(message: Dict[str, Any]) -> str:
    """Encode message to JSON."""
    return json.dumps(message)


def decode_message(data: str) -> Dict[str, Any]:
    """Decode message from JSON."""
    message = json.loads(data)
    if not isinstance(message, dict):
        raise HandshakeError("Malformed message")
    return message
