"""Pytest configuration and fixtures."""

import asyncio
import json
from typing import List, Optional

import pytest
import pytest_asyncio

from tunlink import ClientConfig, ConnectionSupervisor
from tunlink.protocol import verify_token
from tunlink.transport import Session, Transport


class FakeSession(Session):
    """Session whose drop is triggered by the test."""

    def __init__(self):
        self.dropped = asyncio.Event()
        self.reason: Optional[str] = None
        self.closed = False

    def drop(self, reason: str = "Connection reset by peer") -> None:
        self.reason = reason
        self.dropped.set()

    async def wait_closed(self) -> Optional[str]:
        await self.dropped.wait()
        return self.reason

    async def close(self) -> None:
        self.closed = True


class FakeTransport(Transport):
    """Transport that succeeds or fails on demand and records attempts."""

    def __init__(self):
        self.outcomes: List[bool] = []
        self.delay = 0.0
        self.attempts: List[float] = []
        self.configs: List[ClientConfig] = []
        self.sessions: List[FakeSession] = []

    async def connect(self, config: ClientConfig) -> Session:
        self.attempts.append(asyncio.get_running_loop().time())
        self.configs.append(config)
        if self.delay:
            await asyncio.sleep(self.delay)

        ok = self.outcomes.pop(0) if self.outcomes else True
        if not ok:
            raise ConnectionRefusedError("Connection refused")

        session = FakeSession()
        self.sessions.append(session)
        return session

    @property
    def session(self) -> FakeSession:
        return self.sessions[-1]


class HandshakeServer:
    """Local TCP server speaking the TunLink handshake."""

    def __init__(self, verify_key: str = "secret"):
        self.token = verify_token(verify_key)
        self.hellos: List[dict] = []
        self.received: List[dict] = []
        self.writers: List[asyncio.StreamWriter] = []
        self.server: Optional[asyncio.AbstractServer] = None
        self.port = 0

    @property
    def address(self) -> str:
        return f"127.0.0.1:{self.port}"

    async def start(self) -> None:
        self.server = await asyncio.start_server(self._handle, "127.0.0.1", 0)
        self.port = self.server.sockets[0].getsockname()[1]

    async def send_all(self, message: dict) -> None:
        for writer in self.writers:
            writer.write((json.dumps(message) + "\n").encode())
            await writer.drain()

    def drop_all(self) -> None:
        for writer in self.writers:
            writer.close()
        self.writers.clear()

    async def stop(self) -> None:
        self.drop_all()
        self.server.close()
        await self.server.wait_closed()

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        line = await reader.readline()
        if not line:
            writer.close()
            return

        hello = json.loads(line)
        self.hellos.append(hello)
        status = "success" if hello.get("verify") == self.token else "auth_failed"
        writer.write((json.dumps({"type": "server_hello", "status": status}) + "\n").encode())
        await writer.drain()
        if status != "success":
            writer.close()
            return

        self.writers.append(writer)
        try:
            while True:
                line = await reader.readline()
                if not line:
                    break
                self.received.append(json.loads(line))
        except ConnectionError:
            pass
        writer.close()


async def wait_until(predicate, timeout: float = 3.0, interval: float = 0.01) -> bool:
    """Poll predicate until it is true or the timeout passes."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            return False
        await asyncio.sleep(interval)
    return True


@pytest.fixture
def transport():
    """Fake transport that connects instantly."""
    return FakeTransport()


@pytest.fixture
def config():
    """Default client config for tests."""
    return ClientConfig(server_address="127.0.0.1:8024", verify_key="secret")


@pytest.fixture
def eventually():
    """Async polling helper."""
    return wait_until


@pytest_asyncio.fixture
async def supervisor(transport):
    """Supervisor wired to the fake transport."""
    sup = ConnectionSupervisor(transports={"tcp": transport}, log_level="debug")
    yield sup
    await sup.aclose()


@pytest_asyncio.fixture
async def server():
    """Running local handshake server."""
    srv = HandshakeServer()
    await srv.start()
    yield srv
    await srv.stop()
