"""Drive the connection supervisor from an asyncio application."""

import asyncio

from tunlink import ClientConfig, ConnectionSupervisor, TunLinkEvents


async def main():
    def on_connect(config):
        print(f"\n🌍 Connected to {config.server_address}")

    def on_disconnect(reason):
        print(f"❌ Disconnected: {reason}")

    def on_reconnect(attempt):
        print(f"🔄 Reconnecting... (attempt {attempt})")

    def on_status(status):
        print(f"📊 Status: {status}")

    events = TunLinkEvents(
        on_connect=on_connect,
        on_disconnect=on_disconnect,
        on_reconnect=on_reconnect,
        on_status=on_status,
    )

    supervisor = ConnectionSupervisor(events)
    supervisor.reconnect.set_interval(3)

    config = ClientConfig(
        server_address="localhost:8024",
        verify_key="YOUR_VERIFY_KEY",
        connection_type="tcp",
    )

    if not supervisor.start_async(config):
        print("Start rejected")
        return

    # Keep running
    try:
        await asyncio.Event().wait()
    except asyncio.CancelledError:
        await supervisor.aclose()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nStopped.")
