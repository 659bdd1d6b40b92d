"""Manual exerciser for the TunLink SDK handle.

Usage:
    python examples/exerciser.py [server_address] [verify_key] [connection_type]
"""

import sys
import time

from tunlink import TunLinkSDK


def main():
    server_address = sys.argv[1] if len(sys.argv) > 1 else "127.0.0.1:8080"
    verify_key = sys.argv[2] if len(sys.argv) > 2 else "test_key"
    connection_type = sys.argv[3] if len(sys.argv) > 3 else "tcp"

    print("=== TunLink SDK exerciser ===\n")

    with TunLinkSDK() as sdk:
        print(f"SDK version: {sdk.version()}")
        print(f"Auto-reconnect: {'enabled' if sdk.is_auto_reconnect_enabled() else 'disabled'}")
        print(f"Reconnect interval: {sdk.get_reconnect_interval()}s")

        print("\nSetting reconnect interval to 10s...")
        if sdk.set_reconnect_interval(10):
            print(f"Reconnect interval: {sdk.get_reconnect_interval()}s")
        else:
            print("Failed to set reconnect interval")

        print(f"\nStarting client for {server_address} ({connection_type})...")
        if sdk.start_client_by_verify_key_async(server_address, verify_key, connection_type):
            print("Start accepted")
            print(f"Auto-reconnect: {'enabled' if sdk.is_auto_reconnect_enabled() else 'disabled'}")
        else:
            print("Start rejected")

        print("\nPolling status for 5 seconds...")
        for i in range(5):
            status = "connected" if sdk.get_client_status() else "not connected"
            print(f"  {i + 1}s - {status}")
            time.sleep(1)

        print("\nStopping auto-reconnect...")
        sdk.stop_auto_reconnect()
        print(f"Auto-reconnect: {'enabled' if sdk.is_auto_reconnect_enabled() else 'disabled'}")

        print("\nClosing client...")
        sdk.close_client()

        print("\nRecent logs:")
        print(sdk.logs())

    print("Done.")


if __name__ == "__main__":
    main()
