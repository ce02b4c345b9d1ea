"""Check a WordPress site's Remote Manager plugin from the command line.

Usage: python check_site.py https://example.com API_KEY
"""
import asyncio
import sys

from webcare.services.wp_remote_manager import WPRemoteManagerClient
from webcare.services.wrm_errors import RemoteManagerError


async def main(url: str, api_key: str):
    try:
        client = WPRemoteManagerClient(url, api_key, min_request_interval=0)
    except RemoteManagerError as e:
        print(f"Error: {e.code} {e.message}")
        return 1
    print(f"Testing connection to {client.base_url}...")

    validation = await client.validate_api_key()
    print(f"Key state: {validation.state.value} - {validation.message}")
    if not validation.valid:
        return 1

    try:
        status = await client.fetch_status()
        updates = await client.fetch_updates()
    except RemoteManagerError as e:
        print(f"Error: {e.code} {e.message}")
        return 1

    print(f"WordPress {status.wordpress_version}, PHP {status.php_version}, plugin {status.plugin_version}")
    print(f"SSL: {status.ssl_enabled}, maintenance mode: {status.maintenance_mode}")
    print(f"Updates available: {updates.count}")
    for item in updates.plugins + updates.themes:
        print(f"  {item.type} {item.identifier}: {item.current_version} -> {item.new_version}")
    return 0


if __name__ == "__main__":
    if len(sys.argv) != 3:
        print(__doc__)
        sys.exit(2)
    sys.exit(asyncio.run(main(sys.argv[1], sys.argv[2])))
