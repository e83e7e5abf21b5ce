#!/usr/bin/env python3
"""
PatchPilot
Query, compare and check patch state of inventory assets over WinRM and SSH.
"""

import argparse
import logging
import sys

from inventory import Inventory, load_dotenv

load_dotenv()

from connectors.base import AuthenticationError, ConnectionError, PatchPilotError
from patching import executor_for, query_for

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


class CommandLineError(PatchPilotError):
    """Invalid command-line input, such as an unknown asset"""


def find_asset(inventory, hostname):
    asset = inventory.find(hostname)
    if asset is None:
        raise CommandLineError(f"Asset '{hostname}' not found in inventory")
    if asset.ecosystem is None:
        raise CommandLineError(f"Unsupported OS for {hostname}: {asset.os}")
    return asset


def cmd_test(inventory, args):
    """Connect and run ``hostname`` to prove credentials and transport work"""
    asset = find_asset(inventory, args.host)
    print(f"Connecting to {asset.hostname} ({asset.ip})...")
    print(f"  OS: {asset.os}")
    print(f"  Credential: {asset.credential_ref}")

    with inventory.connection_for(asset) as conn:
        result = conn.execute('hostname')

    print("\nResult:")
    print(f"  stdout: {result.stdout.strip()}")
    if result.stderr.strip():
        print(f"  stderr: {result.stderr.strip()}")
    print(f"  exit_code: {result.exit_code}")
    print("\nConnection test successful!" if result.success else "\nConnection test failed")
    return 0 if result.success else 1


def cmd_summary(inventory, args):
    if not args.host:
        print(inventory.summary())
        return 0

    asset = find_asset(inventory, args.host)
    with inventory.connection_for(asset) as conn:
        summary = query_for(conn, asset.ecosystem).summary()

    print(f"{asset}")
    print(summary)
    return 0


def cmd_compare(inventory, args):
    first = find_asset(inventory, args.first)
    second = find_asset(inventory, args.second)
    if first.is_windows != second.is_windows:
        raise CommandLineError('Cannot compare Windows and Linux assets')

    with inventory.connection_for(first) as conn1, inventory.connection_for(second) as conn2:
        comparison = query_for(conn1, first.ecosystem).compare_with(query_for(conn2, second.ecosystem))

    print(f"Comparing {first.hostname} with {second.hostname}")
    print(f"  Common: {len(comparison.common)}")
    print(f"  Only on {first.hostname}: {len(comparison.only_self)}")
    for key in comparison.only_self:
        print(f"    - {key}")
    print(f"  Only on {second.hostname}: {len(comparison.only_other)}")
    for key in comparison.only_other:
        print(f"    - {key}")
    return 0


def cmd_reboot_status(inventory, args):
    asset = find_asset(inventory, args.host)
    with inventory.connection_for(asset) as conn:
        executor = executor_for(conn, asset.ecosystem)
        if asset.is_windows:
            signals = executor.reboot_signals()
            required = signals.pending
            details = signals.to_dict()
        else:
            required = executor.reboot_required()
            details = {}

    print(f"{asset.hostname}: {'reboot required' if required else 'no reboot pending'}")
    for name, value in details.items():
        print(f"  {name}: {value}")
    if asset.deep_freeze:
        print("  Deep Freeze: enabled (manual reboots are refused)")
    return 0


def build_parser():
    parser = argparse.ArgumentParser(
        description='PatchPilot - Query and compare patch state across Windows and Linux assets',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Check connectivity and credentials for one asset
  python3 patch_pilot.py test dc01

  # Inventory overview, or patch summary of one asset
  python3 patch_pilot.py summary
  python3 patch_pilot.py summary web01

  # Compare a Deep Freeze endpoint against a control endpoint
  python3 patch_pilot.py compare lab-pc01 lab-pc02

  # Check pending reboot markers
  python3 patch_pilot.py reboot-status dc01
        """
    )
    parser.add_argument(
        '-i', '--inventory',
        help='Path to inventory JSON (default: $PATCHPILOT_INVENTORY or config/inventory.json)'
    )
    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Enable verbose logging'
    )

    subparsers = parser.add_subparsers(dest='command', required=True)

    test_parser = subparsers.add_parser('test', help='Test connectivity to an asset')
    test_parser.add_argument('host', help='Asset hostname from the inventory')
    test_parser.set_defaults(func=cmd_test)

    summary_parser = subparsers.add_parser('summary', help='Inventory or asset patch summary')
    summary_parser.add_argument('host', nargs='?', help='Asset hostname (omit for the whole inventory)')
    summary_parser.set_defaults(func=cmd_summary)

    compare_parser = subparsers.add_parser('compare', help='Compare installed updates/packages of two assets')
    compare_parser.add_argument('first', help='First asset hostname')
    compare_parser.add_argument('second', help='Second asset hostname')
    compare_parser.set_defaults(func=cmd_compare)

    reboot_parser = subparsers.add_parser('reboot-status', help='Check whether an asset needs a reboot')
    reboot_parser.add_argument('host', help='Asset hostname from the inventory')
    reboot_parser.set_defaults(func=cmd_reboot_status)

    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        inventory = Inventory.load(args.inventory)
        return args.func(inventory, args)
    except AuthenticationError as e:
        print(f"Authentication failed: {e}")
    except ConnectionError as e:
        print(f"Connection failed: {e}")
    except PatchPilotError as e:
        print(f"Error: {e}")
    return 1


if __name__ == '__main__':
    sys.exit(main())
