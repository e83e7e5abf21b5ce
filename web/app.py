#!/usr/bin/env python3
"""
PatchPilot - REST API
JSON endpoints for inventory, patch state, comparison and guarded patching.
"""

import os
import sys
import logging
from contextlib import contextmanager
from datetime import datetime

from flask import Flask, jsonify, request

# Add parent directory to path to import project modules
PARENT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if PARENT_DIR not in sys.path:
    sys.path.insert(0, PARENT_DIR)

from connectors.base import AuthenticationError, CommandError, ConnectionError, PatchPilotError, UnsupportedAssetError
from inventory import Inventory, InventoryError, load_dotenv
from patching import UnsupportedPackageManagerError, executor_for, query_for
from patching.safety import DestructiveActionDenied, enforce

logger = logging.getLogger(__name__)

load_dotenv()

app = Flask(__name__)

# Comparison lists are truncated in responses; counts are always complete
COMPARE_LIMIT = 100


class ApiError(Exception):
    """Request-level failure carrying its HTTP status"""

    def __init__(self, message: str, status: int = 400):
        super().__init__(message)
        self.message = message
        self.status = status


def get_inventory() -> Inventory:
    inventory = app.config.get('INVENTORY')
    if inventory is None:
        inventory = Inventory.load(app.config.get('INVENTORY_PATH'))
        app.config['INVENTORY'] = inventory
    return inventory


def find_asset(name):
    asset = get_inventory().find(name)
    if asset is None:
        raise ApiError(f"Asset not found: {name}", 404)
    return asset


def require_supported(asset):
    if asset.ecosystem is None:
        raise ApiError(f"Unsupported OS: {asset.os}")


def require_windows(asset):
    if not asset.is_windows:
        raise ApiError(f"Endpoint requires Windows asset, got: {asset.os}")


def require_linux(asset):
    if not asset.is_linux:
        raise ApiError(f"Endpoint requires Linux asset, got: {asset.os}")


@contextmanager
def open_connection(asset):
    """Connected transport for an asset, closed on every exit path"""
    conn = get_inventory().connection_for(asset)
    try:
        conn.connect()
        yield conn
    finally:
        conn.close()


def parse_json_body() -> dict:
    if not request.get_data():
        return {}
    body = request.get_json(force=True, silent=True)
    if not isinstance(body, dict):
        raise ApiError('Invalid JSON in request body')
    return body


def comparison_response(asset1, asset2, comparison, comparison_type):
    return {
        'asset1': asset1.hostname,
        'asset2': asset2.hostname,
        'type': comparison_type,
        'comparison': {
            'common': comparison.common[:COMPARE_LIMIT],
            'only_in_first': comparison.only_self[:COMPARE_LIMIT],
            'only_in_second': comparison.only_other[:COMPARE_LIMIT],
        },
        'summary': {
            'common_count': len(comparison.common),
            'only_first_count': len(comparison.only_self),
            'only_second_count': len(comparison.only_other),
            'identical': comparison.identical,
        },
    }


# =============================================================================
# Error Handlers
# =============================================================================

def error_response(message: str, status: int):
    return jsonify({'error': message}), status


@app.errorhandler(ApiError)
def handle_api_error(e):
    return error_response(e.message, e.status)


@app.errorhandler(DestructiveActionDenied)
def handle_denied(e):
    return error_response(str(e), 409)


@app.errorhandler(AuthenticationError)
def handle_auth_error(e):
    return error_response(f"Authentication failed: {e}", 401)


@app.errorhandler(ConnectionError)
def handle_connection_error(e):
    return error_response(f"Connection failed: {e}", 503)


@app.errorhandler(CommandError)
def handle_command_error(e):
    logger.error(f"Remote command failed: {e}")
    return error_response(f"Command failed: {e}", 500)


@app.errorhandler(UnsupportedAssetError)
@app.errorhandler(UnsupportedPackageManagerError)
def handle_unsupported(e):
    return error_response(str(e), 400)


@app.errorhandler(InventoryError)
def handle_inventory_error(e):
    logger.error(f"Inventory error: {e}")
    return error_response(str(e), 500)


@app.after_request
def add_cors_headers(response):
    response.headers['Access-Control-Allow-Origin'] = '*'
    response.headers['Access-Control-Allow-Methods'] = 'GET, POST, OPTIONS'
    response.headers['Access-Control-Allow-Headers'] = 'Content-Type'
    return response


# =============================================================================
# Inventory Routes
# =============================================================================

@app.route('/api/health')
def health():
    return jsonify({'status': 'ok', 'timestamp': datetime.now().isoformat()})


@app.route('/api/inventory')
def inventory_list():
    assets = [asset.to_dict() for asset in get_inventory()]
    return jsonify({'assets': assets, 'count': len(assets)})


@app.route('/api/assets/<name>')
def asset_detail(name):
    return jsonify(find_asset(name).to_dict())


@app.route('/api/assets/<name>/status')
def asset_status(name):
    """Reachability probe; failures are reported as offline, not as errors"""
    asset = find_asset(name)
    try:
        with open_connection(asset) as conn:
            result = conn.execute('echo test')
        return jsonify({'name': asset.hostname, 'status': 'online' if result.success else 'offline'})
    except PatchPilotError as e:
        logger.warning(f"Status check failed for {asset.hostname}: {e}")
        return jsonify({'name': asset.hostname, 'status': 'offline', 'error': str(e)})


# =============================================================================
# Patch State Routes
# =============================================================================

@app.route('/api/assets/<name>/updates')
def asset_updates(name):
    asset = find_asset(name)
    require_supported(asset)

    with open_connection(asset) as conn:
        query = query_for(conn, asset.ecosystem)

        if asset.is_windows:
            updates = query.installed_updates()
            return jsonify({
                'asset': asset.hostname,
                'os': asset.os,
                'updates': [u.to_dict() for u in updates],
                'summary': {
                    'total': len(updates),
                    'security': sum(1 for u in updates if u.is_security),
                },
            })

        upgradable = query.upgradable()
        return jsonify({
            'asset': asset.hostname,
            'os': asset.os,
            'package_manager': asset.ecosystem,
            'packages': {
                'installed_count': len(query.installed_packages()),
                'upgradable_count': len(upgradable),
                'upgradable': [p.to_dict() for p in upgradable],
            },
        })


@app.route('/api/compare')
def compare_assets():
    name1 = request.args.get('asset1')
    name2 = request.args.get('asset2')
    if not name1 or not name2:
        raise ApiError('Must specify asset1 and asset2')

    asset1 = find_asset(name1)
    asset2 = find_asset(name2)
    require_supported(asset1)
    require_supported(asset2)
    if asset1.is_windows != asset2.is_windows:
        raise ApiError('Cannot compare Windows and Linux assets')

    with open_connection(asset1) as conn1, open_connection(asset2) as conn2:
        comparison = query_for(conn1, asset1.ecosystem).compare_with(query_for(conn2, asset2.ecosystem))

    comparison_type = 'windows_updates' if asset1.is_windows else 'linux_packages'
    return jsonify(comparison_response(asset1, asset2, comparison, comparison_type))


@app.route('/api/assets/<name>/updates/available')
def available_updates(name):
    asset = find_asset(name)
    require_windows(asset)

    with open_connection(asset) as conn:
        executor = executor_for(conn, 'windows')
        updates = executor.available()
        reboot = executor.reboot_required()

    return jsonify({
        'asset': asset.hostname,
        'available_updates': [u.to_dict() for u in updates],
        'summary': {
            'total': len(updates),
            'security': sum(1 for u in updates if u.is_security),
            'downloaded': sum(1 for u in updates if u.downloaded),
        },
        'reboot_pending': reboot,
    })


# =============================================================================
# Patching Routes
# =============================================================================

@app.route('/api/assets/<name>/updates/install', methods=['POST'])
def install_updates(name):
    asset = find_asset(name)
    require_windows(asset)
    enforce(asset, action='update')

    body = parse_json_body()
    kb_ids = body.get('kb_numbers') or None
    if kb_ids is not None and not isinstance(kb_ids, list):
        raise ApiError('kb_numbers must be a list')

    with open_connection(asset) as conn:
        executor = executor_for(conn, 'windows')
        enforce(asset, executor, action='update')
        try:
            result = executor.install(kb_ids)
        except ValueError as e:
            raise ApiError(str(e))

    return jsonify({'asset': asset.hostname, **result.to_dict()})


@app.route('/api/assets/<name>/packages/upgrade', methods=['POST'])
def upgrade_packages(name):
    asset = find_asset(name)
    require_linux(asset)
    enforce(asset, action='upgrade')

    body = parse_json_body()
    packages = body.get('packages') or None
    if packages is not None and not isinstance(packages, list):
        raise ApiError('packages must be a list')
    if packages is not None and not all(isinstance(package, str) for package in packages):
        raise ApiError('packages must be a list of package names')

    with open_connection(asset) as conn:
        executor = executor_for(conn, asset.ecosystem)
        enforce(asset, executor, action='upgrade')
        try:
            result = executor.upgrade(packages) if packages else executor.upgrade_all()
        except ValueError as e:
            raise ApiError(str(e))

    return jsonify({'asset': asset.hostname, **result.to_dict()})


@app.route('/api/assets/<name>/reboot-status')
def reboot_status(name):
    asset = find_asset(name)
    require_supported(asset)

    with open_connection(asset) as conn:
        reboot = executor_for(conn, asset.ecosystem).reboot_required()

    response = {'asset': asset.hostname, 'reboot_required': reboot}
    if asset.deep_freeze:
        response['deep_freeze'] = True
    return jsonify(response)


@app.route('/api/assets/<name>/reboot', methods=['POST'])
def reboot_asset(name):
    asset = find_asset(name)
    require_supported(asset)
    enforce(asset, action='reboot', check_reboot=False)

    with open_connection(asset) as conn:
        request_result = executor_for(conn, asset.ecosystem).reboot()

    return jsonify({'asset': asset.hostname, 'deep_freeze': asset.deep_freeze, **request_result.to_dict()})


if __name__ == '__main__':
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    port = int(os.environ.get('PORT', 5000))
    debug = os.environ.get('DEBUG', 'false').lower() == 'true'
    app.run(host='0.0.0.0', port=port, debug=debug)
