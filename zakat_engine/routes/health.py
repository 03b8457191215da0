"""Health check endpoint."""
from flask import Blueprint, jsonify

from zakat_engine.constants import STATE_SCHEMA_VERSION

health_bp = Blueprint('health', __name__)


@health_bp.route('/healthz')
def healthz():
    """Return health status of the application."""
    return jsonify({'status': 'ok', 'state_schema_version': STATE_SCHEMA_VERSION})
