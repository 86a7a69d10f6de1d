from flask import Blueprint, jsonify
from photocanto.utils.helpers import _utc_now, _iso
from photocanto.services.data_service import data_service

main_bp = Blueprint('main', __name__)


@main_bp.route('/health')
def health():
    return jsonify({
        "success": True,
        "message": "Server is running",
        "timestamp": _iso(_utc_now()),
        "storage": data_service.backend.name,
    })
