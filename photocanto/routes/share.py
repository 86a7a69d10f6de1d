from flask import Blueprint, request, jsonify
from photocanto.services.data_service import data_service

share_bp = Blueprint('share', __name__)


@share_bp.route('/api/share', methods=['POST'])
def create_share():
    data = request.get_json(silent=True) or {}
    user_id = str(data.get("userId") or "").strip()
    record_id = str(data.get("recordId") or "").strip()
    if not user_id or not record_id:
        return jsonify({"success": False, "error": "userId and recordId are required"}), 400
    share = data_service.create_share(user_id, record_id)
    if share is None:
        return jsonify({"success": False, "error": "Record not found"}), 404
    return jsonify({"success": True, "data": share}), 201


@share_bp.route('/api/share/<share_id>', methods=['GET'])
def get_share(share_id):
    share = data_service.load_share(share_id)
    if share is None:
        return jsonify({"success": False, "error": "Share link not found or expired"}), 404
    return jsonify({"success": True, "data": share})
