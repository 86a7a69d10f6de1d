from flask import Blueprint, request, jsonify
from photocanto.services.data_service import data_service, RECORD_TYPES

user_bp = Blueprint('user', __name__, url_prefix='/api/users/<user_id>')

HISTORY_DEFAULT_LIMIT = 50
HISTORY_MAX_LIMIT = 200


def _fail(message, status):
    return jsonify({"success": False, "error": message}), status


@user_bp.route('/profile', methods=['GET'])
def get_profile(user_id):
    return jsonify({"success": True, "data": data_service.load_profile(user_id)})


@user_bp.route('/profile', methods=['PUT', 'POST'])
def update_profile(user_id):
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return _fail("Request body must be a JSON object", 400)
    try:
        profile = data_service.update_profile(user_id, data)
    except ValueError as e:
        return _fail(str(e), 400)
    return jsonify({"success": True, "data": profile})


@user_bp.route('/profile', methods=['DELETE'])
def delete_profile(user_id):
    if not data_service.delete_profile(user_id):
        return _fail("Profile not found", 404)
    return jsonify({"success": True, "data": {"userId": user_id}})


@user_bp.route('/history', methods=['GET'])
def history(user_id):
    try:
        limit = int(request.args.get('limit', HISTORY_DEFAULT_LIMIT))
    except ValueError:
        return _fail("limit must be an integer", 400)
    limit = max(1, min(HISTORY_MAX_LIMIT, limit))
    record_type = (request.args.get('type') or '').strip() or None
    if record_type and record_type not in RECORD_TYPES:
        return _fail(f"type must be one of: {', '.join(RECORD_TYPES)}", 400)
    records = data_service.load_history(user_id, limit=limit, record_type=record_type)
    return jsonify({"success": True, "data": records, "count": len(records)})


@user_bp.route('/history/<record_id>', methods=['GET'])
def history_item(user_id, record_id):
    record = data_service.get_record(user_id, record_id)
    if record is None:
        return _fail("Record not found", 404)
    return jsonify({"success": True, "data": record})


@user_bp.route('/history/<record_id>', methods=['DELETE'])
def history_delete(user_id, record_id):
    if not data_service.delete_record(user_id, record_id):
        return _fail("Record not found", 404)
    return jsonify({"success": True, "data": {"deletedId": record_id}})


@user_bp.route('/stats', methods=['GET'])
def stats(user_id):
    data = data_service.load_stats(user_id)
    data.pop("totalScore", None)
    return jsonify({"success": True, "data": data})


@user_bp.route('/achievements', methods=['GET'])
def achievements(user_id):
    return jsonify({
        "success": True,
        "data": {
            "unlocked": data_service.load_achievements(user_id),
            "catalogue": data_service.achievement_catalogue(user_id),
        },
    })
