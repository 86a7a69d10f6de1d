from flask import Blueprint, request, jsonify, current_app
import base64
from photocanto.config import config
from photocanto.services.ai_service import ai_service
from photocanto.services.speech_service import speech_service
from photocanto.services.scoring_service import score_pronunciation
from photocanto.services.data_service import data_service
from photocanto.utils.helpers import _allowed_file

api_bp = Blueprint('api', __name__)


def _fail(message, status):
    return jsonify({"success": False, "error": message}), status


def _user_id():
    return (request.form.get('userId') or '').strip() or None


@api_bp.route('/api/generate', methods=['POST'])
def generate():
    file = request.files.get('image')
    if not file or not file.filename:
        return _fail('No image file provided. Please upload an image with field name "image"', 400)
    if not _allowed_file(file, config.ALLOWED_IMAGE_TYPES):
        return _fail('Only JPG and PNG images are allowed', 400)
    image_bytes = file.read()
    if not image_bytes:
        return _fail('Uploaded image is empty', 400)
    level = (request.form.get('level') or 'beginner').strip()
    user_id = _user_id()

    current_app.logger.info(f'Processing image: {file.filename} (level={level})')
    try:
        story = ai_service.create_story(image_bytes, level=level)
        current_app.logger.info(f"Generated text: {story['cantonese']}")

        audio = speech_service.synthesize(story['cantonese'])
        current_app.logger.info(f'Synthesized audio size: {len(audio)} bytes')
    except Exception as e:
        current_app.logger.error(f'Generate endpoint error: {e}')
        return _fail(str(e) or 'Failed to generate Cantonese content', 500)

    data = {
        "mandarin": story['mandarin'],
        "cantonese": story['cantonese'],
        "text": story['cantonese'],
        "words": story['words'],
        "audioUrl": "data:audio/mp3;base64," + base64.b64encode(audio).decode('ascii'),
        "audioFormat": "mp3",
    }
    if user_id:
        record, unlocked = data_service.record_generation(user_id, story)
        data["recordId"] = record["id"]
        data["newAchievements"] = unlocked
    return jsonify({"success": True, "data": data})


@api_bp.route('/api/evaluate', methods=['POST'])
def evaluate():
    file = request.files.get('audio')
    if not file or not file.filename:
        return _fail('No audio file provided. Please upload an audio file with field name "audio"', 400)
    if not _allowed_file(file, config.ALLOWED_AUDIO_TYPES):
        return _fail('Only MP3, WAV, M4A, and AAC audio files are allowed', 400)
    original_text = (request.form.get('originalText') or '').strip()
    if not original_text:
        return _fail('Missing originalText in request body', 400)
    if len(original_text) > config.MAX_REFERENCE_LENGTH:
        return _fail(f'originalText exceeds {config.MAX_REFERENCE_LENGTH} characters', 400)
    audio_bytes = file.read()
    if not audio_bytes:
        return _fail('Uploaded audio is empty', 400)
    user_id = _user_id()

    current_app.logger.info(f'Evaluating audio: {file.filename}, original text: {original_text}')
    try:
        recognized = speech_service.recognize(audio_bytes, filename=file.filename, mimetype=file.mimetype)
    except Exception as e:
        current_app.logger.error(f'Evaluate endpoint error: {e}')
        return _fail(str(e) or 'Failed to evaluate pronunciation', 500)

    user_text = recognized['text']
    report = score_pronunciation(
        original_text, user_text, recognized['confidence'],
        tone_floor=config.TONE_ACCURACY_FLOOR,
    )
    current_app.logger.info(f"Recognized text: {user_text}, score {report['score']}")

    data = {"originalText": original_text, "userText": user_text}
    data.update(report)
    if user_id:
        record, unlocked = data_service.record_evaluation(user_id, original_text, user_text, report)
        data["recordId"] = record["id"]
        data["newAchievements"] = unlocked
    return jsonify({"success": True, "data": data})
