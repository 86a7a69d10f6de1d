import logging
import requests
from photocanto.config import config
from photocanto.utils.helpers import _clamp

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 0.95


class SpeechServiceError(RuntimeError):
    pass


def _response_body(err):
    resp = getattr(err, "response", None)
    if resp is None:
        return None
    try:
        return resp.content.decode("utf-8", errors="replace")[:500]
    except Exception:
        return None


def confidence_from_segments(segments):
    """
    Map Whisper segment log-probabilities onto a 0.5-1.0 confidence.

    avg_logprob is roughly in [-2, 2]; (avg + 2) / 4 stretches that onto 0-1.
    """
    if not isinstance(segments, list) or not segments:
        return DEFAULT_CONFIDENCE
    total = 0.0
    counted = 0
    for seg in segments:
        if not isinstance(seg, dict):
            continue
        try:
            total += float(seg.get("avg_logprob") or 0)
        except (TypeError, ValueError):
            continue
        counted += 1
    if not counted:
        return DEFAULT_CONFIDENCE
    avg = total / counted
    return _clamp((avg + 2) / 4, 0.5, 1.0)


class SpeechService:
    """Cantonese text-to-speech (StepFun) and speech recognition (DeepInfra Whisper)."""

    def synthesize(self, text, voice=None):
        text = (text or "").strip()
        if not text:
            raise SpeechServiceError("Failed to synthesize speech: empty text")
        if not config.STEPFUN_API_KEY:
            raise SpeechServiceError("Failed to synthesize speech: STEPFUN_API_KEY is not configured")
        try:
            resp = requests.post(
                f"{config.STEPFUN_API_ENDPOINT.rstrip('/')}/audio/speech",
                json={
                    "model": config.STEPFUN_MODEL,
                    "input": text,
                    "voice": voice or config.STEPFUN_VOICE_ID,
                    "response_format": "mp3",
                    "speed": 1.0,
                },
                headers={
                    "Authorization": f"Bearer {config.STEPFUN_API_KEY}",
                    "Content-Type": "application/json",
                },
                timeout=config.REQUEST_TIMEOUT,
            )
            resp.raise_for_status()
        except requests.RequestException as e:
            logger.error("StepFun API error: %s", e)
            body = _response_body(e)
            if body:
                logger.error("StepFun API response: %s", body)
            raise SpeechServiceError(f"Failed to synthesize speech: {e}") from e
        audio = resp.content
        if not audio:
            raise SpeechServiceError("Failed to synthesize speech: empty audio from StepFun API")
        return audio

    def recognize(self, audio_bytes, filename="audio.mp3", mimetype="audio/mp3"):
        """
        Transcribe an audio clip.

        Returns:
            {"text": str, "confidence": float}. Silence comes back as an
            empty text with confidence 0 so the caller can still score it.
        """
        if not config.DEEPINFRA_API_KEY:
            raise SpeechServiceError("Failed to recognize speech: DEEPINFRA_API_KEY is not configured")
        try:
            resp = requests.post(
                config.WHISPER_URL,
                files={"audio": (filename or "audio.mp3", audio_bytes, mimetype or "audio/mp3")},
                data={
                    "model": config.WHISPER_MODEL_ID,
                    "language": "zh",
                    "response_format": "verbose_json",
                },
                headers={"Authorization": f"Bearer {config.DEEPINFRA_API_KEY}"},
                timeout=config.REQUEST_TIMEOUT,
            )
            resp.raise_for_status()
            payload = resp.json()
        except requests.RequestException as e:
            logger.error("DeepInfra Whisper API error: %s", e)
            body = _response_body(e)
            if body:
                logger.error("DeepInfra Whisper response: %s", body)
            raise SpeechServiceError(f"Failed to recognize speech: {e}") from e
        except ValueError as e:
            raise SpeechServiceError(f"Failed to recognize speech: invalid response ({e})") from e

        if not isinstance(payload, dict):
            raise SpeechServiceError("Failed to recognize speech: unexpected response format")

        text = str(payload.get("text") or "").strip()
        if not text:
            logger.info("Whisper returned no speech")
            return {"text": "", "confidence": 0.0}

        confidence = confidence_from_segments(payload.get("segments"))
        logger.info("Whisper recognized text: %s... (confidence %.2f)", text[:50], confidence)
        return {"text": text, "confidence": confidence}


speech_service = SpeechService()
