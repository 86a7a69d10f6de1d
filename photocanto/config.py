import os
import re
import configparser


class Config:
    def __init__(self, root_path):
        self.root_path = root_path
        self._cfg = configparser.ConfigParser()
        self._cfg.read(os.path.join(root_path, "config.ini"), encoding="utf-8")

        # Flask Config
        self.MAX_CONTENT_LENGTH = 10 * 1024 * 1024  # 10MB max
        self.JSON_AS_ASCII = False
        self.ALLOWED_IMAGE_TYPES = ("jpg", "jpeg", "png")
        self.ALLOWED_AUDIO_TYPES = ("mp3", "wav", "m4a", "aac")
        self.ALLOWED_ORIGINS = self._get("ALLOWED_ORIGINS", "server", "allowed_origins", "*")
        self.LOG_DIR = self._get("LOG_DIR", "server", "log_dir", os.path.join(root_path, "logs"))
        self.PORT = int(self._get("PORT", "server", "port", "3000"))

        # DeepInfra (vision, text, whisper)
        self.DEEPINFRA_API_KEY = self._get("DEEPINFRA_API_KEY", "deepinfra", "api_key", "")
        self.DEEPINFRA_BASE_URL = self._get("DEEPINFRA_BASE_URL", "deepinfra", "base_url", "https://api.deepinfra.com/v1/openai")
        self.VISION_MODEL_ID = self._normalize_model_id(self._get("VISION_MODEL", "deepinfra", "vision_model", "Qwen/Qwen2.5-VL-32B-Instruct"))
        self.TEXT_MODEL_ID = self._normalize_model_id(self._get("TEXT_MODEL", "deepinfra", "text_model", "Qwen/Qwen2.5-72B-Instruct"))
        self.WHISPER_MODEL_ID = self._normalize_model_id(self._get("WHISPER_MODEL", "deepinfra", "whisper_model", "openai/whisper-large-v3"))
        self.WHISPER_URL = self._get("WHISPER_URL", "deepinfra", "whisper_url", "https://api.deepinfra.com/v1/openai/whisper")

        # StepFun TTS Config
        self.STEPFUN_API_KEY = self._get("STEPFUN_API_KEY", "stepfun", "api_key", "")
        self.STEPFUN_API_ENDPOINT = self._get("STEPFUN_API_ENDPOINT", "stepfun", "endpoint", "https://api.stepfun.com/v1")
        self.STEPFUN_MODEL = self._normalize_model_id(self._get("STEPFUN_MODEL", "stepfun", "model", "step-tts-2"))
        self.STEPFUN_VOICE_ID = self._get("STEPFUN_VOICE_ID", "stepfun", "voice_id", "lively-girl")

        self.REQUEST_TIMEOUT = float(self._get("REQUEST_TIMEOUT", "server", "request_timeout", "60"))

        # Data Store
        self.DATABASE_PATH = self._get("DATABASE_PATH", "storage", "database_path", "")
        self.SHARE_TTL_DAYS = int(self._get("SHARE_TTL_DAYS", "storage", "share_ttl_days", "30"))

        # Scoring
        self.TONE_ACCURACY_FLOOR = float(self._get("TONE_ACCURACY_FLOOR", "scoring", "tone_floor", "60"))
        self.MAX_REFERENCE_LENGTH = int(self._get("MAX_REFERENCE_LENGTH", "scoring", "max_reference_length", "200"))

    def _get(self, env_name, section, option, default):
        return os.environ.get(env_name) or self._cfg.get(section, option, fallback=default)

    def _normalize_model_id(self, mid):
        return re.sub(r"\s+", "", str(mid or "").strip())


config = Config(os.getcwd())
