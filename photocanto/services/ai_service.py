import base64
import logging
import concurrent.futures
from openai import OpenAI
from photocanto.config import config
from photocanto.utils.helpers import _extract_json, _normalize_words

logger = logging.getLogger(__name__)

LEVEL_HINTS = {
    "beginner": "句子简短（8到15个字），用日常常用词。",
    "intermediate": "句子中等长度（15到25个字），可以用一些地道俗语。",
    "advanced": "句子可以较长（25到40个字），多用地道粤语表达和俚语。",
}


class AIServiceError(RuntimeError):
    pass


class AIService:
    def __init__(self):
        self._client = None
        self.executor = concurrent.futures.ThreadPoolExecutor(max_workers=3)

    @property
    def client(self):
        if self._client is None:
            if not config.DEEPINFRA_API_KEY:
                raise AIServiceError("DEEPINFRA_API_KEY is not configured")
            self._client = OpenAI(
                base_url=config.DEEPINFRA_BASE_URL,
                api_key=config.DEEPINFRA_API_KEY,
                timeout=config.REQUEST_TIMEOUT,
                max_retries=1,
            )
        return self._client

    def _chat_completion_with_timeout(self, model, messages, timeout_s=60, **kwargs):
        client = self.client
        fut = self.executor.submit(client.chat.completions.create, model=model, messages=messages, **kwargs)
        try:
            return fut.result(timeout=timeout_s)
        except concurrent.futures.TimeoutError:
            # the worker keeps running until the client-side timeout closes the request
            raise AIServiceError(f"model {model} timed out after {timeout_s}s")

    def _reply_text(self, response):
        try:
            content = response.choices[0].message.content
        except (AttributeError, IndexError, TypeError):
            content = None
        content = (content or "").strip()
        if not content:
            raise AIServiceError("empty response from model")
        return content

    def _image_messages(self, image_bytes, prompt):
        encoded_string = base64.b64encode(image_bytes).decode("utf-8")
        return [{
            "role": "user",
            "content": [
                {"type": "image_url", "image_url": {"url": f"data:image/jpeg;base64,{encoded_string}"}},
                {"type": "text", "text": prompt},
            ],
        }]

    def _level_hint(self, level):
        return LEVEL_HINTS.get(str(level or "").strip().lower(), LEVEL_HINTS["beginner"])

    def generate_bilingual(self, image_bytes, level="beginner"):
        """Single vision call returning Mandarin, Cantonese and word annotations."""
        prompt = f"""
        请看这张图片，为学习粤语的学生写一句描述图片场景或物品的句子。
        {self._level_hint(level)}

        只返回一个JSON对象，不要其他解释：
        {{
          "mandarin": "普通话句子",
          "cantonese": "同一意思的地道粤语（广东话）句子，不要用普通话表达",
          "words": [{{"char": "粤语句子里的字或词", "pinyin": "普通话拼音", "jyutping": "粤拼"}}]
        }}
        """
        response = self._chat_completion_with_timeout(
            model=config.VISION_MODEL_ID,
            messages=self._image_messages(image_bytes, prompt),
            timeout_s=config.REQUEST_TIMEOUT,
            max_tokens=600,
            temperature=0.7,
        )
        data = _extract_json(self._reply_text(response))
        if not isinstance(data, dict):
            raise AIServiceError("bilingual response is not a JSON object")
        return self._story_from(data)

    def describe_image(self, image_bytes, level="beginner"):
        """Plain Mandarin description, first half of the fallback pipeline."""
        prompt = f"请用普通话简短描述这张图片中的场景或物品。{self._level_hint(level)}只返回一句话，不需要其他解释。"
        response = self._chat_completion_with_timeout(
            model=config.VISION_MODEL_ID,
            messages=self._image_messages(image_bytes, prompt),
            timeout_s=config.REQUEST_TIMEOUT,
            max_tokens=200,
            temperature=0.7,
        )
        return self._reply_text(response).replace("```", "").strip()

    def translate_to_cantonese(self, mandarin):
        prompt = f"""
        把下面的普通话句子翻译成生活化、地道的粤语（广东话）：
        {mandarin}

        只返回一个JSON对象：
        {{"cantonese": "粤语句子", "words": [{{"char": "字或词", "pinyin": "普通话拼音", "jyutping": "粤拼"}}]}}
        """
        response = self._chat_completion_with_timeout(
            model=config.TEXT_MODEL_ID,
            messages=[{"role": "user", "content": prompt}],
            timeout_s=config.REQUEST_TIMEOUT,
            temperature=0.3,
        )
        data = _extract_json(self._reply_text(response))
        if not isinstance(data, dict):
            raise AIServiceError("translation response is not a JSON object")
        data["mandarin"] = mandarin
        return self._story_from(data)

    def _story_from(self, data):
        mandarin = str(data.get("mandarin") or "").strip()
        cantonese = str(data.get("cantonese") or "").strip()
        if not cantonese:
            raise AIServiceError("model returned no Cantonese text")
        return {
            "mandarin": mandarin,
            "cantonese": cantonese,
            "words": _normalize_words(data.get("words")),
        }

    def create_story(self, image_bytes, level="beginner"):
        """
        Turn a photo into a bilingual sentence.

        Tries the direct bilingual generation first; when that fails, falls
        back to describe-then-translate. Raises AIServiceError carrying both
        causes only when both paths fail.
        """
        try:
            return self.generate_bilingual(image_bytes, level)
        except Exception as primary_err:
            logger.warning("Bilingual generation failed, falling back to describe+translate: %s", primary_err)
            try:
                mandarin = self.describe_image(image_bytes, level)
                return self.translate_to_cantonese(mandarin)
            except Exception as fallback_err:
                logger.error("Fallback pipeline failed: %s", fallback_err)
                raise AIServiceError(
                    f"Failed to generate Cantonese text: {primary_err}; fallback failed: {fallback_err}"
                ) from fallback_err


ai_service = AIService()
