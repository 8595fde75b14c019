"""
Google Gemini REST client (generateContent)
"""

import json
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from cropgenius.clients.base import APIClient
from cropgenius.core.errors import ConfigurationError, GeminiAPIError, ParsingError
from cropgenius.core.settings import settings

logger = logging.getLogger(__name__)

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"

_FENCE = re.compile(r"```(?:json)?", re.IGNORECASE)


def extract_json(text: str) -> Any:
    """Parse the first {...} block of a model answer (code fences allowed)"""
    if not text:
        raise ParsingError("Empty AI response")
    cleaned = _FENCE.sub("", text).strip()
    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start == -1 or end <= start:
        raise ParsingError("No JSON object found in AI response")
    try:
        return json.loads(cleaned[start:end + 1])
    except json.JSONDecodeError as e:
        raise ParsingError(f"Invalid JSON in AI response: {e}") from e


def text_part(text: str) -> Dict:
    return {"text": text}


def image_part(image_base64: str, mime_type: str = "image/jpeg") -> Dict:
    return {"inline_data": {"mime_type": mime_type, "data": image_base64}}


class GeminiClient(APIClient):
    service_name = "gemini"
    error_class = GeminiAPIError
    retry_methods = ("GET", "POST")

    def __init__(self, api_key: str = None, model: str = None, **kwargs):
        super().__init__(GEMINI_BASE_URL, **kwargs)
        self.api_key = api_key if api_key is not None else settings.GEMINI_API_KEY
        self.model = model or settings.GEMINI_MODEL

    async def generate(
        self,
        parts: List[Dict],
        generation_config: Optional[Dict] = None,
    ) -> Tuple[str, Dict]:
        """Returns (text of first candidate, usageMetadata)"""
        if not self.api_key:
            raise ConfigurationError("GEMINI_API_KEY not configured")

        payload = {"contents": [{"parts": parts}]}
        if generation_config:
            payload["generationConfig"] = generation_config

        data = await self.post_json(
            f"/models/{self.model}:generateContent",
            payload,
            params={"key": self.api_key},
        )

        try:
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            raise ParsingError("Invalid response format from Gemini API")

        return text, data.get("usageMetadata") or {}

    async def generate_json(self, prompt: str, generation_config: Optional[Dict] = None,
                            extra_parts: Optional[List[Dict]] = None) -> Tuple[Any, Dict]:
        parts = [text_part(prompt)] + list(extra_parts or [])
        text, usage = await self.generate(parts, generation_config)
        return extract_json(text), usage
