import json
import re
from typing import Any, Optional, Protocol
import google.generativeai as genai
from ..common.utils import logger

class TextBackend(Protocol):
    """Anything that turns a prompt into text. Output is untrusted."""

    async def complete(self, prompt: str, temperature: Optional[float] = None) -> str:
        ...

class GeminiAdapter:
    """Generative-text backend backed by the Gemini API."""

    def __init__(self, api_key: str, model_name: str = "gemini-1.5-flash"):
        self.api_key = api_key
        self.model_name = model_name
        self.model = None
        self._initialized = False

    def _ensure_initialized(self):
        """Lazy initialization of Gemini model."""
        if not self._initialized:
            genai.configure(api_key=self.api_key)
            self.model = genai.GenerativeModel(self.model_name)
            self._initialized = True

    async def complete(self, prompt: str, temperature: Optional[float] = None) -> str:
        self._ensure_initialized()

        generation_config = {"max_output_tokens": 1024}
        if temperature is not None:
            generation_config["temperature"] = temperature

        response = await self.model.generate_content_async(
            prompt,
            generation_config=generation_config
        )
        text = response.text or ""
        logger.info(f"Gemini returned {len(text)} characters")
        return text

def strip_code_fences(text: str) -> str:
    """Remove a surrounding ```json fence if the model added one."""
    trimmed = (text or "").strip()
    if trimmed.startswith("```"):
        trimmed = re.sub(r'^```(?:json)?\s*', '', trimmed, flags=re.IGNORECASE)
        trimmed = re.sub(r'```$', '', trimmed)
    return trimmed.strip()

def parse_json_response(text: str) -> Any:
    """Parse a model response as JSON. Raises ValueError when it is not JSON."""
    cleaned = strip_code_fences(text)
    if not cleaned:
        raise ValueError("empty response")
    return json.loads(cleaned)
