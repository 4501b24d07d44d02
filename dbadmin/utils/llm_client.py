"""
Reasoning-service client: Gemini through google-genai, other models through Ollama
"""

from typing import List, Optional

import requests
from google import genai
from google.genai import types

from .logger import get_logger

logger = get_logger(__name__)


class ReasoningClient:
    """Send a prompt to the primary model, retrying once with the fallback model"""

    def __init__(self, settings=None, genai_client=None):
        if settings is None:
            from ..config import load_settings
            settings = load_settings()
        self.settings = settings.llm
        self._genai_client = genai_client

    @property
    def models(self) -> List[str]:
        models = [self.settings.primary_model]
        if self.settings.fallback_model and self.settings.fallback_model != self.settings.primary_model:
            models.append(self.settings.fallback_model)
        return models

    def _client(self):
        if self._genai_client is None:
            if not self.settings.api_key:
                raise RuntimeError("GEMINI_API is not set")
            # google-genai takes its HTTP timeout in milliseconds
            self._genai_client = genai.Client(
                api_key=self.settings.api_key,
                http_options=types.HttpOptions(timeout=self.settings.request_timeout * 1000),
            )
        return self._genai_client

    def generate(self, prompt: str) -> str:
        """Return the model's text for a prompt"""
        last_error: Optional[Exception] = None
        for model_name in self.models:
            try:
                return self._generate_with_model(prompt=prompt, model_name=model_name)
            except Exception as e:
                logger.warning(f"Model {model_name} failed: {e}")
                last_error = e
        raise RuntimeError(f"All models failed: {last_error}")

    def _generate_with_model(self, *, prompt: str, model_name: str) -> str:
        """Generate text using the specified model (Gemini or Ollama)"""
        if 'gemini' in model_name:
            resp = self._client().models.generate_content(model=model_name, contents=prompt)
            return getattr(resp, 'text', None) or str(resp)

        r = requests.post(f"{self.settings.ollama_base_url}/api/generate", json={
            "model": model_name,
            "prompt": prompt,
            "stream": False
        }, timeout=self.settings.request_timeout)
        r.raise_for_status()
        # Ollama returns {'response': '...'}
        return r.json().get('response', '')
