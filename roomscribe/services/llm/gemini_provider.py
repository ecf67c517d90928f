"""Gemini provider over the generateContent REST endpoint."""
from __future__ import annotations

from roomscribe.services.llm.base import BaseLLMProvider, LLMProviderError

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com"


class GeminiProvider(BaseLLMProvider):
    def __init__(self, api_key: str, model: str, base_url: str = GEMINI_BASE_URL) -> None:
        super().__init__(logger_name="roomscribe.llm.gemini")
        self._api_key = api_key
        self._model = model if model.startswith("models/") else f"models/{model}"
        self._base_url = base_url.rstrip("/")

    def _call_api(
        self,
        prompt: str,
        temperature: float = 0.2,
        timeout: int = 120,
        system_prompt: str | None = None,
        json_mode: bool = False,
    ) -> str:
        """Gemini has no separate system role on this endpoint, so the system prompt is prepended."""
        text = f"{system_prompt}\n\n{prompt}" if system_prompt else prompt
        generation_config = {"temperature": temperature, "maxOutputTokens": 2048}
        if json_mode:
            generation_config["responseMimeType"] = "application/json"

        data = self._post_json(
            "Gemini",
            f"{self._base_url}/v1beta/{self._model}:generateContent",
            {
                "contents": [{"parts": [{"text": text}]}],
                "generationConfig": generation_config,
            },
            timeout,
            params={"key": self._api_key},
        )
        candidates = data.get("candidates") or []
        if not candidates:
            raise LLMProviderError("Gemini response missing candidates")
        parts = candidates[0].get("content", {}).get("parts") or []
        if not parts:
            raise LLMProviderError("Gemini response missing parts")
        return "".join(part.get("text", "") for part in parts).strip()
