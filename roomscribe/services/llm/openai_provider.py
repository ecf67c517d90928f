from __future__ import annotations

from roomscribe.services.llm.base import BaseLLMProvider, LLMProviderError


class OpenAIProvider(BaseLLMProvider):
    """LLM provider for OpenAI and OpenAI-compatible APIs (base_url points at the proxy)."""

    def __init__(self, api_key: str, model: str, base_url: str | None = None) -> None:
        super().__init__(logger_name="roomscribe.llm.openai")
        self._api_key = api_key
        self._model = model
        self._base_url = (base_url or "https://api.openai.com").rstrip("/")

    def _call_api(
        self,
        prompt: str,
        temperature: float = 0.2,
        timeout: int = 120,
        system_prompt: str | None = None,
        json_mode: bool = False,
    ) -> str:
        body = {
            "model": self._model,
            "temperature": temperature,
            "messages": [
                {"role": "system", "content": system_prompt or "You are a helpful assistant."},
                {"role": "user", "content": prompt},
            ],
        }
        if json_mode:
            body["response_format"] = {"type": "json_object"}

        data = self._post_json(
            "OpenAI",
            f"{self._base_url}/v1/chat/completions",
            body,
            timeout,
            headers={"Authorization": f"Bearer {self._api_key}"},
        )
        choices = data.get("choices") or []
        if not choices:
            raise LLMProviderError("OpenAI response missing choices")
        return str(choices[0].get("message", {}).get("content") or "").strip()
