from __future__ import annotations

import logging
from urllib.parse import urlparse

import requests

from roomscribe.services.llm.base import BaseLLMProvider

_logger = logging.getLogger("roomscribe.llm.ollama")


def _is_local_url(url: str) -> bool:
    host = urlparse(url).hostname or ""
    return host in ("127.0.0.1", "localhost", "::1", "0.0.0.0")


def check_ollama_reachable(base_url: str = "http://127.0.0.1:11434") -> bool:
    """Probe the Ollama server at boot so a missing daemon shows up in the log early."""
    base_url = base_url.rstrip("/")
    try:
        reachable = requests.get(f"{base_url}/api/tags", timeout=3).status_code == 200
    except requests.RequestException:
        reachable = False

    if reachable:
        _logger.info("Ollama is reachable at %s", base_url)
    else:
        _logger.warning(
            "Ollama not reachable at %s (%s host); summaries will fail until it is up",
            base_url,
            "local" if _is_local_url(base_url) else "remote",
        )
    return reachable


class OllamaProvider(BaseLLMProvider):
    """Local (or LAN) Ollama models through /api/generate."""

    def __init__(self, base_url: str, model: str) -> None:
        super().__init__(logger_name="roomscribe.llm.ollama")
        self._base_url = base_url.rstrip("/")
        self._model = model

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
            "prompt": f"{system_prompt}\n\n{prompt}" if system_prompt else prompt,
            "stream": False,
            "options": {"temperature": temperature},
        }
        if json_mode:
            body["format"] = "json"

        data = self._post_json("Ollama", f"{self._base_url}/api/generate", body, timeout)
        return str(data.get("response") or "").strip()
