from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod

import requests


class LLMProviderError(RuntimeError):
    pass


SUMMARY_LIST_FIELDS = (
    "topicsDiscussed",
    "decisionsMade",
    "nextSteps",
    "participantsMentioned",
    "issuesRaised",
)


class LLMProvider(ABC):
    @abstractmethod
    def summarize_room(self, transcript: str) -> dict:
        """Return the structured summary fields for a finished call."""
        raise NotImplementedError


class BaseLLMProvider(LLMProvider):
    """Base implementation with shared prompts, JSON parsing, and response handling.

    Subclasses only need to implement _call_api() for their specific API client.
    """

    PROMPTS = {
        "summarize_room": (
            "Produce a structured summary of this multi-party call.\n"
            "Return ONLY valid JSON, no markdown or extra text, with these keys:\n"
            "{{\n"
            '    "generalSummary": "2-3 sentence overview of the call",\n'
            '    "topicsDiscussed": ["topics discussed"],\n'
            '    "decisionsMade": ["decisions taken"],\n'
            '    "nextSteps": ["agreed next steps"],\n'
            '    "participantsMentioned": ["names mentioned in the conversation"],\n'
            '    "issuesRaised": ["problems or open questions raised"],\n'
            '    "overallSentiment": "positive/neutral/negative"\n'
            "}}\n"
            "Use an empty array or null when a field has no information. "
            "Write the values in the language of the transcript.\n\n"
            "Transcript:\n{transcript}"
        ),
        "summarize_room_system": (
            "You are a JSON-only assistant. Return only valid JSON objects, no markdown formatting."
        ),
    }

    def __init__(self, logger_name: str = "roomscribe.llm") -> None:
        self._logger = logging.getLogger(logger_name)

    @abstractmethod
    def _call_api(
        self,
        prompt: str,
        temperature: float = 0.2,
        timeout: int = 120,
        system_prompt: str | None = None,
        json_mode: bool = False,
    ) -> str:
        """Make an API call and return the raw response text.

        Args:
            prompt: The user prompt to send
            temperature: Sampling temperature (0.0-1.0)
            timeout: Request timeout in seconds
            system_prompt: Optional system prompt
            json_mode: Request JSON-formatted response if supported

        Returns:
            The response text content
        """
        raise NotImplementedError

    def _post_json(
        self,
        service: str,
        url: str,
        body: dict,
        timeout: int,
        *,
        headers: dict | None = None,
        params: dict | None = None,
    ) -> dict:
        """POST a JSON body and return the decoded answer, mapping failures to LLMProviderError."""
        try:
            response = requests.post(
                url,
                params=params,
                headers={"Content-Type": "application/json", **(headers or {})},
                json=body,
                timeout=timeout,
            )
        except requests.RequestException as exc:
            raise LLMProviderError(f"Failed to reach {service}") from exc

        if response.status_code != 200:
            self._logger.error(
                "%s error: %s - %s", service, response.status_code, (response.text or "")[:500]
            )
            raise LLMProviderError(f"{service} error: {response.status_code}")

        try:
            return response.json()
        except ValueError as exc:
            raise LLMProviderError(f"{service} returned invalid JSON") from exc

    @staticmethod
    def _strip_markdown_code_blocks(text: str) -> str:
        """Remove markdown code block wrappers from text."""
        text = text.strip()
        if not text.startswith("```"):
            return text

        lines = text.split("\n")
        json_lines = []
        in_block = False
        for line in lines:
            if line.startswith("```"):
                in_block = not in_block
                continue
            json_lines.append(line)
        return "\n".join(json_lines).strip()

    @staticmethod
    def parse_summary_response(content: str, logger: logging.Logger | None = None) -> dict:
        """Normalize a model answer into the summary fields.

        A non-JSON answer is kept whole as ``generalSummary`` with empty lists.
        """
        text = BaseLLMProvider._strip_markdown_code_blocks(content)
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError:
            parsed = None
        if not isinstance(parsed, dict):
            if logger:
                logger.warning("Non-JSON response for room summary, using raw text")
            result = {field: [] for field in SUMMARY_LIST_FIELDS}
            result["generalSummary"] = content.strip()
            result["overallSentiment"] = None
            return result

        result = {}
        for field in SUMMARY_LIST_FIELDS:
            value = parsed.get(field) or []
            if not isinstance(value, list):
                value = [value]
            result[field] = [str(item).strip() for item in value if str(item).strip()]
        general = parsed.get("generalSummary")
        result["generalSummary"] = str(general).strip() if general else None
        sentiment = parsed.get("overallSentiment")
        result["overallSentiment"] = str(sentiment).strip() if sentiment else None
        return result

    def summarize_room(self, transcript: str) -> dict:
        prompt = self.PROMPTS["summarize_room"].format(transcript=transcript)
        content = self._call_api(
            prompt,
            temperature=0.3,
            timeout=120,
            system_prompt=self.PROMPTS["summarize_room_system"],
            json_mode=True,
        )
        return self.parse_summary_response(content, self._logger)
