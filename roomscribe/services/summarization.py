import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from roomscribe.services.llm import (
    GeminiProvider,
    LLMProvider,
    LLMProviderError,
    OllamaProvider,
    OpenAIProvider,
)


@dataclass(frozen=True)
class RoomSummary:
    room_id: str
    room_name: Optional[str]
    general_summary: Optional[str]
    topics_discussed: list[str] = field(default_factory=list)
    decisions_made: list[str] = field(default_factory=list)
    next_steps: list[str] = field(default_factory=list)
    participants_mentioned: list[str] = field(default_factory=list)
    issues_raised: list[str] = field(default_factory=list)
    overall_sentiment: Optional[str] = None
    provider: Optional[str] = None
    processed_at: str = ""

    @classmethod
    def from_fields(
        cls,
        room_id: str,
        room_name: Optional[str],
        fields: dict,
        provider: Optional[str] = None,
    ) -> "RoomSummary":
        return cls(
            room_id=room_id,
            room_name=room_name,
            general_summary=fields.get("generalSummary"),
            topics_discussed=list(fields.get("topicsDiscussed") or []),
            decisions_made=list(fields.get("decisionsMade") or []),
            next_steps=list(fields.get("nextSteps") or []),
            participants_mentioned=list(fields.get("participantsMentioned") or []),
            issues_raised=list(fields.get("issuesRaised") or []),
            overall_sentiment=fields.get("overallSentiment"),
            provider=provider,
            processed_at=datetime.now(timezone.utc).isoformat(),
        )

    def to_dict(self) -> dict:
        return {
            "roomSid": self.room_id,
            "roomName": self.room_name,
            "generalSummary": self.general_summary,
            "topicsDiscussed": self.topics_discussed,
            "decisionsMade": self.decisions_made,
            "nextSteps": self.next_steps,
            "participantsMentioned": self.participants_mentioned,
            "issuesRaised": self.issues_raised,
            "overallSentiment": self.overall_sentiment,
            "provider": self.provider,
            "processedAt": self.processed_at,
        }


class SummarizationService:
    """Room summaries using the configured model.

    Reads model selection from config.json on every call, so a changed
    selection applies to the next finished room without a restart:
    - models.selected_model: format "provider:model_id" (e.g., "gemini:gemini-2.0-flash")
    - providers.<provider>: contains api_key and base_url for each provider
    """

    def __init__(self, config_path: str) -> None:
        self._config_path = config_path
        self._logger = logging.getLogger("roomscribe.summarization")

    def _read_config(self) -> dict:
        """Read config from file, returning empty dict if not found."""
        if not os.path.exists(self._config_path):
            return {}
        with open(self._config_path, "r", encoding="utf-8") as f:
            return json.load(f)

    def _get_selected_model(self) -> tuple[str, str]:
        """Get the selected model from config.

        Returns:
            Tuple of (provider_name, model_id)

        Raises:
            LLMProviderError if no model is selected
        """
        config = self._read_config()
        selected = config.get("models", {}).get("selected_model", "")

        if not selected:
            raise LLMProviderError("No AI model selected (models.selected_model)")

        if ":" not in selected:
            raise LLMProviderError(
                f"Invalid model format '{selected}'. Expected 'provider:model_id'."
            )

        provider, model_id = selected.split(":", 1)
        return provider.lower(), model_id

    def _get_provider_config(self, provider_name: str) -> dict:
        config = self._read_config()
        return config.get("providers", {}).get(provider_name, {})

    def selected_provider_name(self) -> Optional[str]:
        try:
            provider_name, _ = self._get_selected_model()
        except LLMProviderError:
            return None
        return provider_name

    def _get_provider(self) -> LLMProvider:
        provider_name, model_id = self._get_selected_model()
        provider_config = self._get_provider_config(provider_name)
        api_key = provider_config.get("api_key", "")
        base_url = provider_config.get("base_url", "")

        if provider_name == "ollama":
            return OllamaProvider(base_url=base_url or "http://127.0.0.1:11434", model=model_id)

        if provider_name == "openai":
            if not api_key:
                raise LLMProviderError("Missing OpenAI API key (providers.openai.api_key)")
            return OpenAIProvider(api_key=api_key, model=model_id, base_url=base_url or None)

        if provider_name == "gemini":
            if not api_key:
                raise LLMProviderError("Missing Gemini API key (providers.gemini.api_key)")
            if base_url:
                return GeminiProvider(api_key=api_key, model=model_id, base_url=base_url)
            return GeminiProvider(api_key=api_key, model=model_id)

        raise LLMProviderError(f"Unknown provider: {provider_name}")

    def summarize_room(
        self, room_id: str, room_name: Optional[str], transcript: str
    ) -> RoomSummary:
        """Summarize a finished room.

        Raises:
            LLMProviderError: empty transcript, no usable provider, or the
                provider call failed
        """
        if not transcript.strip():
            raise LLMProviderError("Transcript is empty")
        provider = self._get_provider()
        provider_name = provider.__class__.__name__
        self._logger.info(
            "Summarizing room %s (%d chars) using provider=%s",
            room_id,
            len(transcript),
            provider_name,
        )
        fields = provider.summarize_room(transcript)
        return RoomSummary.from_fields(room_id, room_name, fields, provider=provider_name)
