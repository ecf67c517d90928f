"""Twilio-style webhook signature checks (HMAC-SHA1 over URL + sorted params)."""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
from typing import Mapping, Optional

from roomscribe.config import WebhookConfig

_logger = logging.getLogger("roomscribe.webhooks.signature")


def compute_signature(auth_token: str, url: str, params: Mapping[str, str]) -> str:
    data = url + "".join(f"{key}{params[key]}" for key in sorted(params))
    digest = hmac.new(auth_token.encode("utf-8"), data.encode("utf-8"), hashlib.sha1).digest()
    return base64.b64encode(digest).decode("ascii")


class WebhookSignatureValidator:
    def __init__(self, config: WebhookConfig) -> None:
        self._config = config

    @property
    def enforcing(self) -> bool:
        return bool(
            self._config.validation_enabled and self._config.auth_token and self._config.url
        )

    def validate(self, signature: Optional[str], params: Mapping[str, str]) -> bool:
        """True when the signature matches, or when validation is off or unconfigured."""
        if not self._config.validation_enabled:
            return True
        if not self._config.auth_token or not self._config.url:
            _logger.warning("Webhook auth token or URL not configured, skipping validation")
            return True
        if not signature:
            _logger.warning("Webhook request without signature header")
            return False

        expected = compute_signature(self._config.auth_token, self._config.url, params)
        if not hmac.compare_digest(expected.encode("ascii"), signature.encode("utf-8")):
            _logger.warning("Webhook signature mismatch")
            return False
        return True
