from __future__ import annotations

import logging
from typing import Any

import requests

from calpilot.models import AIConfig


logger = logging.getLogger(__name__)


class AIClientError(RuntimeError):
    """Raised when the completion endpoint fails or returns an unusable payload."""


def _message_content(payload: Any) -> str:
    try:
        content = payload["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as exc:
        raise AIClientError("AI response is missing choices[0].message.content.") from exc
    if content is None:
        return ""
    return str(content).strip()


class OpenAICompatibleClient:
    def __init__(self, config: AIConfig) -> None:
        self.config = config

    def is_configured(self) -> bool:
        return bool(self.config.base_url and self.config.api_key and self.config.model)

    def _chat_endpoint(self) -> str:
        base = self.config.base_url.rstrip("/")
        if base.endswith("/chat/completions"):
            return base
        return f"{base}/chat/completions"

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }

    def complete(self, system_prompt: str, user_content: str, *, json_mode: bool = True) -> str:
        """Run one chat completion and return the raw message text."""
        if not self.is_configured():
            raise AIClientError("AI config incomplete: base_url/api_key/model required.")
        body: dict[str, Any] = {
            "model": self.config.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_content},
            ],
            "temperature": self.config.temperature,
        }
        if json_mode:
            body["response_format"] = {"type": "json_object"}
        try:
            response = requests.post(
                self._chat_endpoint(),
                headers=self._headers(),
                json=body,
                timeout=self.config.timeout_seconds,
            )
        except requests.Timeout as exc:
            raise AIClientError(f"AI request timed out after {self.config.timeout_seconds}s.") from exc
        except requests.RequestException as exc:
            raise AIClientError(f"AI request failed: {exc}") from exc
        if not response.ok:
            raise AIClientError(f"AI request failed: HTTP {response.status_code} {response.text[:300]}")
        try:
            payload = response.json()
        except ValueError as exc:
            raise AIClientError("AI response body is not JSON.") from exc
        content = _message_content(payload)
        logger.debug("AI completion returned %d characters", len(content))
        return content

    def test_connectivity(self) -> tuple[bool, str]:
        if not self.is_configured():
            return False, "AI config incomplete: base_url/api_key/model required."
        try:
            content = self.complete("Reply with: OK", "ping", json_mode=False)
        except AIClientError as exc:
            return False, str(exc)
        content_text = content.replace("\n", " ")
        return True, f"Connected. Model response: {content_text[:120]}"
