"""Thin wrapper around the OpenAI chat-completions endpoint."""
from __future__ import annotations

from typing import Any, List, Optional, Tuple

import openai


class CompletionError(RuntimeError):
    """Raised when the completion endpoint cannot produce usable text."""


class CompletionRateLimitError(CompletionError):
    """Raised when the completion endpoint reports a rate limit condition."""

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(
            message
            or "The completion API rate limit has been exceeded. Please try again shortly."
        )


def raise_for_rate_limit(exc: Exception) -> None:
    """Re-raise ``exc`` as :class:`CompletionRateLimitError` when it signals throttling."""

    if isinstance(exc, openai.RateLimitError):
        raise CompletionRateLimitError() from exc

    if getattr(exc, "status_code", None) == 429:
        raise CompletionRateLimitError() from exc

    code = getattr(exc, "code", None)
    if isinstance(code, str) and "rate" in code.lower():
        raise CompletionRateLimitError() from exc

    message = str(exc).lower()
    if "rate limit" in message or "too many requests" in message:
        raise CompletionRateLimitError() from exc


class CompletionClient:
    """Send a single prompt to a chat model and return the reply text.

    Works with the OpenAI Python SDK >= 1.0. ``base_url`` may point at any
    endpoint that speaks the same chat-completions protocol.
    """

    def __init__(
        self,
        model_name: str,
        api_key: str,
        *,
        base_url: Optional[str] = None,
        default_max_tokens: int = 1024,
        default_temperature: Optional[float] = None,
        client: Any = None,
    ) -> None:
        self.model_name = (model_name or "").strip()
        self.api_key = (api_key or "").strip()
        if not self.model_name:
            raise CompletionError("A model name is required for the completion client.")
        if client is None and not self.api_key:
            raise CompletionError("OPENAI_API_KEY is not configured.")
        self.default_max_tokens = int(default_max_tokens or 1024)
        self.default_temperature = default_temperature

        if client is None:
            kwargs = {"api_key": self.api_key}
            if base_url:
                kwargs["base_url"] = base_url
            client = openai.OpenAI(**kwargs)
        self._client = client

    def complete(
        self,
        prompt: str,
        *,
        system_prompt: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> str:
        if not isinstance(prompt, str) or not prompt.strip():
            raise ValueError("prompt must be a non-empty string.")
        token_budget = int(max_tokens if max_tokens is not None else self.default_max_tokens)
        if token_budget <= 0:
            raise ValueError("max_tokens must be positive.")

        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        kwargs = {
            "model": self.model_name,
            "messages": messages,
            "max_tokens": token_budget,
            "n": 1,
        }
        sampling = self.default_temperature if temperature is None else temperature
        if sampling is not None:
            kwargs["temperature"] = float(sampling)

        try:
            resp = self._client.chat.completions.create(**kwargs)
        except openai.OpenAIError as exc:
            raise_for_rate_limit(exc)
            raise CompletionError(f"The completion request failed: {exc}") from exc

        text = _extract_text(resp).strip()
        if text:
            return text
        raise CompletionError(
            f"Chat completion returned no text. Raw response (truncated): {_shorten(str(resp))}"
        )

    def signature(self) -> Tuple[str, str]:
        redacted = (self.api_key[:4] + "…" + self.api_key[-4:]) if self.api_key else ""
        return (self.model_name, redacted)


def _extract_text(resp: Any) -> str:
    choices = getattr(resp, "choices", None) or []
    if not choices:
        return ""
    first = choices[0]
    message = getattr(first, "message", None)
    if isinstance(message, dict):
        content = message.get("content")
    else:
        content = getattr(message, "content", None)
    if isinstance(content, list):
        parts: List[str] = []
        for part in content:
            if isinstance(part, dict) and part.get("type") == "text":
                parts.append(str(part.get("text") or ""))
        return "\n".join(p for p in parts if p)
    return str(content or "")


def _shorten(value: str, limit: int = 1200) -> str:
    value = value.replace("\n", " ")
    return (value[:limit] + "…") if len(value) > limit else value


__all__ = [
    "CompletionClient",
    "CompletionError",
    "CompletionRateLimitError",
    "raise_for_rate_limit",
]
