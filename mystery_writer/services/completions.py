"""Access to the shared completion client and the queue that serializes it."""

from __future__ import annotations

from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Optional

from flask import current_app

from ..completion import CompletionClient, CompletionError
from ..task_queue import SequentialTaskQueue
from .prompts import get_entry_system_prompt, get_prompt_max_new_tokens

QUEUE_EXTENSION_KEY = "completion_queue"
CLIENT_EXTENSION_KEY = "completion_client"


class CompletionTimeoutError(CompletionError):
    """Raised when a queued completion does not settle within the wait budget."""


def get_completion_queue() -> SequentialTaskQueue:
    app = current_app
    queue = app.extensions.get(QUEUE_EXTENSION_KEY)
    if queue is None:
        raise RuntimeError("The completion queue has not been registered on this app.")
    return queue


def get_completion_client() -> Any:
    """Return the cached completion client, creating it from config on first use."""

    app = current_app
    client = app.extensions.get(CLIENT_EXTENSION_KEY)
    if client is not None:
        return client

    app.logger.info("Initialising completion client for model: %s", app.config.get("OPENAI_MODEL"))
    client = CompletionClient(
        app.config.get("OPENAI_MODEL", ""),
        app.config.get("OPENAI_API_KEY", ""),
        base_url=app.config.get("OPENAI_BASE_URL"),
        default_max_tokens=app.config.get("COMPLETION_MAX_TOKENS", 2048),
        default_temperature=app.config.get("COMPLETION_TEMPERATURE"),
    )
    app.extensions[CLIENT_EXTENSION_KEY] = client
    return client


def run_completion(step: str, prompt: str, *, wait_seconds: Optional[float] = None) -> str:
    """Queue one completion call for ``step`` and wait for its result.

    Failures of the call itself are raised unchanged from the handle.
    """

    client = get_completion_client()
    system_prompt = get_entry_system_prompt(step)
    max_tokens = get_prompt_max_new_tokens(step)

    def task() -> str:
        return client.complete(prompt, system_prompt=system_prompt, max_tokens=max_tokens)

    handle = get_completion_queue().submit(task)
    if wait_seconds is None:
        wait_seconds = current_app.config.get("COMPLETION_WAIT_SECONDS")
    try:
        return handle.result(timeout=wait_seconds)
    except FutureTimeoutError as exc:
        # A call that has not started yet is dropped; one already running finishes unobserved.
        handle.cancel()
        current_app.logger.warning("Queued '%s' completion still pending after %ss", step, wait_seconds)
        raise CompletionTimeoutError(
            "The assistant is still busy with earlier requests. Please try again shortly."
        ) from exc
