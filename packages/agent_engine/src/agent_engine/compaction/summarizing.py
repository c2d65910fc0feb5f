"""Window-summarizing transcript compactor and its summarizers."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import httpx

from agent_engine.compaction.models import (
    Summarizer,
    SummarizerHttpConfig,
    TranscriptCompactionPlan,
    TranscriptCompactionResult,
)
from agent_engine.compaction.utils import preview_summarize
from agent_engine.models.messages import ChatMessage

if TYPE_CHECKING:
    from agent_engine.agents.invocation import AgentInvocation

_SUMMARY_KEYS = ("summary", "result", "content")


class SummarizerHttpError(RuntimeError):
    """The remote summarizer failed or returned no usable summary."""


def extract_summary(payload: Any) -> str | None:
    """Pull the summary string out of a JSON response body."""
    if isinstance(payload, str):
        return payload
    if not isinstance(payload, dict):
        return None
    for key in _SUMMARY_KEYS:
        value = payload.get(key)
        if isinstance(value, str) and value.strip():
            return value
    return None


class HttpSummarizer:
    """Summarize transcript windows through an HTTP endpoint."""

    def __init__(
        self,
        config: SummarizerHttpConfig,
        agent_id: str,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config
        self._agent_id = agent_id
        self._client = client

    async def __call__(self, messages: list[ChatMessage]) -> str:
        url = str(self._config.url)
        timeout = self._config.timeout_ms / 1000 if self._config.timeout_ms else None
        body = {"agentId": self._agent_id, "messages": [message.to_dict() for message in messages]}
        headers = {"content-type": "application/json", **self._config.headers}

        if self._client is not None:
            response = await self._client.request(
                self._config.method, url, json=body, headers=headers, timeout=timeout
            )
        else:
            async with httpx.AsyncClient(timeout=timeout) as client:
                response = await client.request(self._config.method, url, json=body, headers=headers)

        if response.is_error:
            details = f": {response.text}" if response.text else ""
            msg = (
                f"Summarizer HTTP endpoint {url} responded with "
                f"{response.status_code} {response.reason_phrase}{details}"
            )
            raise SummarizerHttpError(msg)

        if "application/json" in response.headers.get("content-type", ""):
            summary = extract_summary(response.json())
            if summary is None or not summary.strip():
                msg = f"Summarizer HTTP endpoint {url} returned JSON without a usable summary string."
                raise SummarizerHttpError(msg)
            return summary
        return response.text


class SummarizingTranscriptCompactor:
    """Replace the oldest non-system window with one assistant summary message."""

    def __init__(
        self,
        summarizer: Summarizer | None = None,
        max_messages: int = 600,
        window_size: int = 250,
        label: str = "Summary of previous conversation",
    ) -> None:
        self._summarizer = summarizer or preview_summarize
        self.max_messages = max_messages
        self.window_size = window_size
        self.label = label

    def plan(self, invocation: AgentInvocation, iteration: int) -> TranscriptCompactionPlan | None:
        messages = invocation.messages
        total = len(messages)
        if total <= self.max_messages:
            return None

        window_limit = min(self.window_size, total - self.max_messages // 2)
        if window_limit <= 0:
            return None

        first = next((index for index, message in enumerate(messages) if message.role != "system"), None)
        if first is None:
            return None

        window: list[ChatMessage] = []
        last = first - 1
        index = first
        while index < total and len(window) < window_limit:
            if messages[index].role != "system":
                window.append(messages[index])
                last = index
            index += 1
        if not window:
            return None

        async def apply() -> TranscriptCompactionResult:
            preserved = [message for message in invocation.messages[first : last + 1] if message.role == "system"]
            summary = await self._summarizer(window)
            summary_message = ChatMessage(role="assistant", content=f"{self.label}:\n\n{summary}")
            invocation.messages[first : last + 1] = [*preserved, summary_message]
            return TranscriptCompactionResult(removed_messages=len(window) - 1)

        reason = (
            f"summarize {len(window)} oldest messages into 1 summary "
            f"(limit {self.max_messages}, iteration {iteration})"
        )
        return TranscriptCompactionPlan(apply=apply, reason=reason)
