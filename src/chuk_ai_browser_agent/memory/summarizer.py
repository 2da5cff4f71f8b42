# chuk_ai_browser_agent/memory/summarizer.py
"""
Running Summary Compressor.

Evicted turn groups are rendered to one-line descriptions and queued as
pending chunks. When enough has accumulated (or a caller forces it) up to
three chunks are drained and merged with the previous running summary:

- via the model, asking for strict JSON ``{"summary": "..."}``
- via bounded concatenation when the model is unavailable, budget-blocked,
  fails, or returns something unparseable

The result becomes the new running summary and is also indexed into
retrieval memory as a ``running_summary`` entry.

Usage::

    from chuk_ai_browser_agent.memory import RetrievalMemory, RunningSummaryCompressor

    async def summarize(messages, options):
        response = await provider.chat(messages, [], options)
        return response.text

    compressor = RunningSummaryCompressor(RetrievalMemory(), summarize_fn=summarize)
    compressor.record_evicted(evicted_messages, step=12)
    outcome = await compressor.maybe_summarize()
"""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable, Sequence
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field

from chuk_ai_browser_agent.models import Message, MessageRole, RetrievalSource
from chuk_ai_browser_agent.utils import extract_json_object, tail_text, truncate_text

from .budget import PrecheckResult
from .models import HistorySummaryState, SummaryOutcome
from .retrieval import RetrievalMemory
from .turns import split_turn_groups

logger = logging.getLogger(__name__)

# =============================================================================
# Types
# =============================================================================

SummarizeFn = Callable[[list[dict[str, Any]], dict[str, Any]], Awaitable[str]]
"""Callback: (provider messages, options) -> raw model text."""

BudgetCheckFn = Callable[[list[dict[str, Any]], dict[str, Any]], PrecheckResult]
"""Callback: (provider messages, options) -> admission decision (skip policy)."""

SUMMARY_SYSTEM_PROMPT = (
    "You maintain a compact running summary of a browser automation session. "
    "Merge the previous summary with the newly evicted history. Keep URLs, "
    "extracted values, decisions and failed approaches; drop chatter. "
    'Reply with strict JSON only: {"summary": "<text>"}. '
    "The summary must stay under {max_chars} characters."
)


class SummaryConfig(BaseModel):
    """Configuration for the running summary compressor."""

    max_running_chars: int = Field(default=2400, description="Running summary length cap")
    max_chunk_chars: int = Field(default=2400, description="Cap per pending chunk")
    line_max_chars: int = Field(default=220, description="Cap per rendered message line")
    tool_result_max_chars: int = Field(default=600, description="Cap on tool payload excerpts")
    trigger_pending_chunks: int = Field(default=3, description="Summarize at this many pending chunks")
    trigger_pending_chars: int = Field(default=4000, description="... or this many pending characters")
    max_drain_chunks: int = Field(default=3, description="Chunks merged per summarization")
    max_drain_chars: int = Field(default=6000, description="Combined drained character budget")
    summary_max_tokens: int = Field(default=600, description="Output cap for the summary call")


class RunningSummaryCompressor:
    """Batches evicted history and folds it into one running summary."""

    def __init__(
        self,
        retrieval: RetrievalMemory,
        config: SummaryConfig | None = None,
        summarize_fn: SummarizeFn | None = None,
        budget_check: BudgetCheckFn | None = None,
    ) -> None:
        self.retrieval = retrieval
        self.config = config or SummaryConfig()
        self._summarize_fn = summarize_fn
        self._budget_check = budget_check
        self.state = HistorySummaryState()

    # =========================================================================
    # Rendering
    # =========================================================================

    def describe_message(self, message: Message) -> str:
        """One-line, role-aware description of a message."""
        cfg = self.config
        text = " ".join(message.text.split())

        if message.has_tool_calls:
            calls = []
            for call in message.tool_calls or []:
                args = json.dumps(call.arguments, default=str, ensure_ascii=False)
                calls.append(f"{call.name}({truncate_text(args, 80)})")
            line = f"assistant -> {', '.join(calls)}"
            if text:
                line += f" | {text}"
            return truncate_text(line, cfg.line_max_chars)

        if message.role == MessageRole.TOOL:
            excerpt = truncate_text(text, cfg.tool_result_max_chars)
            return f"tool {message.name or 'result'} -> {excerpt}"

        if message.is_vision:
            return truncate_text(f"[vision] {text or 'screenshot'}", cfg.line_max_chars)

        return truncate_text(f"{message.role.value}: {text}", cfg.line_max_chars)

    # =========================================================================
    # Eviction intake
    # =========================================================================

    def record_evicted(self, messages: Sequence[Message], step: int | None = None) -> str | None:
        """
        Queue an evicted batch as one pending chunk.

        Each turn group in the batch is also indexed into retrieval memory
        as an ``evicted_turn`` fragment. Returns the queued chunk.
        """
        if not messages:
            return None

        lines: list[str] = []
        for start, end in split_turn_groups(messages):
            group = messages[start:end]
            group_lines = [self.describe_message(m) for m in group]
            lines.extend(group_lines)
            group_step = next((m.step for m in group if m.step is not None), step)
            self.retrieval.index(" | ".join(group_lines), step=group_step, source=RetrievalSource.EVICTED_TURN)

        chunk = truncate_text("\n".join(lines), self.config.max_chunk_chars)
        self.state.pending.append(chunk)
        self.state.pending_message_counts.append(len(messages))
        self.state.evicted_messages += len(messages)
        self.state.evicted_chars += sum(m.char_size for m in messages)
        logger.debug(
            "Queued evicted chunk: %d messages, %d chars (%d pending)",
            len(messages),
            len(chunk),
            len(self.state.pending),
        )
        return chunk

    def index_vision_caption(self, caption: str, step: int | None = None) -> None:
        self.retrieval.index(caption, step=step, source=RetrievalSource.VISION_SUMMARY)

    # =========================================================================
    # Summarization
    # =========================================================================

    def should_summarize(self, force: bool = False) -> bool:
        if not self.state.pending:
            return False
        if force:
            return True
        return (
            len(self.state.pending) >= self.config.trigger_pending_chunks
            or self.state.pending_chars >= self.config.trigger_pending_chars
        )

    def _drain(self) -> tuple[list[str], int]:
        drained: list[str] = []
        message_count = 0
        used = 0
        while self.state.pending and len(drained) < self.config.max_drain_chunks:
            chunk = self.state.pending[0]
            if drained and used + len(chunk) > self.config.max_drain_chars:
                break
            drained.append(self.state.pending.pop(0))
            if self.state.pending_message_counts:
                message_count += self.state.pending_message_counts.pop(0)
            used += len(chunk)
        return drained, message_count

    def build_prompt(self, chunks: Sequence[str]) -> list[dict[str, Any]]:
        previous = self.state.running or "(none)"
        user = "Previous summary:\n" + previous + "\n\nNew evicted history:\n" + "\n".join(chunks)
        system = SUMMARY_SYSTEM_PROMPT.replace("{max_chars}", str(self.config.max_running_chars))
        return [
            {"role": "system", "content": system},
            {"role": "user", "content": user},
        ]

    def _fallback_merge(self, chunks: Sequence[str]) -> str:
        parts = [self.state.running] if self.state.running else []
        parts.extend(chunks)
        return tail_text("\n".join(parts), self.config.max_running_chars)

    async def maybe_summarize(self, force: bool = False, step: int | None = None) -> SummaryOutcome:
        """Drain pending chunks into the running summary when thresholds are crossed."""
        if not self.should_summarize(force):
            return SummaryOutcome(reason="below_threshold" if self.state.pending else "nothing_pending")

        drained, message_count = self._drain()
        prompt = self.build_prompt(drained)
        options = {"max_tokens": self.config.summary_max_tokens, "temperature": 0}

        merged: str | None = None
        reason: str | None = None
        if self._summarize_fn is None:
            reason = "no_model"
        elif self._budget_check is not None and not (check := self._budget_check(prompt, options)).ok:
            reason = check.reason or "budget_predicted_exceed"
        else:
            try:
                raw = await self._summarize_fn(prompt, options)
            except Exception as e:
                logger.warning("Summary model call failed, using fallback merge: %s", e)
                reason = "model_error"
            else:
                parsed = extract_json_object(raw)
                summary = parsed.get("summary") if parsed else None
                if isinstance(summary, str) and summary.strip():
                    merged = tail_text(summary.strip(), self.config.max_running_chars)
                else:
                    reason = "unparseable"

        mode = "model" if merged is not None else "fallback"
        self.state.running = merged if merged is not None else self._fallback_merge(drained)
        self.state.summarized_chunks += len(drained)
        self.state.summarized_messages += message_count
        self.state.updated_at = datetime.now(timezone.utc)

        self.retrieval.index(self.state.running, step=step, source=RetrievalSource.RUNNING_SUMMARY)
        logger.info("Running summary updated (%s, %d chunks, reason=%s)", mode, len(drained), reason)
        return SummaryOutcome(summarized=True, mode=mode, reason=reason, drained_chunks=len(drained))

    # =========================================================================
    # State
    # =========================================================================

    def summary_block(self) -> str:
        if not self.state.running:
            return ""
        return "Compressed history summary:\n" + self.state.running

    def reset(self) -> None:
        self.state = HistorySummaryState()

    def restore(self, state: HistorySummaryState) -> None:
        self.state = state.model_copy(deep=True)
