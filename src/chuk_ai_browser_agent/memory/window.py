# chuk_ai_browser_agent/memory/window.py
"""
Conversation Window Manager.

Keeps the live message list under a message-count ceiling and a token
ceiling without corrupting turn structure:

- ``trim()`` evicts whole turn groups from just after the protected head
  and hands them to the summary compressor
- ``compact_heavy()`` replaces low-importance heavy payloads in place with
  short placeholders, marking each message ``compacted``
- ``reduce_vision()`` keeps only the most recent screenshots as images,
  older ones collapse to their caption

All three are idempotent on an already trimmed/compacted window.

Usage::

    window = ConversationWindow(WindowConfig(max_messages=28), compressor=compressor)
    window.set_head([Message.system(prompt), Message.user(goal)])
    window.append(Message.assistant("Opening the page", tool_calls=[call]))
    window.append(Message.tool_result(call.id, call.name, {"success": True}))
"""

from __future__ import annotations

import json
import logging
import math
from collections.abc import Iterable
from typing import Any

from pydantic import BaseModel, Field

from chuk_ai_browser_agent.config import DEFAULT_CONTEXT_WINDOW_TOKENS, DEFAULT_MAX_CONVERSATION_MESSAGES
from chuk_ai_browser_agent.models import Message, MessageRole, PressureLevel
from chuk_ai_browser_agent.utils import truncate_text

from .eviction_policy import CompactionContext, CompactionPolicy, ImportanceWeightedPolicy
from .models import CompactionReport, TrimReport
from .summarizer import RunningSummaryCompressor
from .tokens import estimate_message_tokens, estimate_single_message_tokens
from .turns import split_turn_groups

logger = logging.getLogger(__name__)

VISION_SUMMARY_PREFIX = "Snapshot summary:"


class WindowConfig(BaseModel):
    """Configuration for the conversation window."""

    max_messages: int = Field(default=DEFAULT_MAX_CONVERSATION_MESSAGES, ge=4, description="Message-count ceiling (head included)")
    protected_head: int = Field(default=2, ge=0, description="Leading messages never evicted")
    min_tail_messages: int = Field(default=2, ge=1, description="Messages always kept after the head")
    max_context_ratio: float = Field(default=0.75, gt=0, description="Token ceiling as a share of the usable window")
    context_window_tokens: int = Field(default=DEFAULT_CONTEXT_WINDOW_TOKENS, gt=0)
    reserved_output_tokens: int = Field(default=4096, ge=0)
    keep_recent_vision: int = Field(default=2, ge=0)
    keep_recent_vision_critical: int = Field(default=1, ge=0)
    compact_fraction: float = Field(default=0.35, ge=0, le=1)
    critical_compact_fraction: float = Field(default=0.80, ge=0, le=1)
    min_compact_chars: int = Field(default=400, description="Smaller messages are not worth compacting")
    protect_recent_groups: int = Field(default=1, ge=0, description="Latest turn groups never compacted")
    auto_compact_ratio: float = Field(default=0.8, description="append() compacts past this context ratio")


class ConversationWindow:
    """Owns the live message sequence for one run."""

    def __init__(
        self,
        config: WindowConfig | None = None,
        compressor: RunningSummaryCompressor | None = None,
        policy: CompactionPolicy | None = None,
    ) -> None:
        self.config = config or WindowConfig()
        self.compressor = compressor
        self.policy = policy or ImportanceWeightedPolicy()
        self.pressure = PressureLevel.NORMAL
        self.step: int | None = None
        self._messages: list[Message] = []

    # =========================================================================
    # Basic access
    # =========================================================================

    @property
    def messages(self) -> list[Message]:
        return self._messages

    def __len__(self) -> int:
        return len(self._messages)

    @property
    def usable_context_tokens(self) -> int:
        return max(1, self.config.context_window_tokens - self.config.reserved_output_tokens)

    def context_tokens(self) -> int:
        return estimate_message_tokens(self._messages)

    def context_ratio(self) -> float:
        return self.context_tokens() / self.usable_context_tokens

    def set_context_window(self, context_window_tokens: int, reserved_output_tokens: int | None = None) -> None:
        self.config.context_window_tokens = max(1, context_window_tokens)
        if reserved_output_tokens is not None:
            self.config.reserved_output_tokens = max(0, reserved_output_tokens)

    def set_head(self, messages: Iterable[Message]) -> None:
        """Replace the whole window with a fresh protected head."""
        self._messages = list(messages)
        self.pressure = PressureLevel.NORMAL

    def replace(self, messages: Iterable[Message]) -> None:
        self._messages = list(messages)

    # =========================================================================
    # Append / trim
    # =========================================================================

    def append(self, message: Message) -> TrimReport:
        """Push a message, then reduce old screenshots, compact if needed and trim."""
        if message.step is None:
            message.step = self.step
        self._messages.append(message)
        self.reduce_vision()
        if self.context_ratio() >= self.config.auto_compact_ratio:
            self.compact_heavy(max(self.pressure, PressureLevel.HIGH))
        return self.trim()

    def trim(self) -> TrimReport:
        """
        Evict leading turn groups after the protected head until under both ceilings.

        The live (last) group is never evicted, so tool results still being
        appended always find their originating call.
        """
        cfg = self.config
        messages = self._messages
        head = min(cfg.protected_head, len(messages))
        token_ceiling = cfg.max_context_ratio * self.usable_context_tokens
        total_tokens = self.context_tokens()

        remove_end = head
        removed_tokens = 0
        removed_groups = 0
        for start, end in split_turn_groups(messages, head):
            remaining_count = len(messages) - (remove_end - head)
            over_count = remaining_count > cfg.max_messages
            over_tokens = total_tokens - removed_tokens > token_ceiling
            if not (over_count or over_tokens):
                break
            if end >= len(messages) or len(messages) - end < cfg.min_tail_messages:
                break
            removed_tokens += sum(estimate_single_message_tokens(m) for m in messages[start:end])
            remove_end = end
            removed_groups += 1

        if remove_end == head:
            return TrimReport()

        evicted = messages[head:remove_end]
        del messages[head:remove_end]
        if self.compressor is not None:
            self.compressor.record_evicted(evicted, step=self.step)

        report = TrimReport(
            removed=len(evicted),
            removed_groups=removed_groups,
            removed_chars=sum(m.char_size for m in evicted),
        )
        logger.debug("Trimmed %d messages in %d groups", report.removed, report.removed_groups)
        return report

    # =========================================================================
    # Compaction
    # =========================================================================

    def _protected_tail_start(self) -> int:
        head = min(self.config.protected_head, len(self._messages))
        spans = split_turn_groups(self._messages, head)
        keep = self.config.protect_recent_groups
        if keep <= 0 or not spans:
            return len(self._messages)
        return spans[-keep][0] if len(spans) >= keep else head

    def _is_heavy(self, message: Message) -> bool:
        return message.is_vision or message.char_size >= self.config.min_compact_chars

    def compact_heavy(self, pressure: PressureLevel | None = None) -> CompactionReport:
        """
        Replace the lowest-importance heavy payloads with placeholders.

        The target fraction counts already-compacted candidates, so a second
        pass over the same window changes nothing.
        """
        pressure = self.pressure if pressure is None else pressure
        fraction = (
            self.config.critical_compact_fraction
            if pressure >= PressureLevel.CRITICAL
            else self.config.compact_fraction
        )

        head = min(self.config.protected_head, len(self._messages))
        tail_start = self._protected_tail_start()
        candidates = [
            i for i in range(head, tail_start) if self._messages[i].compacted or self._is_heavy(self._messages[i])
        ]
        already = sum(1 for i in candidates if self._messages[i].compacted)
        target = math.ceil(len(candidates) * fraction)
        needed = target - already
        report = CompactionReport(eligible=len(candidates))
        if needed <= 0:
            return report

        eligible = [i for i in candidates if not self._messages[i].compacted]
        scored = self.policy.score_candidates(CompactionContext(messages=self._messages, eligible=eligible))
        for candidate in scored[:needed]:
            message = self._messages[candidate.index]
            before = message.char_size
            self._compact_message(message)
            report.compacted += 1
            report.chars_saved += max(0, before - message.char_size)

        logger.info(
            "Compacted %d/%d heavy messages (pressure=%s, saved %d chars)",
            report.compacted,
            report.eligible,
            pressure.name,
            report.chars_saved,
        )
        return report

    def _compact_message(self, message: Message) -> None:
        original_chars = message.char_size

        if message.is_vision:
            self._reduce_vision_message(message)
            return

        if message.role == MessageRole.TOOL:
            tool = message.name or "the tool"
            placeholder: dict[str, Any] = {
                "compacted": True,
                "tool": message.name,
                "original_chars": original_chars,
                "excerpt": truncate_text(" ".join(message.text.split()), 120),
                "note": f"Payload removed under context pressure. Call {tool} again to re-fetch it.",
            }
            message.content = json.dumps(placeholder)
        elif message.role == MessageRole.ASSISTANT:
            # tool_calls stay: their results still reference them
            message.content = f"[compacted: {len(message.text)} chars of reasoning removed]"
        else:
            excerpt = truncate_text(" ".join(message.text.split()), 120)
            message.content = f"[compacted {message.role.value} message, {original_chars} chars] {excerpt}"
        message.compacted = True

    def _reduce_vision_message(self, message: Message) -> None:
        caption = " ".join(message.text.split()) or "screenshot"
        message.content = f"{VISION_SUMMARY_PREFIX} {caption}"
        message.compacted = True
        if self.compressor is not None:
            self.compressor.index_vision_caption(caption, step=message.step)

    def reduce_vision(self, pressure: PressureLevel | None = None) -> int:
        """Collapse all but the most recent K screenshots to their caption."""
        pressure = self.pressure if pressure is None else pressure
        keep = (
            self.config.keep_recent_vision_critical
            if pressure >= PressureLevel.CRITICAL
            else self.config.keep_recent_vision
        )
        vision = [m for m in self._messages if m.is_vision]
        stale = vision[: max(0, len(vision) - keep)]
        for message in stale:
            self._reduce_vision_message(message)
        return len(stale)

    # =========================================================================
    # Model view
    # =========================================================================

    def build_for_model(self, state_message: Message | None = None) -> list[dict[str, Any]]:
        """Provider messages with the synthetic task-state message after the system prompt."""
        rendered = [m.to_provider_dict() for m in self._messages]
        if state_message is not None:
            rendered.insert(min(1, len(rendered)), state_message.to_provider_dict())
        return rendered

    def snapshot(self) -> list[Message]:
        return [m.model_copy(deep=True) for m in self._messages]
