# chuk_ai_browser_agent/memory/eviction_policy.py
"""
Compaction scoring policies for the conversation window.

Under context pressure the window replaces heavy message payloads with short
placeholders. A policy decides which go first: it scores eligible messages
and the window compacts them lowest score first.

Usage::

    from chuk_ai_browser_agent.memory.eviction_policy import (
        ImportanceWeightedPolicy,
        RecencyCompactionPolicy,
    )

    # Default: recency, role and size blended
    window = ConversationWindow(policy=ImportanceWeightedPolicy())

    # Oldest first, nothing else considered
    window = ConversationWindow(policy=RecencyCompactionPolicy())
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, Field

from chuk_ai_browser_agent.models import Message, MessageRole

logger = logging.getLogger(__name__)

# =============================================================================
# Models
# =============================================================================


class CompactionCandidate(BaseModel):
    """A scored compaction candidate. Lower score = compact first."""

    index: int
    score: float


class CompactionContext(BaseModel):
    """
    Context passed to compaction policies for scoring.

    ``eligible`` holds indexes into ``messages`` that may be compacted;
    protected head/tail messages and already-compacted ones are excluded
    by the window before scoring.
    """

    model_config = {"arbitrary_types_allowed": True}

    messages: list[Message] = Field(default_factory=list)
    eligible: list[int] = Field(default_factory=list)


# =============================================================================
# Protocol
# =============================================================================


@runtime_checkable
class CompactionPolicy(Protocol):
    """Protocol for swappable compaction ordering."""

    def score_candidates(self, context: CompactionContext) -> list[CompactionCandidate]: ...


# =============================================================================
# Implementations
# =============================================================================


class ImportanceWeightedConfig(BaseModel):
    """Weights for ImportanceWeightedPolicy (must sum to 1.0)."""

    recency_weight: float = 0.45
    role_weight: float = 0.35
    size_weight: float = 0.20

    # Role importance: tool > assistant-with-calls > vision > other
    tool_role: float = 1.0
    assistant_calls_role: float = 0.75
    vision_role: float = 0.5
    other_role: float = 0.25


class ImportanceWeightedPolicy:
    """
    Default compaction policy.

    importance = recency * 0.45 + role_weight * 0.35 + normalized_size * 0.20
    """

    def __init__(self, config: ImportanceWeightedConfig | None = None) -> None:
        self.config = config or ImportanceWeightedConfig()

    def role_weight(self, message: Message) -> float:
        cfg = self.config
        if message.role == MessageRole.TOOL:
            return cfg.tool_role
        if message.has_tool_calls:
            return cfg.assistant_calls_role
        if message.is_vision:
            return cfg.vision_role
        return cfg.other_role

    def score_candidates(self, context: CompactionContext) -> list[CompactionCandidate]:
        if not context.eligible:
            return []
        cfg = self.config
        total = max(len(context.messages), 1)
        max_size = max(context.messages[i].char_size for i in context.eligible) or 1

        candidates: list[CompactionCandidate] = []
        for i in context.eligible:
            message = context.messages[i]
            recency = (i + 1) / total
            size = message.char_size / max_size
            score = recency * cfg.recency_weight + self.role_weight(message) * cfg.role_weight + size * cfg.size_weight
            candidates.append(CompactionCandidate(index=i, score=score))

        candidates.sort(key=lambda c: (c.score, c.index))
        return candidates


class RecencyCompactionPolicy:
    """Oldest message first, regardless of role or size."""

    def score_candidates(self, context: CompactionContext) -> list[CompactionCandidate]:
        total = max(len(context.messages), 1)
        return [CompactionCandidate(index=i, score=i / total) for i in sorted(context.eligible)]
