# chuk_ai_browser_agent/memory/__init__.py
"""
Conversation memory and context-budget management.

Components:
- tokens / budget: length-based token estimates and the admission precheck
- ObservationCache: short-TTL cache of structural page reads
- RetrievalMemory: hashed-embedding recall over evicted history
- RunningSummaryCompressor: folds evicted chunks into one running summary
- ConversationWindow: turn-preserving trim and heavy-payload compaction
"""

from .budget import BudgetState, PrecheckResult, estimate_request_tokens, precheck_budget
from .eviction_policy import (
    CompactionCandidate,
    CompactionContext,
    CompactionPolicy,
    ImportanceWeightedConfig,
    ImportanceWeightedPolicy,
    RecencyCompactionPolicy,
)
from .models import (
    CompactionReport,
    HistorySummaryState,
    RetrievalEntry,
    RetrievalHit,
    RetrievalQuery,
    RetrievalSnapshot,
    SummaryOutcome,
    TrimReport,
)
from .observation_cache import ObservationCache, ObservationCacheStats
from .retrieval import RetrievalConfig, RetrievalMemory, hashed_embedding
from .summarizer import RunningSummaryCompressor, SummaryConfig
from .tokens import (
    estimate_expected_output_tokens,
    estimate_message_tokens,
    estimate_tokens,
    estimate_tool_schema_tokens,
)
from .turns import orphaned_tool_results, split_turn_groups
from .window import ConversationWindow, WindowConfig

__all__ = [
    "BudgetState",
    "CompactionCandidate",
    "CompactionContext",
    "CompactionPolicy",
    "CompactionReport",
    "ConversationWindow",
    "HistorySummaryState",
    "ImportanceWeightedConfig",
    "ImportanceWeightedPolicy",
    "ObservationCache",
    "ObservationCacheStats",
    "PrecheckResult",
    "RecencyCompactionPolicy",
    "RetrievalConfig",
    "RetrievalEntry",
    "RetrievalHit",
    "RetrievalMemory",
    "RetrievalQuery",
    "RetrievalSnapshot",
    "RunningSummaryCompressor",
    "SummaryConfig",
    "SummaryOutcome",
    "TrimReport",
    "WindowConfig",
    "estimate_expected_output_tokens",
    "estimate_message_tokens",
    "estimate_request_tokens",
    "estimate_tokens",
    "estimate_tool_schema_tokens",
    "hashed_embedding",
    "orphaned_tool_results",
    "precheck_budget",
    "split_turn_groups",
]
