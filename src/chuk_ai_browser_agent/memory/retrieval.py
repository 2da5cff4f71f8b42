# chuk_ai_browser_agent/memory/retrieval.py
"""
Retrieval Memory - small in-process recall over evicted history.

Each entry is indexed by a locally computed hashed embedding: tokens are
hashed into a fixed number of buckets with a sign bit and a length weight,
then the vector is L2-normalized. Scoring blends cosine similarity with
plain lexical overlap::

    score = 0.75 * cosine(query, entry) + 0.25 * lexical_overlap(query, entry)

This is an approximate per-session recall structure, not a vector index.

Usage::

    memory = RetrievalMemory()
    memory.index("Clicked 'Checkout', cart total was $42", step=7)
    block = memory.query(RetrievalQuery(goal="find the cart total"), limit=4)
"""

from __future__ import annotations

import hashlib
import logging
import math
import re
from collections import deque

from pydantic import BaseModel, Field

from chuk_ai_browser_agent.models import RetrievalSource

from .models import RetrievalEntry, RetrievalHit, RetrievalQuery, RetrievalSnapshot

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"[a-z0-9][a-z0-9_\-]*")
_WHITESPACE_RE = re.compile(r"\s+")

STOPWORDS = frozenset(
    {
        "the", "and", "for", "with", "from", "that", "this", "are", "was", "were",
        "has", "have", "had", "not", "but", "you", "your", "into", "then", "than",
        "its", "our", "can", "will", "all", "any", "per", "via", "out", "off",
    }
)  # fmt: skip


class RetrievalConfig(BaseModel):
    """Configuration for retrieval memory."""

    capacity: int = Field(default=120, ge=1, description="Max entries kept (FIFO)")
    max_entry_chars: int = Field(default=600, ge=32, description="Entry text is truncated to this")
    dimensions: int = Field(default=256, ge=16, description="Hashed embedding size")
    cosine_weight: float = 0.75
    lexical_weight: float = 0.25
    min_score: float = Field(default=0.12, description="Hits below this are dropped")


def tokenize(text: str) -> list[str]:
    """Lowercase word tokens, stopwords and single characters removed."""
    return [t for t in _TOKEN_RE.findall(text.lower()) if len(t) > 1 and t not in STOPWORDS]


def hashed_embedding(text: str, dimensions: int = 256) -> list[float]:
    """Signed, length-weighted, L2-normalized token hashing."""
    vector = [0.0] * dimensions
    for token in tokenize(text):
        digest = hashlib.sha256(token.encode("utf-8")).digest()
        bucket = int.from_bytes(digest[:4], "big") % dimensions
        sign = 1.0 if digest[4] & 1 == 0 else -1.0
        weight = 1.0 + min(len(token), 12) / 12.0
        vector[bucket] += sign * weight

    norm = math.sqrt(sum(v * v for v in vector))
    if norm == 0:
        return vector
    return [v / norm for v in vector]


def cosine(a: list[float], b: list[float]) -> float:
    # Both sides are already unit length
    return sum(x * y for x, y in zip(a, b))


def lexical_overlap(query_tokens: set[str], entry_tokens: set[str]) -> float:
    if not query_tokens:
        return 0.0
    return len(query_tokens & entry_tokens) / len(query_tokens)


def normalize_fragment(text: str, max_chars: int) -> str:
    cleaned = _WHITESPACE_RE.sub(" ", text or "").strip()
    if len(cleaned) > max_chars:
        cleaned = cleaned[: max_chars - 3].rstrip() + "..."
    return cleaned


class RetrievalMemory:
    """Append-only, capacity-bounded store of condensed history fragments."""

    def __init__(self, config: RetrievalConfig | None = None) -> None:
        self.config = config or RetrievalConfig()
        self._entries: deque[RetrievalEntry] = deque()
        self._vectors: dict[int, list[float]] = {}
        self._tokens: dict[int, set[str]] = {}
        self._next_id = 1

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def index(
        self,
        text: str,
        step: int | None = None,
        source: RetrievalSource = RetrievalSource.EVICTED_TURN,
    ) -> RetrievalEntry | None:
        """
        Add a fragment.

        Returns the stored entry, or None when the text was empty or a
        case-insensitive duplicate of an existing entry.
        """
        fragment = normalize_fragment(text, self.config.max_entry_chars)
        if not fragment:
            return None

        folded = fragment.casefold()
        if any(entry.text.casefold() == folded for entry in self._entries):
            logger.debug("Retrieval memory skipped duplicate fragment")
            return None

        entry = RetrievalEntry(id=self._next_id, step=step, source=source, text=fragment)
        self._next_id += 1
        self._store(entry)

        while len(self._entries) > self.config.capacity:
            evicted = self._entries.popleft()
            self._vectors.pop(evicted.id, None)
            self._tokens.pop(evicted.id, None)

        return entry

    def _store(self, entry: RetrievalEntry) -> None:
        self._entries.append(entry)
        self._vectors[entry.id] = hashed_embedding(entry.text, self.config.dimensions)
        self._tokens[entry.id] = set(tokenize(entry.text))

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def search(self, query_text: str, limit: int = 4) -> list[RetrievalHit]:
        """Score every entry against the query; best first, ties by newest id."""
        if not self._entries or limit <= 0:
            return []

        query_vector = hashed_embedding(query_text, self.config.dimensions)
        query_tokens = set(tokenize(query_text))
        if not query_tokens:
            return []

        hits: list[RetrievalHit] = []
        for entry in self._entries:
            cos = cosine(query_vector, self._vectors[entry.id])
            lex = lexical_overlap(query_tokens, self._tokens[entry.id])
            score = self.config.cosine_weight * cos + self.config.lexical_weight * lex
            if score >= self.config.min_score:
                hits.append(RetrievalHit(entry=entry, score=score, cosine=cos, lexical=lex))

        hits.sort(key=lambda h: (-h.score, -h.entry.id))
        return hits[:limit]

    def query(self, context: RetrievalQuery | str, limit: int = 4, max_chars: int = 1200) -> str:
        """Formatted top hits for the task-state message, within ``max_chars``."""
        query_text = context if isinstance(context, str) else context.to_text()
        lines: list[str] = []
        used = 0
        for hit in self.search(query_text, limit=limit):
            line = hit.format()
            remaining = max_chars - used
            if remaining <= 0:
                break
            if len(line) > remaining:
                if lines:
                    break
                line = line[: max(0, remaining - 3)] + "..."
            lines.append(line)
            used += len(line) + 1
        return "\n".join(lines)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def entries(self) -> list[RetrievalEntry]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        self._entries.clear()
        self._vectors.clear()
        self._tokens.clear()
        self._next_id = 1

    def snapshot(self) -> RetrievalSnapshot:
        return RetrievalSnapshot(
            entries=[e.model_copy() for e in self._entries],
            next_id=self._next_id,
        )

    def restore(self, snapshot: RetrievalSnapshot) -> None:
        self.clear()
        for entry in snapshot.entries[-self.config.capacity :]:
            self._store(entry.model_copy())
        self._next_id = max([snapshot.next_id, *(e.id + 1 for e in snapshot.entries)])
