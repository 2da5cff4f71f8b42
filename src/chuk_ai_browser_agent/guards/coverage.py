# chuk_ai_browser_agent/guards/coverage.py
"""
Goal coverage helpers.

A goal like "find the price of the blue mug, then check the shipping cost"
has two parts. Before ``done`` is accepted each part needs evidence: at
least two of its keywords must appear in recent tool results, reasoning,
or the done arguments themselves.

Quoted spans and "compare X and Y" style phrases stay atomic so that
one intent with two entities is not split in half.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from typing import Any

MAX_SUBTASKS = 8
MAX_KEYWORDS = 6
MIN_SUBTASK_CHARS = 6

_QUOTED_RE = re.compile(r"\"[^\"]+\"|'[^']+'|«[^»]+»|“[^”]+”")
_PAIR_PHRASE_RE = re.compile(
    r"\b(?:price|cost|compare|find)\s+([^\n,;:.]{2,80}?)\s+and\s+([^\n,;:.]{2,80}?)"
    r"(?=(?:\s*(?:,|;|\.|\bthen\b|\band then\b|\bafter that\b|\balso\b))|$)",
    re.IGNORECASE,
)
_SEPARATOR_RE = re.compile(
    r"\s*(?:,|;|\.|\bthen\b|\band then\b|\bafter that\b|\band\b|\balso\b)\s+",
    re.IGNORECASE,
)
_PLACEHOLDER_RE = re.compile(r"__protected_(\d+)__")
_TASK_PREFIX_RE = re.compile(r"^task\s*:")

_NAVIGATE_START_RE = re.compile(r"^(open|go to|navigate|перейди|открой|зайди|покажи)\s", re.IGNORECASE)
_EXTRA_INTENT_RE = re.compile(r"\b(and|then|after|also|find|search|check|extract|fill)\b", re.IGNORECASE)
_EXTRA_INTENT_RU_RE = re.compile(
    r"(^|\s)(и|затем|потом|также|найди|проверь|извлеки|заполни)(\s|$)",
    re.IGNORECASE,
)

_STOPWORDS = frozenset(
    {
        "the", "and", "then", "with", "from", "that", "this", "into", "for", "you", "your", "have",
        "just", "also", "find", "check", "open", "how", "what", "why", "need", "please", "make",
        "but", "are",
    }
)  # fmt: skip


def is_navigate_only(goal: str) -> bool:
    """True for goals that only ask to open a page ("open example.com")."""
    goal = (goal or "").strip()
    if not _NAVIGATE_START_RE.match(goal):
        return False
    extra = _EXTRA_INTENT_RE.search(goal) or _EXTRA_INTENT_RU_RE.search(goal) or re.search(r"[,;]", goal)
    return extra is None


def extract_goal_subtasks(goal: str) -> list[str]:
    """Split a goal into its parts, lowercased and in order."""
    normalized = re.sub(r"\s+", " ", goal or "").strip().lower()
    if not normalized:
        return []

    protected: list[str] = []

    def protect(match: re.Match[str]) -> str:
        protected.append(match.group(0))
        return f"__protected_{len(protected) - 1}__"

    def restore(text: str) -> str:
        return _PLACEHOLDER_RE.sub(lambda m: protected[int(m.group(1))], text)

    masked = _QUOTED_RE.sub(protect, normalized)
    masked = _PAIR_PHRASE_RE.sub(protect, masked)

    subtasks: list[str] = []
    for part in _SEPARATOR_RE.split(masked):
        part = restore(part).strip()
        if len(part) < MIN_SUBTASK_CHARS or _TASK_PREFIX_RE.match(part):
            continue
        if part not in subtasks:
            subtasks.append(part)
    return subtasks[:MAX_SUBTASKS]


def extract_coverage_keywords(text: str) -> list[str]:
    tokens = re.sub(r"[^\w\s-]+", " ", (text or "").lower()).split()
    keywords: list[str] = []
    for token in tokens:
        if len(token) < 3 or token in _STOPWORDS or token in keywords:
            continue
        keywords.append(token)
    return keywords[:MAX_KEYWORDS]


def keyword_hits(keywords: Iterable[str], corpus: str) -> int:
    return sum(1 for kw in keywords if kw in corpus)


def uncovered_subtasks(subtasks: Iterable[str], corpus: str) -> list[str]:
    """Subtasks with fewer than two (or all, when shorter) keywords in ``corpus``."""
    corpus = corpus.lower()
    missing = []
    for subtask in subtasks:
        keywords = extract_coverage_keywords(subtask)
        if not keywords:
            continue
        if keyword_hits(keywords, corpus) < min(2, len(keywords)):
            missing.append(subtask)
    return missing


def action_evidence_text(tool: str, args: Mapping[str, Any] | None, result: Mapping[str, Any] | None) -> str:
    """One-line evidence digest of a tool call for coverage matching."""
    chunks = [tool]
    for key in ("query", "text", "url", "target", "selector"):
        if args and args.get(key) is not None:
            chunks.append(f"{key}:{str(args[key])[:120]}")
    if result:
        for key in ("url", "final_url", "title", "query", "warning", "reason", "error"):
            if result.get(key) is not None:
                chunks.append(f"{key}:{str(result[key])[:180]}")
        for key in ("text", "page_text", "content"):
            value = result.get(key)
            if isinstance(value, str) and value.strip():
                chunks.append(value[:240])
                break
    return " | ".join(chunks)


def observation_text(result: Mapping[str, Any] | None) -> str:
    """Readable page text carried by a tool result, if any."""
    if not result:
        return ""
    for key in ("page_text", "text", "content"):
        value = result.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""
