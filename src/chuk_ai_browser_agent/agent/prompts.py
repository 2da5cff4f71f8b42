# chuk_ai_browser_agent/agent/prompts.py
"""
System prompt, per-model addenda and the synthetic task-state message.

Provider/model quirks are handled by a lookup table: each row is a
provider id plus a model regex and the addendum appended to the system
prompt when it matches. The first matching row wins.

Usage::

    prompt = build_system_prompt("groq", "meta-llama/llama-4-maverick-17b-128e-instruct")
"""

from __future__ import annotations

import json
import re
from datetime import date
from typing import Any

from pydantic import BaseModel

from chuk_ai_browser_agent.models import Message
from chuk_ai_browser_agent.utils import truncate_text

BASE_SYSTEM_PROMPT = """You are a browser automation agent. Complete exactly one user task, then stop.

Rules:
- Every reply must call at least one tool. Plain text replies are not actions.
- Observe before acting: use read_page or find to get element ids, then act on those ids.
- Ids go stale after navigation. Re-read the page instead of reusing old ids.
- Use save_progress to record facts you will need later.
- When the task is complete call done with a short summary and the full answer.
  The answer must come from page content you actually read (get_page_text or read_page).
- If the task cannot be completed call fail with the reason.
Today is {today}."""


class PromptVariant(BaseModel):
    """One row of the addendum table."""

    name: str
    provider: str
    model_pattern: str
    addendum: str

    def matches(self, provider: str, model: str) -> bool:
        if self.provider != provider:
            return False
        return re.search(self.model_pattern, model.lower()) is not None


PROMPT_VARIANTS: tuple[PromptVariant, ...] = (
    PromptVariant(
        name="ollama-qwen3-vl",
        provider="ollama",
        model_pattern=r"qwen3[-_]?vl",
        addendum=(
            "Local vision model notes: keep replies short. Call one tool per turn. "
            "Never describe a tool call in text; emit the call itself."
        ),
    ),
    PromptVariant(
        name="fireworks-kimi-k2p5",
        provider="fireworks",
        model_pattern=r"kimi[-_]?k2p?5|kimi-k2\.5",
        addendum=(
            "Put the final values inside the done tool arguments, not in your reasoning. "
            "Both summary and answer are required strings."
        ),
    ),
    PromptVariant(
        name="groq-llama-4-maverick",
        provider="groq",
        model_pattern=r"llama[-_]?4[-_]?maverick",
        addendum=(
            "Tool arguments must be valid JSON objects. Use numeric element ids exactly as "
            "returned by read_page, without brackets."
        ),
    ),
    PromptVariant(
        name="siliconflow-glm-vision",
        provider="siliconflow",
        model_pattern=r"glm[-_]?4\.\dv",
        addendum=(
            "When a screenshot is attached, prefer ids from the latest read_page result over "
            "coordinates estimated from the image."
        ),
    ),
)


def select_prompt_variant(provider: str | None, model: str | None) -> PromptVariant | None:
    provider = (provider or "").strip().lower()
    model = model or ""
    for variant in PROMPT_VARIANTS:
        if variant.matches(provider, model):
            return variant
    return None


def build_system_prompt(provider: str | None = None, model: str | None = None, today: date | None = None) -> str:
    prompt = BASE_SYSTEM_PROMPT.replace("{today}", (today or date.today()).isoformat())
    variant = select_prompt_variant(provider, model)
    if variant is not None:
        prompt += "\n\n" + variant.addendum
    return prompt


def build_goal_message(goal: str, url: str = "", title: str = "") -> Message:
    lines = [f"Task: {goal}"]
    if url:
        lines.append(f"Current page: {title or '(untitled)'} - {url}")
    return Message.user("\n".join(lines))


def build_task_state_message(
    goal: str,
    step: int,
    max_steps: int,
    scratchpad: dict[str, Any] | None = None,
    summary_block: str = "",
    retrieved: str = "",
    max_scratchpad_chars: int = 4000,
    subgoals: str = "",
) -> Message:
    """The synthetic system message rebuilt before every model call."""
    lines = [
        "Task state:",
        f"Goal: {goal}",
        f"Step: {step + 1}/{max_steps} ({max_steps - step - 1} remaining)",
    ]
    if subgoals:
        lines.append("Sub-goals:\n" + subgoals)
    if scratchpad:
        serialized = json.dumps(scratchpad, ensure_ascii=False, default=str)
        lines.append("Saved progress: " + truncate_text(serialized, max_scratchpad_chars))
    if summary_block:
        lines.append(summary_block)
    if retrieved:
        lines.append("Relevant archived history:\n" + retrieved)
    return Message.system("\n".join(lines))


PLAN_PROMPT = (
    "Before acting, write a short numbered plan (3-7 steps) for the task below. "
    "Do not call tools. Reply with the plan only.\n\nTask: {goal}"
)

NO_TOOL_CALL_NUDGE = (
    "[SYSTEM] Your last reply did not call a tool. Call exactly one tool now from the tools offered. "
    "If the task is finished call done with summary and answer; if it is impossible call fail."
)

TOOL_CALL_REMINDER = "[SYSTEM] Your last reply did not call a tool. Continue by calling the tool for your next action."
