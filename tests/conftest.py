# tests/conftest.py
"""
Shared pytest fixtures for chuk_ai_browser_agent tests.

Provides scripted fakes for the two external boundaries:
- FakeProvider: returns queued chat responses (or raises queued exceptions)
- FakeDriver: returns queued per-tool results and records every call
"""

import logging
from typing import Any

import pytest

from chuk_ai_browser_agent.agent.protocols import ChatResponse, PageInfo

# Configure logging for tests
logging.basicConfig(level=logging.WARNING)
logging.getLogger("chuk_ai_browser_agent").setLevel(logging.DEBUG)


# ---------------------------------------------------------------------------
# Response helpers
# ---------------------------------------------------------------------------


def tool_call(name: str, call_id: str | None = None, **arguments: Any) -> dict[str, Any]:
    return {"id": call_id or f"call_{name}", "name": name, "arguments": arguments}


def respond(*calls: dict[str, Any], text: str = "", usage: dict[str, Any] | None = None) -> ChatResponse:
    return ChatResponse(
        text=text,
        tool_calls=list(calls),
        usage=usage or {"prompt_tokens": 100, "completion_tokens": 20},
    )


def done_response(answer: str = "42", summary: str = "Found it", text: str = "") -> ChatResponse:
    return respond(tool_call("done", summary=summary, answer=answer), text=text)


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeProvider:
    """Scripted model provider. Exceptions in the script are raised."""

    def __init__(
        self,
        script: list[Any] | None = None,
        *,
        provider_id: str = "fake",
        model: str = "fake-model",
        supports_tools: bool = True,
        supports_vision: bool = False,
        context_window_tokens: int | None = 128_000,
        default: Any = None,
    ):
        self.provider_id = provider_id
        self.model = model
        self.supports_tools = supports_tools
        self.supports_vision = supports_vision
        self.context_window_tokens = context_window_tokens
        self.script = list(script or [])
        self.default = default
        self.calls: list[dict[str, Any]] = []

    async def chat(self, messages, tools, options):
        self.calls.append({"messages": messages, "tools": tools, "options": options})
        if self.script:
            item = self.script.pop(0)
        elif self.default is not None:
            item = self.default
        else:
            item = done_response()
        if isinstance(item, BaseException):
            raise item
        return item

    def tool_names(self, call_index: int) -> set[str]:
        return {t["function"]["name"] for t in self.calls[call_index]["tools"]}


class FakeDriver:
    """Scripted automation driver.

    ``results`` maps tool name to a list of queued results; when a queue is
    empty the tool's default applies (``{"success": True}`` for most tools).
    """

    def __init__(
        self,
        results: dict[str, list[Any]] | None = None,
        *,
        url: str = "https://example.com/",
        title: str = "Example",
        page_texts: list[str] | None = None,
    ):
        self.results = {k: list(v) for k, v in (results or {}).items()}
        self.page = PageInfo(tab_id=1, url=url, title=title)
        self.page_texts = list(page_texts or [])
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.navigation_waits: list[float] = []

    def calls_for(self, tool: str) -> list[dict[str, Any]]:
        return [args for name, args in self.calls if name == tool]

    async def execute(self, tool, args):
        self.calls.append((tool, args))
        queue = self.results.get(tool)
        if queue:
            item = queue.pop(0)
            if isinstance(item, BaseException):
                raise item
            return item
        if tool == "get_page_text":
            text = self.page_texts.pop(0) if self.page_texts else "Example page content"
            return {"success": True, "text": text}
        if tool == "read_page":
            return {"success": True, "tree": {"role": "document", "name": self.page.title, "children": []}}
        if tool == "navigate":
            self.page = self.page.model_copy(update={"url": args.get("url", self.page.url)})
            return {"success": True}
        return {"success": True}

    async def page_info(self):
        return self.page

    async def wait_for_navigation(self, timeout_s):
        self.navigation_waits.append(timeout_s)
        return True


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_driver():
    return FakeDriver()


@pytest.fixture
def sleeps():
    """Recorder for an injected sleep function."""
    return []


@pytest.fixture
def fake_sleep(sleeps):
    async def sleep(seconds):
        sleeps.append(seconds)

    return sleep
