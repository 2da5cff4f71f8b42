# chuk_ai_browser_agent/guards/constants.py
"""Shared constants for the guards subsystem.

Centralizes tool-result error codes, their families and the tool groupings
the guards and the done contract reason about.
"""

from __future__ import annotations

from enum import Enum

# =============================================================================
# Error codes (the ``code`` field of a tool result envelope)
# =============================================================================

MISSING_TARGET = "MISSING_TARGET"
INVALID_TARGET = "INVALID_TARGET"
ELEMENT_NOT_FOUND = "ELEMENT_NOT_FOUND"
STALE_ELEMENT = "STALE_ELEMENT"
ELEMENT_DETACHED = "ELEMENT_DETACHED"
INVALID_ACTION = "INVALID_ACTION"
NOT_INTERACTABLE = "NOT_INTERACTABLE"
WAIT_TIMEOUT = "WAIT_TIMEOUT"
TIMEOUT = "TIMEOUT"
DONE_CONTRACT_FAILED = "DONE_CONTRACT_FAILED"
PREMATURE_DONE = "PREMATURE_DONE"
DONE_COVERAGE_FAILED = "DONE_COVERAGE_FAILED"
DUPLICATE_CALL = "DUPLICATE_CALL"
ABORTED_BY_NAVIGATION = "ABORTED_BY_NAVIGATION"
INVALID_ARGUMENTS = "INVALID_ARGUMENTS"
UNKNOWN_TOOL = "UNKNOWN_TOOL"
DRIVER_ERROR = "DRIVER_ERROR"
JS_DOMAIN_DENIED = "JS_DOMAIN_DENIED"
UNKNOWN_ERROR = "UNKNOWN_ERROR"


class ErrorFamily(str, Enum):
    """Groups of error codes that share a recovery strategy."""

    TARGET = "target"  # missing or invalid target
    VANISHED = "vanished"  # element went away between observe and act
    INVALID_ACTION = "invalid_action"
    WAIT_TIMEOUT = "wait_timeout"
    CONTRACT = "contract"
    OTHER = "other"


ERROR_FAMILIES: dict[str, ErrorFamily] = {
    MISSING_TARGET: ErrorFamily.TARGET,
    INVALID_TARGET: ErrorFamily.TARGET,
    ELEMENT_NOT_FOUND: ErrorFamily.TARGET,
    STALE_ELEMENT: ErrorFamily.VANISHED,
    ELEMENT_DETACHED: ErrorFamily.VANISHED,
    INVALID_ACTION: ErrorFamily.INVALID_ACTION,
    NOT_INTERACTABLE: ErrorFamily.INVALID_ACTION,
    WAIT_TIMEOUT: ErrorFamily.WAIT_TIMEOUT,
    TIMEOUT: ErrorFamily.WAIT_TIMEOUT,
    DONE_CONTRACT_FAILED: ErrorFamily.CONTRACT,
    PREMATURE_DONE: ErrorFamily.CONTRACT,
    DONE_COVERAGE_FAILED: ErrorFamily.CONTRACT,
}


def error_family(code: str | None) -> ErrorFamily:
    return ERROR_FAMILIES.get(code or "", ErrorFamily.OTHER)


# =============================================================================
# Tool groupings
# =============================================================================

PRIMARY_INTERACTION_TOOL = "click"

TERMINAL_TOOLS = frozenset({"done", "fail"})
LOCAL_TOOLS = frozenset({"save_progress"})
STRUCTURAL_READ_TOOLS = frozenset({"read_page", "get_page_text", "extract_structured"})
TEXT_SEARCH_TOOLS = frozenset({"find_text"})
# Successful calls to these count as reading page content
CONTENT_READ_TOOLS = STRUCTURAL_READ_TOOLS | TEXT_SEARCH_TOOLS | frozenset({"find"})
OBSERVATION_TOOLS = STRUCTURAL_READ_TOOLS | TEXT_SEARCH_TOOLS | frozenset({"find", "screenshot", "list_tabs"})
NAVIGATION_TOOLS = frozenset({"navigate", "back", "forward", "reload", "open_tab", "switch_tab", "close_tab"})
# Tools that load a new document; the page must be read again before done
PAGE_LOAD_TOOLS = frozenset({"navigate", "open_tab"})
INTERACTION_TOOLS = frozenset(
    {"click", "type", "select", "hover", "press_key", "scroll", "drag", "form_set", "javascript"}
)

# Offered after repeated text-only replies
RECOVERY_TOOLS_NO_PAGE = frozenset({"navigate", "done", "fail"})
RECOVERY_TOOLS_ON_PAGE = frozenset({"read_page", "get_page_text", "find", "navigate", "done", "fail"})
