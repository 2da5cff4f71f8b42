# chuk_ai_browser_agent/agent/intervention.py
"""Captcha / login wall detection.

Heuristics over the page url, title, visible text and the driver's form
field flags. Login walls are ignored when the goal itself is about signing
in, since then the form is the task rather than an obstacle.
"""

from __future__ import annotations

import re

from chuk_ai_browser_agent.models import InterventionEvent, InterventionKind

from .protocols import PageInfo

CAPTCHA_HINTS = (
    "captcha",
    "recaptcha",
    "hcaptcha",
    "i'm not a robot",
    "i am not a robot",
    "verify you are human",
    "are you a robot",
    "unusual traffic",
    "security check",
    "cf-challenge",
    "checking your browser",
)

LOGIN_HINTS = (
    "sign in to continue",
    "log in to continue",
    "please sign in",
    "please log in",
    "login required",
    "you must be logged in",
    "session expired",
)

PASSWORD_HINTS = ("password", "passcode", "one-time code", "verification code", "2-step verification")

AUTH_URL_HINT_RE = re.compile(r"/(login|signin|sign-in|auth|sso|oauth|account/login)(/|\?|$)", re.IGNORECASE)
AUTH_GOAL_RE = re.compile(r"\b(log ?in|sign ?in|sign up|register|authenticate|password)\b", re.IGNORECASE)


def goal_requests_auth(goal: str) -> bool:
    return bool(AUTH_GOAL_RE.search(goal or ""))


def detect_intervention(page: PageInfo, page_text: str = "", goal: str = "") -> InterventionEvent | None:
    """Return the intervention the page needs, or None."""
    haystack = f"{page.title}\n{page_text[:4000]}".lower()

    if any(hint in haystack for hint in CAPTCHA_HINTS) or "captcha" in page.url.lower():
        return InterventionEvent(
            kind=InterventionKind.CAPTCHA,
            message="A CAPTCHA is blocking the page. Solve it in the browser, then resume.",
            url=page.url,
        )

    if goal_requests_auth(goal):
        return None

    auth_url = bool(AUTH_URL_HINT_RE.search(page.url))
    login_text = any(hint in haystack for hint in LOGIN_HINTS)
    password_form = page.has_password_field and (auth_url or any(hint in haystack for hint in PASSWORD_HINTS))

    if login_text or password_form or page.has_otp_field:
        return InterventionEvent(
            kind=InterventionKind.LOGIN,
            message="The site requires signing in. Log in in the browser, then resume.",
            url=page.url,
        )
    return None
