"""Explicit page-state predicates for the Seller Central sign-in flow.

Every state the login flow branches on is one member of :class:`PageState`
backed by one :class:`PagePredicate`, so the orchestrator dispatches on a
closed set of states instead of probing the DOM ad hoc.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from playwright.async_api import Error as PlaywrightError

from casepulse.seller_central import page_selectors as sel


class PageState(str, enum.Enum):
    ALREADY_AUTHENTICATED = "already_authenticated"
    NEEDS_EMAIL = "needs_email"
    NEEDS_PASSWORD = "needs_password"
    TWO_FACTOR_REQUIRED = "two_factor_required"
    CAPTCHA_BLOCKED = "captcha_blocked"
    FAILURE_PHRASE_MATCHED = "failure_phrase_matched"


async def page_text(page: Any) -> str:
    """Lower-cased visible body text; empty while the page is mid-navigation."""

    try:
        return (await page.inner_text("body")).lower()
    except PlaywrightError:
        return ""


@dataclass(frozen=True)
class PagePredicate:
    selector: str | None = None
    require_visible: bool = False
    text_markers: Sequence[str] = ()

    async def matches(self, page: Any, *, body_text: str | None = None) -> bool:
        if self.selector and await self._selector_matches(page):
            return True
        if self.text_markers:
            text = body_text if body_text is not None else await page_text(page)
            return any(marker in text for marker in self.text_markers)
        return False

    async def _selector_matches(self, page: Any) -> bool:
        locator = page.locator(self.selector)
        try:
            if self.require_visible:
                return await locator.first.is_visible()
            return await locator.count() > 0
        except PlaywrightError:
            return False


DEFAULT_PREDICATES: Mapping[PageState, PagePredicate] = {
    PageState.ALREADY_AUTHENTICATED: PagePredicate(selector=sel.AUTHENTICATED_LANDMARKS),
    PageState.NEEDS_EMAIL: PagePredicate(selector=sel.LOGIN_EMAIL),
    PageState.NEEDS_PASSWORD: PagePredicate(selector=sel.LOGIN_PASSWORD, require_visible=True),
    PageState.TWO_FACTOR_REQUIRED: PagePredicate(
        selector=sel.OTP_INPUT, text_markers=sel.TWO_FACTOR_TEXT_MARKERS
    ),
    PageState.CAPTCHA_BLOCKED: PagePredicate(
        selector=sel.CAPTCHA_IMAGE, text_markers=sel.CAPTCHA_TEXT_MARKERS
    ),
    PageState.FAILURE_PHRASE_MATCHED: PagePredicate(text_markers=sel.FAILURE_TEXT_MARKERS),
}


class PageClassifier:
    def __init__(self, predicates: Mapping[PageState, PagePredicate] | None = None) -> None:
        self.predicates = dict(predicates or DEFAULT_PREDICATES)

    async def is_state(self, page: Any, state: PageState) -> bool:
        return await self.predicates[state].matches(page)

    async def detect(self, page: Any, *candidates: PageState) -> PageState | None:
        """Return the first candidate (in the given order) the page currently shows."""

        body_text: str | None = None
        for state in candidates:
            predicate = self.predicates[state]
            if predicate.text_markers and body_text is None:
                body_text = await page_text(page)
            if await predicate.matches(page, body_text=body_text):
                return state
        return None

    async def classify_entry(self, page: Any) -> PageState:
        """Classify the page reached from the start URL."""

        detected = await self.detect(page, PageState.ALREADY_AUTHENTICATED, PageState.NEEDS_PASSWORD)
        return detected or PageState.NEEDS_EMAIL
