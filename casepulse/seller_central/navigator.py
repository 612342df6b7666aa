from __future__ import annotations

import asyncio
import contextlib
import enum
from dataclasses import dataclass
from typing import Any, Sequence

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from casepulse.errors import NavigationError
from casepulse.json_logger import JsonLogger, log_event
from casepulse.seller_central import page_selectors as sel
from casepulse.seller_central.run_config import BrandTarget

NAV_TIMEOUT_MS = 30_000
LANDMARK_TIMEOUT_MS = 10_000
SETTLE_TIMEOUT_MS = 15_000
TAB_CLOSE_TIMEOUT_SECONDS = 5.0


class BrandStatus(str, enum.Enum):
    SKIPPED = "skipped"
    OK = "ok"
    ERROR = "error"


@dataclass(frozen=True)
class BrandResult:
    brand_name: str
    status: BrandStatus
    requested_url: str = ""
    final_url: str | None = None
    reason: str | None = None

    @classmethod
    def skipped(cls, target: BrandTarget) -> BrandResult:
        return cls(brand_name=target.brand_name, status=BrandStatus.SKIPPED, reason="URL not configured - skipped")

    @classmethod
    def ok(cls, target: BrandTarget, final_url: str) -> BrandResult:
        return cls(
            brand_name=target.brand_name,
            status=BrandStatus.OK,
            requested_url=target.brand_url,
            final_url=final_url,
        )

    @classmethod
    def error(cls, target: BrandTarget, reason: str, final_url: str | None = None) -> BrandResult:
        return cls(
            brand_name=target.brand_name,
            status=BrandStatus.ERROR,
            requested_url=target.brand_url,
            final_url=final_url,
            reason=reason,
        )


class BrandNavigator:
    def __init__(
        self,
        *,
        logger: JsonLogger,
        nav_timeout_ms: int = NAV_TIMEOUT_MS,
        landmark_timeout_ms: int = LANDMARK_TIMEOUT_MS,
        concurrency: int = 1,
    ) -> None:
        self.logger = logger
        self.nav_timeout_ms = nav_timeout_ms
        self.landmark_timeout_ms = landmark_timeout_ms
        self.concurrency = max(1, concurrency)

    async def open_single(self, page: Any, target: BrandTarget) -> BrandResult:
        """Navigate the signed-in page itself to the brand URL and report where it landed."""

        if not target.brand_url:
            raise NavigationError(f"Brand {target.brand_name} has no URL configured")

        log_event(
            logger=self.logger,
            phase="navigation",
            message="Opening brand",
            brand_name=target.brand_name,
            brand_url=target.brand_url,
        )
        try:
            await page.goto(target.brand_url, wait_until="domcontentloaded", timeout=self.nav_timeout_ms)
        except PlaywrightError as exc:
            raise NavigationError(f"Failed to load {target.brand_name}: {exc}") from exc

        try:
            await page.wait_for_load_state("networkidle", timeout=SETTLE_TIMEOUT_MS)
        except PlaywrightTimeoutError:
            log_event(
                logger=self.logger,
                phase="navigation",
                status="warn",
                message="Brand page did not go idle; continuing",
                brand_name=target.brand_name,
            )

        result = BrandResult.ok(target, page.url)
        log_event(
            logger=self.logger,
            phase="navigation",
            message="Brand loaded",
            brand_name=target.brand_name,
            requested_url=target.brand_url,
            final_url=result.final_url,
        )
        return result

    async def process_batch(self, context: Any, targets: Sequence[BrandTarget]) -> list[BrandResult]:
        """Attempt every target, returning one result per target in input order."""

        semaphore = asyncio.Semaphore(self.concurrency)

        async def _bounded(target: BrandTarget) -> BrandResult:
            async with semaphore:
                return await self._open_in_new_tab(context, target)

        if self.concurrency == 1:
            results = [await self._open_in_new_tab(context, target) for target in targets]
        else:
            results = list(await asyncio.gather(*(_bounded(target) for target in targets)))

        log_event(
            logger=self.logger,
            phase="navigation",
            message="Brand batch complete",
            loaded=[r.brand_name for r in results if r.status is BrandStatus.OK],
            failed=[r.brand_name for r in results if r.status is BrandStatus.ERROR],
            skipped=[r.brand_name for r in results if r.status is BrandStatus.SKIPPED],
        )
        return results

    async def _open_in_new_tab(self, context: Any, target: BrandTarget) -> BrandResult:
        if not target.brand_url:
            log_event(
                logger=self.logger,
                phase="navigation",
                status="warn",
                message="Skipping brand without URL",
                brand_name=target.brand_name,
            )
            return BrandResult.skipped(target)

        tab = None
        try:
            tab = await context.new_page()
            await tab.goto(target.brand_url, wait_until="networkidle", timeout=self.nav_timeout_ms)
            await tab.wait_for_selector(sel.BRAND_PAGE_LANDMARKS, timeout=self.landmark_timeout_ms)
            result = BrandResult.ok(target, tab.url)
            log_event(
                logger=self.logger,
                phase="navigation",
                message="Brand loaded",
                brand_name=target.brand_name,
                final_url=result.final_url,
            )
            return result
        except Exception as exc:
            log_event(
                logger=self.logger,
                phase="navigation",
                status="error",
                message="Brand failed to load",
                brand_name=target.brand_name,
                brand_url=target.brand_url,
                error=str(exc),
            )
            return BrandResult.error(target, str(exc), final_url=getattr(tab, "url", None))
        finally:
            if tab is not None:
                with contextlib.suppress(Exception):
                    await asyncio.wait_for(tab.close(), timeout=TAB_CLOSE_TIMEOUT_SECONDS)
