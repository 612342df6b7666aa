"""Chromium launch profile for Seller Central sessions."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List

from playwright.async_api import Browser, BrowserContext

from casepulse.json_logger import JsonLogger, log_event

LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-blink-features=AutomationControlled",
]
USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
VIEWPORT = {"width": 1920, "height": 1080}
HIDE_WEBDRIVER_SCRIPT = "Object.defineProperty(navigator, 'webdriver', { get: () => false });"


@dataclass(frozen=True)
class LaunchPlan:
    headless: bool
    executable_path: str | None = None
    args: List[str] = field(default_factory=lambda: list(LAUNCH_ARGS))

    @property
    def backend(self) -> str:
        return "local_chrome" if self.executable_path else "bundled_chromium"

    def kwargs(self, *, bundled: bool = False) -> Dict[str, Any]:
        options: Dict[str, Any] = {"headless": self.headless, "args": list(self.args)}
        if self.executable_path and not bundled:
            options["executable_path"] = self.executable_path
        return options


def plan_launch(*, headless: bool, chrome_executable: str = "", logger: JsonLogger) -> LaunchPlan:
    """Use the configured local Chrome when the file exists, bundled Chromium otherwise."""

    configured = (chrome_executable or "").strip()
    if configured and not Path(configured).is_file():
        log_event(
            logger=logger,
            phase="init",
            status="warn",
            message="Configured local Chrome executable missing; falling back to bundled Chromium",
            executable_path=configured,
        )
        configured = ""
    return LaunchPlan(headless=headless, executable_path=configured or None)


async def launch_browser(
    *,
    playwright: Any,
    logger: JsonLogger,
    headless: bool,
    chrome_executable: str = "",
) -> Browser:
    plan = plan_launch(headless=headless, chrome_executable=chrome_executable, logger=logger)
    log_event(
        logger=logger,
        phase="init",
        message="Launching browser",
        backend=plan.backend,
        executable_path=plan.executable_path,
        headless=plan.headless,
    )
    try:
        return await playwright.chromium.launch(**plan.kwargs())
    except Exception as exc:
        if plan.executable_path is None:
            raise
        log_event(
            logger=logger,
            phase="init",
            status="warn",
            message="Local Chrome launch failed; retrying with bundled Chromium",
            executable_path=plan.executable_path,
            error=str(exc),
        )
        return await playwright.chromium.launch(**plan.kwargs(bundled=True))


async def new_session_context(browser: Browser) -> BrowserContext:
    """Context with a desktop fingerprint and ``navigator.webdriver`` hidden on every page."""

    context = await browser.new_context(user_agent=USER_AGENT, viewport=VIEWPORT)
    await context.add_init_script(HIDE_WEBDRIVER_SCRIPT)
    return context
