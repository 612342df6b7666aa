"""Process-level wrapper around one Seller Central login run.

Resolves the run configuration, owns the single browser instance, enforces
the global timeout (browser launch included) and guarantees cleanup. On
expiry the browser is closed before the run is cancelled, so a wedged
Playwright call cannot hold the process open. The only path that leaves the
browser open is ``HANDOFF_TO_OPERATOR`` (single-brand run that reached the
brand page), which is entered after the timeout has been disarmed.
"""

from __future__ import annotations

import asyncio
import contextlib
import enum
import json
import signal
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List

from playwright.async_api import async_playwright

from casepulse.common.store import SecretStore
from casepulse.config import Config
from casepulse.errors import CasePulseError, ConfigurationError, NotFoundError, RunTimeout
from casepulse.json_logger import JsonLogger, log_event, timed_event
from casepulse.seller_central.browser import launch_browser, new_session_context
from casepulse.seller_central.login import LoginOrchestrator, LoginTimings
from casepulse.seller_central.navigator import BrandNavigator, BrandResult, BrandStatus
from casepulse.seller_central.paths import resolve_debug_dir
from casepulse.seller_central.run_config import AutomationOverrides, ConfigResolver, RunConfig


class TerminalState(str, enum.Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    HANDOFF_TO_OPERATOR = "handoff_to_operator"


EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIGURATION = 2

CANCEL_GRACE_SECONDS = 2.0
BROWSER_CLOSE_TIMEOUT_SECONDS = 10.0


@dataclass(frozen=True)
class RunRequest:
    brand_id: int | None = None
    account_id: int | None = None
    overrides: AutomationOverrides = field(default_factory=AutomationOverrides)


@dataclass
class RunResult:
    terminal: TerminalState
    message: str
    exit_code: int = EXIT_OK
    step: str | None = None
    account_name: str | None = None
    brand_name: str | None = None
    final_url: str | None = None
    brands: List[BrandResult] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return self.terminal is not TerminalState.FAILED

    def to_dict(self) -> Dict[str, Any]:
        duration = f"{self.duration_seconds:.2f}s"
        if not self.success:
            return {"success": False, "step": self.step, "message": self.message, "duration": duration}

        payload: Dict[str, Any] = {
            "success": True,
            "message": self.message,
            "terminalState": self.terminal.value,
            "accountName": self.account_name,
            "duration": duration,
        }
        if self.brand_name is not None:
            payload["brandName"] = self.brand_name
            payload["finalUrl"] = self.final_url
        else:
            payload["brandsLoaded"] = [r.brand_name for r in self.brands if r.status is BrandStatus.OK]
            payload["brandsFailed"] = [r.brand_name for r in self.brands if r.status is BrandStatus.ERROR]
            payload["brandsSkipped"] = [r.brand_name for r in self.brands if r.status is BrandStatus.SKIPPED]
            payload["finalUrls"] = {
                r.brand_name: r.final_url for r in self.brands if r.status is BrandStatus.OK
            }
        return payload


def _consume_outcome(task: asyncio.Future) -> None:
    # A run abandoned after the timeout may still fail later.
    if not task.cancelled():
        task.exception()


async def wait_for_operator(logger: JsonLogger) -> None:
    """Block until the operator stops the process (Ctrl+C / SIGTERM)."""

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Some environments (e.g. Windows) do not support custom signal handlers.
            pass

    log_event(
        logger=logger,
        phase="handoff",
        message="Browser will remain open on the brand page. Press Ctrl+C to close.",
    )
    await stop_event.wait()
    log_event(logger=logger, phase="handoff", message="Shutdown signal received; closing browser")


class RunSupervisor:
    def __init__(
        self,
        *,
        app_config: Config,
        logger: JsonLogger,
        store_factory: Callable[[str], Any] = SecretStore,
        playwright_factory: Callable[[], Any] = async_playwright,
        launcher: Callable[..., Awaitable[Any]] = launch_browser,
        operator_hold: Callable[[JsonLogger], Awaitable[None]] = wait_for_operator,
        login_timings: LoginTimings | None = None,
        batch_concurrency: int = 1,
    ) -> None:
        self.app_config = app_config
        self.logger = logger
        self.store_factory = store_factory
        self.playwright_factory = playwright_factory
        self.launcher = launcher
        self.operator_hold = operator_hold
        self.login_timings = login_timings
        self.navigator = BrandNavigator(logger=logger, concurrency=batch_concurrency)
        self._browser: Any = None
        self._expired = False

    async def run(self, request: RunRequest) -> RunResult:
        started = time.perf_counter()
        log_event(
            logger=self.logger,
            phase="init",
            message="Starting Seller Central login run",
            brand_id=request.brand_id,
            account_id=request.account_id,
        )

        try:
            run_config = await self._load_run_config(request)
        except (ConfigurationError, NotFoundError) as exc:
            return self._finish(self._failure(exc, started, exit_code=EXIT_CONFIGURATION), request)
        except CasePulseError as exc:
            return self._finish(self._failure(exc, started), request)

        return await self._run_browser(request, run_config, started)

    async def _load_run_config(self, request: RunRequest) -> RunConfig:
        if request.brand_id is None and request.account_id is None:
            raise ConfigurationError("A brand id or an account id is required")

        store = self.store_factory(self.app_config.database_url)
        try:
            resolver = ConfigResolver(store, secret_key=self.app_config.encryption_key, logger=self.logger)
            run_config = await resolver.resolve(
                brand_id=request.brand_id,
                account_id=request.account_id,
                overrides=request.overrides,
            )
        finally:
            with contextlib.suppress(Exception):
                await store.close()

        run_config.validate()
        log_event(
            logger=self.logger,
            phase="config",
            message="Run configuration resolved",
            account_name=run_config.account_name,
            mode="single" if run_config.is_single_target else "batch",
            headless=run_config.settings.headless,
            timeout_ms=run_config.settings.timeout_ms,
            start_url=run_config.settings.start_url,
        )
        return run_config

    async def _run_browser(self, request: RunRequest, run_config: RunConfig, started: float) -> RunResult:
        timeout_ms = run_config.settings.timeout_ms
        handed_off = False
        self._expired = False
        async with self.playwright_factory() as playwright:
            task = asyncio.ensure_future(self._launch_and_drive(playwright, run_config))
            task.add_done_callback(_consume_outcome)
            try:
                done, _ = await asyncio.wait({task}, timeout=timeout_ms / 1000)
                if task in done:
                    result = task.result()
                    handed_off = result.terminal is TerminalState.HANDOFF_TO_OPERATOR
                else:
                    await self._expire(task)
                    result = self._failure(RunTimeout(f"Run exceeded the {timeout_ms} ms timeout"), started)
            except Exception as exc:
                result = self._failure(exc, started)
            finally:
                if not task.done():
                    task.cancel()
                if not handed_off:
                    await self._close_browser()

            result.account_name = result.account_name or run_config.account_name
            result.duration_seconds = time.perf_counter() - started
            self._finish(result, request, run_config)
            if handed_off:
                # Hold inside the Playwright session so the browser stays up.
                await self.operator_hold(self.logger)
        return result

    async def _expire(self, task: asyncio.Future) -> None:
        """Close the browser first so pending Playwright calls fail, then cancel the run."""

        self._expired = True
        log_event(logger=self.logger, phase="timeout", status="error", message="Global timeout reached; closing browser")
        await self._close_browser()
        task.cancel()
        await asyncio.wait({task}, timeout=CANCEL_GRACE_SECONDS)
        if not task.done():
            log_event(
                logger=self.logger,
                phase="timeout",
                status="warn",
                message="Run did not unwind within the grace period; abandoning it",
            )

    async def _launch_and_drive(self, playwright: Any, run_config: RunConfig) -> RunResult:
        browser = await self.launcher(
            playwright=playwright,
            logger=self.logger,
            headless=run_config.settings.headless,
            chrome_executable=self.app_config.chrome_executable,
        )
        self._browser = browser
        if self._expired:
            # Launch finished after the deadline.
            await self._close_browser()
            raise RunTimeout("Browser launched after the run timed out")
        return await self._drive(browser, run_config)

    async def _drive(self, browser: Any, run_config: RunConfig) -> RunResult:
        context = await new_session_context(browser)
        page = await context.new_page()

        with timed_event(logger=self.logger, phase="login", message="Seller Central login"):
            outcome = await LoginOrchestrator(
                page, run_config=run_config, logger=self.logger, timings=self.login_timings
            ).run()

        if run_config.is_single_target:
            brand_result = await self.navigator.open_single(page, run_config.brand)
            return RunResult(
                terminal=TerminalState.HANDOFF_TO_OPERATOR,
                message=f"Login completed for {run_config.account_name} - {run_config.brand.brand_name}",
                account_name=run_config.account_name,
                brand_name=run_config.brand.brand_name,
                final_url=brand_result.final_url,
                brands=[brand_result],
            )

        results = await self.navigator.process_batch(context, run_config.batch)
        return RunResult(
            terminal=TerminalState.COMPLETED,
            message=f"{outcome.message}; brand navigation completed",
            account_name=run_config.account_name,
            brands=results,
        )

    async def _close_browser(self) -> None:
        browser, self._browser = self._browser, None
        if browser is None:
            return
        with contextlib.suppress(Exception):
            await asyncio.wait_for(browser.close(), timeout=BROWSER_CLOSE_TIMEOUT_SECONDS)
        log_event(logger=self.logger, phase="cleanup", message="Browser closed")

    def _failure(self, exc: BaseException, started: float, *, exit_code: int = EXIT_FAILED) -> RunResult:
        step = getattr(exc, "step", "run")
        state = getattr(exc, "state", None)
        log_event(
            logger=self.logger,
            phase=step,
            status="error",
            message=str(exc) or type(exc).__name__,
            exc_type=type(exc).__name__,
            login_state=state,
        )
        return RunResult(
            terminal=TerminalState.FAILED,
            message=str(exc) or type(exc).__name__,
            exit_code=exit_code,
            step=step,
            duration_seconds=time.perf_counter() - started,
        )

    def _finish(self, result: RunResult, request: RunRequest, run_config: RunConfig | None = None) -> RunResult:
        log_event(
            logger=self.logger,
            phase="result",
            status="ok" if result.success else "error",
            message=result.message,
            result=result.to_dict(),
        )
        self._write_debug_artifact(result, request, run_config)
        return result

    def _write_debug_artifact(self, result: RunResult, request: RunRequest, run_config: RunConfig | None) -> None:
        payload = {
            "run_id": self.logger.run_id,
            "written_at": datetime.now(timezone.utc).isoformat(),
            "brand_id": request.brand_id,
            "account_id": request.account_id,
            "account_name": run_config.account_name if run_config else None,
            "terminal_state": result.terminal.value,
            "brands": [
                {
                    "brand_name": item.brand_name,
                    "status": item.status.value,
                    "requested_url": item.requested_url,
                    "reached_url": item.final_url,
                }
                for item in result.brands
            ],
        }
        if run_config is not None and run_config.brand is not None:
            payload["brand_name"] = run_config.brand.brand_name
            payload["requested_brand_url"] = run_config.brand.brand_url
            payload["reached_url"] = result.final_url
        try:
            path = resolve_debug_dir(self.app_config.debug_artifact_dir) / f"{self.logger.run_id}_navigation.json"
            path.write_text(json.dumps(payload, indent=2, default=str), encoding="utf-8")
        except OSError as exc:
            log_event(
                logger=self.logger,
                phase="result",
                status="warn",
                message="Could not write debug artifact",
                error=str(exc),
            )
