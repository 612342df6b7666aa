"""Seller Central sign-in state machine.

``START -> NAVIGATED -> {ALREADY_AUTHENTICATED | NEEDS_EMAIL | NEEDS_PASSWORD}``
then email, password and (optionally) TOTP submission, ending in
``AUTHENTICATED`` or ``FAILED``. Each step only starts after the previous
submit's navigation/settle wait has resolved.

Fields that are already filled or disabled are left alone: the provider keeps
form state across redirects within a session and re-submitting a satisfied
field can abort the flow. A CAPTCHA at any required-field wait is fatal.
"""

from __future__ import annotations

import asyncio
import binascii
import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import pyotp
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from casepulse.errors import (
    CaptchaDetected,
    ConfigurationError,
    InvalidCredentials,
    LoginError,
    LoginFormNotFound,
)
from casepulse.json_logger import JsonLogger, log_event
from casepulse.seller_central import page_selectors as sel
from casepulse.seller_central.classifier import PageClassifier, PageState
from casepulse.seller_central.run_config import RunConfig


class LoginState(str, enum.Enum):
    START = "start"
    NAVIGATED = "navigated"
    ALREADY_AUTHENTICATED = "already_authenticated"
    NEEDS_EMAIL = "needs_email"
    EMAIL_SUBMITTED = "email_submitted"
    NEEDS_PASSWORD = "needs_password"
    PASSWORD_SUBMITTED = "password_submitted"
    TWO_FACTOR_REQUIRED = "two_factor_required"
    TWO_FACTOR_SUBMITTED = "two_factor_submitted"
    AUTHENTICATED = "authenticated"
    FAILED = "failed"


SUCCESS_STATES = frozenset({LoginState.ALREADY_AUTHENTICATED, LoginState.AUTHENTICATED})


@dataclass(frozen=True)
class LoginTimings:
    navigation_timeout_ms: int = 30_000
    field_timeout_ms: int = 15_000
    otp_field_timeout_ms: int = 10_000
    submit_navigation_timeout_ms: int = 20_000
    keystroke_delay_ms: int = 100
    settle_delay_ms: int = 2_000


@dataclass
class LoginOutcome:
    state: LoginState
    message: str
    history: list[LoginState] = field(default_factory=list)
    final_url: str | None = None

    @property
    def success(self) -> bool:
        return self.state in SUCCESS_STATES


def generate_totp_code(two_fa_key: str, *, for_time: datetime | int | None = None) -> str:
    """Standard 6-digit / 30 s TOTP for a base32 key as shown by Seller Central."""

    secret = "".join(two_fa_key.split()).upper()
    try:
        totp = pyotp.TOTP(secret)
        return totp.at(for_time) if for_time is not None else totp.now()
    except (binascii.Error, ValueError) as exc:
        raise ConfigurationError("Stored 2FA key is not a valid base32 secret") from exc


class LoginOrchestrator:
    def __init__(
        self,
        page: Any,
        *,
        run_config: RunConfig,
        logger: JsonLogger,
        classifier: PageClassifier | None = None,
        timings: LoginTimings | None = None,
    ) -> None:
        self.page = page
        self.run_config = run_config
        self.logger = logger
        self.classifier = classifier or PageClassifier()
        self.timings = timings or LoginTimings()
        self.state = LoginState.START
        self.history: list[LoginState] = [LoginState.START]

    async def run(self) -> LoginOutcome:
        try:
            return await self._run()
        except LoginError as exc:
            failed_in = self.state
            exc.state = exc.state or failed_in.value
            self._transition(LoginState.FAILED, message=str(exc), status="error", failed_in=failed_in.value)
            raise
        except ConfigurationError as exc:
            self._transition(LoginState.FAILED, message=str(exc), status="error", failed_in=self.state.value)
            raise
        except PlaywrightError as exc:
            failed_in = self.state
            self._transition(LoginState.FAILED, message=str(exc), status="error", failed_in=failed_in.value)
            raise LoginError(f"Browser error during login: {exc}", state=failed_in.value) from exc

    async def _run(self) -> LoginOutcome:
        await self._navigate_to_start()

        entry = await self.classifier.classify_entry(self.page)
        if entry is PageState.ALREADY_AUTHENTICATED:
            self._transition(LoginState.ALREADY_AUTHENTICATED, message="Already logged in")
            return self._outcome("Already logged in")

        if entry is PageState.NEEDS_PASSWORD:
            self._transition(LoginState.NEEDS_PASSWORD, message="Password field already visible")
        else:
            self._transition(LoginState.NEEDS_EMAIL)
            await self._submit_email()

        await self._submit_password()

        if await self.classifier.is_state(self.page, PageState.TWO_FACTOR_REQUIRED):
            self._transition(LoginState.TWO_FACTOR_REQUIRED, message="Two-step verification requested")
            await self._submit_two_factor()

        return await self._evaluate()

    # ── steps ──────────────────────────────────────────────────────────────

    async def _navigate_to_start(self) -> None:
        start_url = self.run_config.settings.start_url
        log_event(logger=self.logger, phase="login", message="Navigating to Seller Central", url=start_url)
        await self.page.goto(
            start_url,
            wait_until="networkidle",
            timeout=self.timings.navigation_timeout_ms,
        )
        self._transition(LoginState.NAVIGATED, url=self.page.url)

    async def _submit_email(self) -> None:
        await self._wait_for_field(sel.LOGIN_EMAIL, label="Login form", timeout_ms=self.timings.field_timeout_ms)
        email_field = self.page.locator(sel.LOGIN_EMAIL).first
        if await email_field.is_disabled() or (await email_field.input_value()).strip():
            log_event(
                logger=self.logger,
                phase="login",
                message="Email field already satisfied; skipping entry",
            )
        else:
            await email_field.press_sequentially(
                self.run_config.username, delay=self.timings.keystroke_delay_ms
            )
        await self._submit(sel.LOGIN_CONTINUE, step="email")
        self._transition(LoginState.EMAIL_SUBMITTED)

    async def _submit_password(self) -> None:
        await self._wait_for_field(sel.LOGIN_PASSWORD, label="Password", timeout_ms=self.timings.field_timeout_ms)
        password_field = self.page.locator(sel.LOGIN_PASSWORD).first
        await password_field.press_sequentially(
            self.run_config.password, delay=self.timings.keystroke_delay_ms
        )
        await self._submit(sel.LOGIN_SUBMIT, step="password")
        self._transition(LoginState.PASSWORD_SUBMITTED)

    async def _submit_two_factor(self) -> None:
        await self._wait_for_field(
            sel.OTP_INPUT, label="Two-step verification code", timeout_ms=self.timings.otp_field_timeout_ms
        )
        # Generated right before typing so the code is fresh in its 30 s window.
        code = generate_totp_code(self.run_config.two_fa_key)
        self.logger.mask(code)
        await self.page.locator(sel.OTP_INPUT).first.press_sequentially(
            code, delay=self.timings.keystroke_delay_ms
        )
        await self._remember_device()
        await self._submit(sel.OTP_SUBMIT, step="two_factor")
        self._transition(LoginState.TWO_FACTOR_SUBMITTED)

    async def _remember_device(self) -> None:
        checkbox = self.page.locator(sel.OTP_REMEMBER_DEVICE)
        try:
            if await checkbox.count() == 0:
                return
            await checkbox.first.check()
            log_event(logger=self.logger, phase="login", message="Selected 'remember this device'")
        except PlaywrightError as exc:
            log_event(
                logger=self.logger,
                phase="login",
                status="warn",
                message="Could not select 'remember this device'",
                error=str(exc),
            )

    async def _evaluate(self) -> LoginOutcome:
        detected = await self.classifier.detect(
            self.page, PageState.CAPTCHA_BLOCKED, PageState.FAILURE_PHRASE_MATCHED
        )
        if detected is PageState.CAPTCHA_BLOCKED:
            raise CaptchaDetected("CAPTCHA detected - manual intervention required")
        if detected is PageState.FAILURE_PHRASE_MATCHED:
            raise InvalidCredentials("Invalid credentials or 2FA code")
        self._transition(LoginState.AUTHENTICATED, message="Login successful", url=self.page.url)
        return self._outcome("Login successful")

    # ── helpers ────────────────────────────────────────────────────────────

    async def _wait_for_field(self, selector: str, *, label: str, timeout_ms: int) -> None:
        if await self.classifier.is_state(self.page, PageState.CAPTCHA_BLOCKED):
            raise CaptchaDetected("CAPTCHA detected - manual intervention required")
        try:
            # A CAPTCHA image ends the wait early as well.
            await self.page.wait_for_selector(
                f"{selector}, {sel.CAPTCHA_IMAGE}", state="visible", timeout=timeout_ms
            )
        except PlaywrightTimeoutError:
            if await self.classifier.is_state(self.page, PageState.CAPTCHA_BLOCKED):
                raise CaptchaDetected("CAPTCHA detected - manual intervention required")
            raise LoginFormNotFound(f"{label} field not found - page may have changed")
        if await self.classifier.is_state(self.page, PageState.CAPTCHA_BLOCKED):
            raise CaptchaDetected("CAPTCHA detected - manual intervention required")

    async def _submit(self, selector: str, *, step: str) -> None:
        try:
            async with self.page.expect_navigation(
                wait_until="networkidle",
                timeout=self.timings.submit_navigation_timeout_ms,
            ):
                await self.page.locator(selector).first.click()
        except PlaywrightTimeoutError:
            # Some transitions are rendered client-side without a navigation.
            log_event(
                logger=self.logger,
                phase="login",
                status="warn",
                message="No navigation after submit; continuing",
                step=step,
            )
        await asyncio.sleep(self.timings.settle_delay_ms / 1000)

    def _transition(self, state: LoginState, *, message: str = "", status: str = "ok", **fields: Any) -> None:
        self.state = state
        self.history.append(state)
        log_event(
            logger=self.logger,
            phase="login",
            status=status,
            message=message or f"Login state -> {state.value}",
            state=state.value,
            **fields,
        )

    def _outcome(self, message: str) -> LoginOutcome:
        return LoginOutcome(
            state=self.state,
            message=message,
            history=list(self.history),
            final_url=getattr(self.page, "url", None),
        )
