"""Error taxonomy shared by the vault and the Seller Central runner."""

from __future__ import annotations


class CasePulseError(Exception):
    """Base class for failures that end a run with a reported step."""

    step = "run"


class ConfigurationError(CasePulseError):
    """Raised when configuration, identifiers or required secrets are missing/invalid."""

    step = "configuration"


class NotFoundError(CasePulseError):
    """Raised when an account or brand identifier does not resolve in the store."""

    step = "configuration"


class DecryptionError(CasePulseError):
    """Raised for malformed bundles or authentication-tag mismatches."""

    step = "decryption"


class LoginError(CasePulseError):
    step = "login"

    def __init__(self, message: str, *, state: str | None = None) -> None:
        super().__init__(message)
        self.state = state


class LoginFormNotFound(LoginError):
    """A required login field never appeared."""


class CaptchaDetected(LoginError):
    """The provider served a CAPTCHA; a human has to take over."""


class InvalidCredentials(LoginError):
    """The provider rejected the password or the one-time code."""


class NavigationError(CasePulseError):
    step = "navigation"


class RunTimeout(CasePulseError):
    step = "timeout"
