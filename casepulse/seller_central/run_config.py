from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Protocol

from casepulse.common.models import (
    DEFAULT_HEADLESS,
    DEFAULT_SELLER_CENTRAL_URL,
    DEFAULT_TIMEOUT_MS,
)
from casepulse.crypto import decrypt_secret
from casepulse.errors import ConfigurationError, NotFoundError
from casepulse.json_logger import JsonLogger, log_event

REQUIRED_SECRET_FIELDS = ("username", "password", "two_fa_key")


class AccountStore(Protocol):
    async def get_account(self, account_id: int, *, include_secrets: bool = False) -> Any: ...

    async def get_brand(self, brand_id: int) -> Any: ...

    async def list_brands_for_account(self, account_id: int) -> list[Any]: ...

    async def get_automation_config(self) -> Any: ...


@dataclass(frozen=True)
class AutomationSettings:
    headless: bool = DEFAULT_HEADLESS
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    start_url: str = DEFAULT_SELLER_CENTRAL_URL


@dataclass(frozen=True)
class AutomationOverrides:
    headless: bool | None = None
    timeout_ms: int | None = None
    start_url: str | None = None

    def with_fallback(self, other: AutomationOverrides) -> AutomationOverrides:
        """Fill unset fields from ``other`` (``self`` wins)."""

        return AutomationOverrides(
            headless=self.headless if self.headless is not None else other.headless,
            timeout_ms=self.timeout_ms if self.timeout_ms is not None else other.timeout_ms,
            start_url=self.start_url or other.start_url,
        )


@dataclass(frozen=True)
class BrandTarget:
    brand_name: str
    brand_url: str
    marketplace: str | None = None
    brand_id: int | None = None


@dataclass(frozen=True)
class RunConfig:
    account_name: str
    username: str
    password: str = field(repr=False)
    two_fa_key: str = field(repr=False)
    settings: AutomationSettings = field(default_factory=AutomationSettings)
    brand: BrandTarget | None = None
    batch: tuple[BrandTarget, ...] = ()
    account_id: int | None = None

    @property
    def is_single_target(self) -> bool:
        return self.brand is not None

    @property
    def brand_urls(self) -> Mapping[str, str]:
        return MappingProxyType({target.brand_name: target.brand_url for target in self.batch})

    def missing_secret_fields(self) -> list[str]:
        return [name for name in REQUIRED_SECRET_FIELDS if not getattr(self, name)]

    def validate(self) -> None:
        missing = self.missing_secret_fields()
        if missing:
            raise ConfigurationError(f"Missing required account fields: {', '.join(missing)}")
        if self.brand is not None and not self.brand.brand_url:
            raise ConfigurationError(f"Brand {self.brand.brand_name} has no URL configured")


def _stored_value(record: Any, attribute: str, default: Any) -> Any:
    if record is None:
        return default
    value = getattr(record, attribute, None)
    return default if value is None or value == "" else value


class ConfigResolver:
    """Build the immutable RunConfig for one run from the store and overrides."""

    def __init__(self, store: AccountStore, *, secret_key: str, logger: JsonLogger) -> None:
        self.store = store
        self.secret_key = secret_key
        self.logger = logger

    async def resolve(
        self,
        *,
        brand_id: int | None = None,
        account_id: int | None = None,
        overrides: AutomationOverrides | None = None,
    ) -> RunConfig:
        if brand_id is None and account_id is None:
            raise ConfigurationError("A brand id or an account id is required")
        if brand_id is not None and account_id is not None:
            raise ConfigurationError("Pass either a brand id or an account id, not both")

        settings = await self.resolve_settings(overrides or AutomationOverrides())
        if brand_id is not None:
            return await self._resolve_brand(brand_id, settings)
        return await self._resolve_account(account_id, settings)

    async def resolve_settings(self, overrides: AutomationOverrides) -> AutomationSettings:
        stored = await self.store.get_automation_config()
        if stored is None:
            log_event(
                logger=self.logger,
                phase="config",
                message="No stored automation config; using defaults",
            )
        # A missing record behaves exactly like one holding the defaults.
        return AutomationSettings(
            headless=(
                overrides.headless
                if overrides.headless is not None
                else bool(_stored_value(stored, "headless", DEFAULT_HEADLESS))
            ),
            timeout_ms=(
                overrides.timeout_ms
                if overrides.timeout_ms is not None
                else int(_stored_value(stored, "timeout_ms", DEFAULT_TIMEOUT_MS))
            ),
            start_url=overrides.start_url
            or str(_stored_value(stored, "seller_central_url", DEFAULT_SELLER_CENTRAL_URL)),
        )

    async def _resolve_brand(self, brand_id: int, settings: AutomationSettings) -> RunConfig:
        brand = await self.store.get_brand(brand_id)
        if brand is None:
            raise NotFoundError(f"Brand {brand_id} not found")
        account = brand.account
        if account is None:
            raise NotFoundError(f"Account for brand {brand_id} not found")

        target = BrandTarget(
            brand_name=brand.brand_name,
            brand_url=(brand.brand_url or "").strip(),
            marketplace=_marketplace_label(brand.marketplace),
            brand_id=brand.id,
        )
        log_event(
            logger=self.logger,
            phase="config",
            message="Resolved brand-scoped run",
            brand_id=brand.id,
            brand_name=target.brand_name,
            account_name=account.account_name,
            marketplace=target.marketplace,
        )
        return self._build(account, settings, brand=target)

    async def _resolve_account(self, account_id: int, settings: AutomationSettings) -> RunConfig:
        account = await self.store.get_account(account_id, include_secrets=True)
        if account is None:
            raise NotFoundError(f"Account {account_id} not found")

        brands = await self.store.list_brands_for_account(account_id)
        batch = tuple(
            BrandTarget(
                brand_name=brand.brand_name,
                brand_url=(brand.brand_url or "").strip(),
                marketplace=_marketplace_label(brand.marketplace),
                brand_id=brand.id,
            )
            for brand in brands
        )
        log_event(
            logger=self.logger,
            phase="config",
            message="Resolved account-scoped run",
            account_id=account.id,
            account_name=account.account_name,
            brand_count=len(batch),
        )
        return self._build(account, settings, batch=batch)

    def _build(
        self,
        account: Any,
        settings: AutomationSettings,
        *,
        brand: BrandTarget | None = None,
        batch: tuple[BrandTarget, ...] = (),
    ) -> RunConfig:
        return RunConfig(
            account_id=account.id,
            account_name=account.account_name,
            username=(account.username or "").strip(),
            password=self._decrypt(account.password),
            two_fa_key=self._decrypt(account.two_fa_key),
            settings=settings,
            brand=brand,
            batch=batch,
        )

    def _decrypt(self, value: str | None) -> str:
        # Empty secrets are reported by RunConfig.validate, not as decryption errors.
        if not value:
            return ""
        plaintext = decrypt_secret(self.secret_key, value)
        self.logger.mask(plaintext)
        return plaintext


def _marketplace_label(value: Any) -> str | None:
    if value is None:
        return None
    return getattr(value, "value", value)
