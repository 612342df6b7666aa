"""Read/write surface over the accounts, brands and automation_config tables.

The Seller Central runner only uses the read side. Write paths exist for the
vault maintenance tools and admin seeding, and every secret they persist goes
through :func:`casepulse.crypto.seal_secret` so an already-encrypted value is
never encrypted twice.
"""

from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy.orm import joinedload, undefer

from casepulse.common.db import dispose_engine, session_scope
from casepulse.common.models import (
    DEFAULT_HEADLESS,
    DEFAULT_SELLER_CENTRAL_URL,
    DEFAULT_TIMEOUT_MS,
    Account,
    AutomationConfig,
    Brand,
    Marketplace,
)
from casepulse.crypto import seal_secret
from casepulse.errors import ConfigurationError, NotFoundError

_SECRET_COLUMNS = (undefer(Account.password), undefer(Account.two_fa_key))


class SecretStore:
    def __init__(self, database_url: str) -> None:
        if not database_url:
            raise ConfigurationError("DATABASE_URL is not set; cannot open the account store")
        self.database_url = database_url

    async def close(self) -> None:
        await dispose_engine(self.database_url)

    # ── reads ──────────────────────────────────────────────────────────────

    async def get_account(self, account_id: int, *, include_secrets: bool = False) -> Account | None:
        query = sa.select(Account).where(Account.id == account_id)
        if include_secrets:
            query = query.options(*_SECRET_COLUMNS)
        async with session_scope(self.database_url) as session:
            return (await session.execute(query)).scalar_one_or_none()

    async def get_brand(self, brand_id: int) -> Brand | None:
        """Return the brand with its owning account (secrets included) populated."""

        query = (
            sa.select(Brand)
            .where(Brand.id == brand_id)
            .options(joinedload(Brand.account).options(*_SECRET_COLUMNS))
        )
        async with session_scope(self.database_url) as session:
            return (await session.execute(query)).unique().scalar_one_or_none()

    async def list_brands_for_account(self, account_id: int) -> list[Brand]:
        query = (
            sa.select(Brand)
            .where(Brand.account_id == account_id)
            .order_by(Brand.brand_name, Brand.id)
        )
        async with session_scope(self.database_url) as session:
            return list((await session.execute(query)).scalars())

    async def list_accounts(self, *, include_secrets: bool = False) -> list[Account]:
        query = sa.select(Account).order_by(Account.id)
        if include_secrets:
            query = query.options(*_SECRET_COLUMNS)
        async with session_scope(self.database_url) as session:
            return list((await session.execute(query)).scalars())

    async def get_automation_config(self) -> AutomationConfig | None:
        query = sa.select(AutomationConfig).order_by(AutomationConfig.id).limit(1)
        async with session_scope(self.database_url) as session:
            return (await session.execute(query)).scalar_one_or_none()

    # ── writes ─────────────────────────────────────────────────────────────

    async def save_account(
        self,
        *,
        secret_key: str,
        account_name: str,
        username: str,
        password: str,
        two_fa_key: str,
    ) -> Account:
        """Create the account, or update the one with the same ``account_name``."""

        missing = [name for name, value in (("password", password), ("two_fa_key", two_fa_key)) if not value]
        if missing:
            raise ConfigurationError(f"Account {account_name} is missing required secrets: {', '.join(missing)}")
        sealed_password = seal_secret(secret_key, password)
        sealed_two_fa_key = seal_secret(secret_key, two_fa_key)
        async with session_scope(self.database_url) as session:
            query = sa.select(Account).where(Account.account_name == account_name).options(*_SECRET_COLUMNS)
            account = (await session.execute(query)).scalar_one_or_none()
            if account is None:
                account = Account(account_name=account_name)
                session.add(account)
            account.username = username
            account.password = sealed_password
            account.two_fa_key = sealed_two_fa_key
            await session.commit()
            await session.refresh(account, attribute_names=["id", "created_at", "updated_at"])
            return account

    async def update_account_secrets(
        self,
        account_id: int,
        *,
        secret_key: str,
        password: str | None = None,
        two_fa_key: str | None = None,
    ) -> None:
        values: dict[str, str] = {}
        if password:
            values["password"] = seal_secret(secret_key, password)
        if two_fa_key:
            values["two_fa_key"] = seal_secret(secret_key, two_fa_key)
        if not values:
            return
        async with session_scope(self.database_url) as session:
            result = await session.execute(
                sa.update(Account).where(Account.id == account_id).values(**values)
            )
            if result.rowcount == 0:
                await session.rollback()
                raise NotFoundError(f"Account {account_id} not found")
            await session.commit()

    async def save_brand(
        self,
        *,
        account_id: int,
        brand_name: str,
        brand_url: str,
        marketplace: Marketplace = Marketplace.US,
    ) -> Brand:
        async with session_scope(self.database_url) as session:
            brand = Brand(
                account_id=account_id,
                brand_name=brand_name,
                brand_url=brand_url,
                marketplace=marketplace,
            )
            session.add(brand)
            await session.commit()
            await session.refresh(brand, attribute_names=["id"])
            return brand

    async def save_automation_config(
        self,
        *,
        headless: bool = DEFAULT_HEADLESS,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        seller_central_url: str = DEFAULT_SELLER_CENTRAL_URL,
    ) -> AutomationConfig:
        if timeout_ms <= 0:
            raise ConfigurationError("timeout_ms must be a positive number")
        if not seller_central_url:
            raise ConfigurationError("seller_central_url is required")
        async with session_scope(self.database_url) as session:
            query = sa.select(AutomationConfig).order_by(AutomationConfig.id).limit(1)
            record = (await session.execute(query)).scalar_one_or_none()
            if record is None:
                record = AutomationConfig()
                session.add(record)
            record.headless = headless
            record.timeout_ms = timeout_ms
            record.seller_central_url = seller_central_url
            await session.commit()
            await session.refresh(record, attribute_names=["id", "created_at", "updated_at"])
            return record