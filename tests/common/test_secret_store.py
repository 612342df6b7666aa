from pathlib import Path

import pytest
import sqlalchemy as sa
from sqlalchemy.ext.asyncio import create_async_engine

from casepulse.common.models import Base, Marketplace
from casepulse.common.store import SecretStore
from casepulse.crypto import decrypt_secret, encrypt_secret, is_encrypted
from casepulse.errors import ConfigurationError, NotFoundError

SECRET_KEY = "s" * 40


async def _store(tmp_path: Path) -> SecretStore:
    url = f"sqlite+aiosqlite:///{tmp_path / 'store.db'}"
    engine = create_async_engine(url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    await engine.dispose()
    return SecretStore(url)


def test_store_requires_database_url():
    with pytest.raises(ConfigurationError):
        SecretStore("")


@pytest.mark.asyncio
async def test_save_account_seals_secrets_and_hides_them_by_default(tmp_path):
    store = await _store(tmp_path)
    try:
        saved = await store.save_account(
            secret_key=SECRET_KEY,
            account_name="Acme",
            username="ops@acme.test",
            password="hunter2",
            two_fa_key="JBSWY3DPEHPK3PXP",
        )
        assert saved.id is not None
        assert is_encrypted(saved.password)
        assert is_encrypted(saved.two_fa_key)

        hidden = await store.get_account(saved.id)
        assert hidden.username == "ops@acme.test"
        assert {"password", "two_fa_key"} <= set(sa.inspect(hidden).unloaded)

        revealed = await store.get_account(saved.id, include_secrets=True)
        assert decrypt_secret(SECRET_KEY, revealed.password) == "hunter2"
        assert decrypt_secret(SECRET_KEY, revealed.two_fa_key) == "JBSWY3DPEHPK3PXP"
    finally:
        await store.close()


@pytest.mark.asyncio
async def test_save_account_rejects_empty_secrets(tmp_path):
    store = await _store(tmp_path)
    try:
        with pytest.raises(ConfigurationError, match="two_fa_key"):
            await store.save_account(
                secret_key=SECRET_KEY,
                account_name="Acme",
                username="ops@acme.test",
                password="hunter2",
                two_fa_key="",
            )
        assert await store.list_accounts() == []
    finally:
        await store.close()


@pytest.mark.asyncio
async def test_save_account_never_double_encrypts(tmp_path):
    store = await _store(tmp_path)
    try:
        bundle = encrypt_secret(SECRET_KEY, "hunter2")
        saved = await store.save_account(
            secret_key=SECRET_KEY,
            account_name="Acme",
            username="ops@acme.test",
            password=bundle,
            two_fa_key="JBSWY3DPEHPK3PXP",
        )
        assert saved.password == bundle

        again = await store.save_account(
            secret_key=SECRET_KEY,
            account_name="Acme",
            username="new@acme.test",
            password=bundle,
            two_fa_key=saved.two_fa_key,
        )
        assert again.id == saved.id
        assert again.password == bundle
        assert len(await store.list_accounts()) == 1
    finally:
        await store.close()


@pytest.mark.asyncio
async def test_get_brand_populates_account_with_secrets(tmp_path):
    store = await _store(tmp_path)
    try:
        account = await store.save_account(
            secret_key=SECRET_KEY,
            account_name="Acme",
            username="ops@acme.test",
            password="hunter2",
            two_fa_key="JBSWY3DPEHPK3PXP",
        )
        brand = await store.save_brand(
            account_id=account.id,
            brand_name="Acme Kitchen",
            brand_url="https://sellercentral.amazon.ca/brand/1",
            marketplace=Marketplace.CANADA,
        )

        loaded = await store.get_brand(brand.id)

        assert loaded.marketplace is Marketplace.CANADA
        assert loaded.account.account_name == "Acme"
        assert decrypt_secret(SECRET_KEY, loaded.account.password) == "hunter2"
        assert await store.get_brand(brand.id + 100) is None
    finally:
        await store.close()


@pytest.mark.asyncio
async def test_list_brands_orders_by_name_then_id(tmp_path):
    store = await _store(tmp_path)
    try:
        account = await store.save_account(
            secret_key=SECRET_KEY,
            account_name="Acme",
            username="ops@acme.test",
            password="hunter2",
            two_fa_key="JBSWY3DPEHPK3PXP",
        )
        for name in ("Zeta", "Alpha", "Mid"):
            await store.save_brand(account_id=account.id, brand_name=name, brand_url=f"https://x/{name}")

        brands = await store.list_brands_for_account(account.id)

        assert [b.brand_name for b in brands] == ["Alpha", "Mid", "Zeta"]
        assert await store.list_brands_for_account(account.id + 1) == []
    finally:
        await store.close()


@pytest.mark.asyncio
async def test_update_account_secrets(tmp_path):
    store = await _store(tmp_path)
    try:
        account = await store.save_account(
            secret_key=SECRET_KEY,
            account_name="Acme",
            username="ops@acme.test",
            password="old",
            two_fa_key="JBSWY3DPEHPK3PXP",
        )

        await store.update_account_secrets(account.id, secret_key=SECRET_KEY, password="new")

        revealed = await store.get_account(account.id, include_secrets=True)
        assert decrypt_secret(SECRET_KEY, revealed.password) == "new"
        assert revealed.two_fa_key == account.two_fa_key

        with pytest.raises(NotFoundError):
            await store.update_account_secrets(account.id + 50, secret_key=SECRET_KEY, password="x")
    finally:
        await store.close()


@pytest.mark.asyncio
async def test_automation_config_singleton(tmp_path):
    store = await _store(tmp_path)
    try:
        assert await store.get_automation_config() is None

        await store.save_automation_config(headless=False, timeout_ms=90_000)
        await store.save_automation_config(headless=True, timeout_ms=60_000)

        record = await store.get_automation_config()
        assert record.headless is True
        assert record.timeout_ms == 60_000
        assert record.seller_central_url == "https://sellercentral.amazon.com/home"

        with pytest.raises(ConfigurationError):
            await store.save_automation_config(timeout_ms=0)
    finally:
        await store.close()
