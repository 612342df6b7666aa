import dataclasses
import io
from types import SimpleNamespace

import pytest

from casepulse.common.models import Marketplace
from casepulse.crypto import encrypt_secret
from casepulse.errors import ConfigurationError, DecryptionError, NotFoundError
from casepulse.json_logger import JsonLogger
from casepulse.seller_central.run_config import (
    AutomationOverrides,
    ConfigResolver,
    RunConfig,
)

SECRET_KEY = "r" * 32


def _account(**overrides):
    values = {
        "id": 7,
        "account_name": "Acme",
        "username": " ops@acme.test ",
        "password": encrypt_secret(SECRET_KEY, "hunter2"),
        "two_fa_key": encrypt_secret(SECRET_KEY, "JBSWY3DPEHPK3PXP"),
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def _brand(brand_id, name, url, account=None):
    return SimpleNamespace(
        id=brand_id,
        brand_name=name,
        brand_url=url,
        marketplace=Marketplace.US,
        account=account,
    )


class _FakeStore:
    def __init__(self, *, account=None, brands=(), automation=None):
        self.account = account
        self.brands = {brand.id: brand for brand in brands}
        self.automation = automation
        self.calls: list[str] = []

    async def get_account(self, account_id, *, include_secrets=False):
        self.calls.append("get_account")
        if self.account is not None and self.account.id == account_id:
            return self.account
        return None

    async def get_brand(self, brand_id):
        self.calls.append("get_brand")
        return self.brands.get(brand_id)

    async def list_brands_for_account(self, account_id):
        return list(self.brands.values())

    async def get_automation_config(self):
        return self.automation


def _resolver(store):
    logger = JsonLogger(run_id="test", stream=io.StringIO(), log_file_path=None)
    return ConfigResolver(store, secret_key=SECRET_KEY, logger=logger)


@pytest.mark.asyncio
async def test_timeout_precedence_override_then_stored_then_default():
    stored = SimpleNamespace(headless=False, timeout_ms=90_000, seller_central_url="https://sc.example/home")
    resolver = _resolver(_FakeStore(automation=stored))

    assert (await resolver.resolve_settings(AutomationOverrides(timeout_ms=5_000))).timeout_ms == 5_000
    assert (await resolver.resolve_settings(AutomationOverrides())).timeout_ms == 90_000

    defaults = await _resolver(_FakeStore()).resolve_settings(AutomationOverrides())
    assert defaults.timeout_ms == 180_000
    assert defaults.headless is True
    assert defaults.start_url == "https://sellercentral.amazon.com/home"


@pytest.mark.asyncio
async def test_headless_override_false_beats_stored_true():
    stored = SimpleNamespace(headless=True, timeout_ms=None, seller_central_url="")
    settings = await _resolver(_FakeStore(automation=stored)).resolve_settings(
        AutomationOverrides(headless=False, start_url="https://sellercentral.amazon.ca/home")
    )

    assert settings.headless is False
    assert settings.timeout_ms == 180_000
    assert settings.start_url == "https://sellercentral.amazon.ca/home"


def test_overrides_fallback_keeps_explicit_values():
    cli = AutomationOverrides(headless=False)
    env = AutomationOverrides(headless=True, timeout_ms=1_000, start_url="https://env")

    merged = cli.with_fallback(env)

    assert merged == AutomationOverrides(headless=False, timeout_ms=1_000, start_url="https://env")


@pytest.mark.asyncio
async def test_brand_scope_decrypts_owning_account():
    account = _account()
    store = _FakeStore(brands=[_brand(3, "Acme Kitchen", " https://sc.example/brand/3 ", account)])

    config = await _resolver(store).resolve(brand_id=3)

    assert config.is_single_target
    assert config.brand.brand_name == "Acme Kitchen"
    assert config.brand.brand_url == "https://sc.example/brand/3"
    assert config.brand.marketplace == "US"
    assert config.username == "ops@acme.test"
    assert config.password == "hunter2"
    assert config.two_fa_key == "JBSWY3DPEHPK3PXP"
    assert config.batch == ()
    assert "hunter2" not in repr(config)


@pytest.mark.asyncio
async def test_account_scope_builds_batch_and_url_map():
    store = _FakeStore(
        account=_account(),
        brands=[_brand(1, "Alpha", "https://a"), _brand(2, "Beta", ""), _brand(3, "Gamma", "https://g")],
    )

    config = await _resolver(store).resolve(account_id=7)

    assert not config.is_single_target
    assert [t.brand_name for t in config.batch] == ["Alpha", "Beta", "Gamma"]
    assert dict(config.brand_urls) == {"Alpha": "https://a", "Beta": "", "Gamma": "https://g"}
    with pytest.raises(TypeError):
        config.brand_urls["Alpha"] = "https://other"


@pytest.mark.asyncio
async def test_account_with_no_brands_is_an_empty_batch():
    config = await _resolver(_FakeStore(account=_account())).resolve(account_id=7)

    assert config.batch == ()


@pytest.mark.asyncio
async def test_unknown_identifiers_raise_not_found():
    resolver = _resolver(_FakeStore(account=_account()))

    with pytest.raises(NotFoundError):
        await resolver.resolve(brand_id=999)
    with pytest.raises(NotFoundError):
        await resolver.resolve(account_id=999)


@pytest.mark.asyncio
async def test_identifier_is_required_and_exclusive():
    store = _FakeStore(account=_account())
    resolver = _resolver(store)

    with pytest.raises(ConfigurationError):
        await resolver.resolve()
    with pytest.raises(ConfigurationError):
        await resolver.resolve(brand_id=1, account_id=7)
    assert store.calls == []


@pytest.mark.asyncio
async def test_missing_secrets_fail_validation():
    store = _FakeStore(account=_account(two_fa_key="", username=""))

    config = await _resolver(store).resolve(account_id=7)

    assert config.missing_secret_fields() == ["username", "two_fa_key"]
    with pytest.raises(ConfigurationError, match="username, two_fa_key"):
        config.validate()


@pytest.mark.asyncio
async def test_plaintext_secret_in_store_is_a_decryption_error():
    store = _FakeStore(account=_account(password="plainPassword1"))

    with pytest.raises(DecryptionError):
        await _resolver(store).resolve(account_id=7)


def test_run_config_is_immutable():
    config = RunConfig(account_name="Acme", username="u", password="p", two_fa_key="k")

    with pytest.raises(dataclasses.FrozenInstanceError):
        config.password = "other"


@pytest.mark.asyncio
async def test_decrypted_secrets_are_masked_in_later_log_events():
    stream = io.StringIO()
    logger = JsonLogger(run_id="test", stream=stream, log_file_path=None)
    resolver = ConfigResolver(_FakeStore(account=_account()), secret_key=SECRET_KEY, logger=logger)

    await resolver.resolve(account_id=7)
    logger.error(phase="login", message="field rejected hunter2")

    assert "hunter2" not in stream.getvalue()
