import asyncio
import io
from types import SimpleNamespace

import pytest

from casepulse.crypto import decrypt_secret, encrypt_secret, is_encrypted
from casepulse.errors import ConfigurationError
from casepulse.json_logger import JsonLogger
from casepulse.vault.encrypt_accounts import encrypt_existing_accounts
from casepulse.vault.keygen import generate_encryption_key, render_instructions

SECRET_KEY = "m" * 48


def run(coro):
    return asyncio.run(coro)


class FakeVaultStore:
    def __init__(self, accounts) -> None:
        self.accounts = accounts
        self.updates: list[tuple[int, dict]] = []

    async def list_accounts(self, *, include_secrets=False):
        assert include_secrets
        return list(self.accounts)

    async def update_account_secrets(self, account_id, *, secret_key, password=None, two_fa_key=None):
        values = {key: value for key, value in (("password", password), ("two_fa_key", two_fa_key)) if value}
        self.updates.append((account_id, values))


def _accounts():
    return [
        SimpleNamespace(id=1, account_name="Plain", password="hunter2", two_fa_key="JBSWY3DPEHPK3PXP"),
        SimpleNamespace(
            id=2,
            account_name="Sealed",
            password=encrypt_secret(SECRET_KEY, "pw"),
            two_fa_key=encrypt_secret(SECRET_KEY, "key"),
        ),
        SimpleNamespace(
            id=3,
            account_name="Mixed",
            password=encrypt_secret(SECRET_KEY, "pw"),
            two_fa_key="JBSWY3DPEHPK3PXP",
        ),
    ]


def _logger(stream=None) -> JsonLogger:
    return JsonLogger(run_id="vault-test", stream=stream or io.StringIO(), log_file_path=None)


def test_encrypts_only_plaintext_secrets():
    store = FakeVaultStore(_accounts())
    stream = io.StringIO()

    summary = run(encrypt_existing_accounts(store, secret_key=SECRET_KEY, logger=_logger(stream)))

    assert (summary.total, summary.encrypted, summary.skipped) == (3, 2, 1)
    assert summary.encrypted_accounts == ["Plain", "Mixed"]
    assert [account_id for account_id, _ in store.updates] == [1, 3]
    plain_values = store.updates[0][1]
    assert decrypt_secret(SECRET_KEY, plain_values["password"]) == "hunter2"
    assert decrypt_secret(SECRET_KEY, plain_values["two_fa_key"]) == "JBSWY3DPEHPK3PXP"
    assert list(store.updates[1][1]) == ["two_fa_key"]
    assert "hunter2" not in stream.getvalue()


def test_dry_run_writes_nothing():
    store = FakeVaultStore(_accounts())

    summary = run(encrypt_existing_accounts(store, secret_key=SECRET_KEY, logger=_logger(), dry_run=True))

    assert summary.encrypted == 2
    assert summary.to_dict()["dry_run"] is True
    assert store.updates == []


def test_short_key_is_rejected_before_reading_accounts():
    store = FakeVaultStore(_accounts())
    store.list_accounts = None

    with pytest.raises(ConfigurationError):
        run(encrypt_existing_accounts(store, secret_key="too-short", logger=_logger()))


def test_generated_key_is_64_hex_chars_and_usable():
    key = generate_encryption_key()

    assert len(key) == 64
    int(key, 16)
    assert key != generate_encryption_key()
    assert is_encrypted(encrypt_secret(key, "value"))
    assert f"ENCRYPTION_KEY={key}" in render_instructions(key)
