"""One-shot migration that encrypts plaintext account secrets in place.

Safe to re-run: values that already look like ``salt:iv:tag:ciphertext``
bundles are left untouched.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

from casepulse.crypto import encrypt_secret, is_encrypted, require_secret_key
from casepulse.json_logger import JsonLogger, log_event


class VaultStore(Protocol):
    async def list_accounts(self, *, include_secrets: bool = False) -> list[Any]: ...

    async def update_account_secrets(
        self,
        account_id: int,
        *,
        secret_key: str,
        password: str | None = None,
        two_fa_key: str | None = None,
    ) -> None: ...


@dataclass
class EncryptionSummary:
    total: int = 0
    encrypted: int = 0
    skipped: int = 0
    encrypted_accounts: list[str] = field(default_factory=list)
    dry_run: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "encrypted": self.encrypted,
            "skipped": self.skipped,
            "encrypted_accounts": list(self.encrypted_accounts),
            "dry_run": self.dry_run,
        }


async def encrypt_existing_accounts(
    store: VaultStore,
    *,
    secret_key: str,
    logger: JsonLogger,
    dry_run: bool = False,
) -> EncryptionSummary:
    require_secret_key(secret_key)
    log_event(logger=logger, phase="vault", message="Encryption key validated", dry_run=dry_run)

    accounts = await store.list_accounts(include_secrets=True)
    summary = EncryptionSummary(total=len(accounts), dry_run=dry_run)
    log_event(logger=logger, phase="vault", message="Loaded accounts", total=summary.total)

    for account in accounts:
        pending: dict[str, str] = {}
        for column in ("password", "two_fa_key"):
            value = getattr(account, column)
            if value and not is_encrypted(value):
                pending[column] = encrypt_secret(secret_key, value)

        if not pending:
            summary.skipped += 1
            log_event(
                logger=logger,
                phase="vault",
                message="Secrets already encrypted; skipping",
                account_name=account.account_name,
            )
            continue

        if not dry_run:
            await store.update_account_secrets(account.id, secret_key=secret_key, **pending)
        summary.encrypted += 1
        summary.encrypted_accounts.append(account.account_name)
        log_event(
            logger=logger,
            phase="vault",
            message="Would encrypt secrets" if dry_run else "Encrypted secrets",
            account_name=account.account_name,
            columns=sorted(pending),
        )

    log_event(logger=logger, phase="vault", message="Migration summary", **summary.to_dict())
    return summary
