from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import List, Optional, TYPE_CHECKING

from casepulse.errors import ConfigurationError
from casepulse.json_logger import get_logger, log_event, new_run_id

if TYPE_CHECKING:  # pragma: no cover
    from casepulse.config import Config


def _emit_result(payload: dict) -> None:
    print(json.dumps(payload, default=str), flush=True)


def _load_config() -> Config | None:
    from casepulse.config import get_config

    try:
        return get_config()
    except ConfigurationError as exc:
        _emit_result({"success": False, "step": exc.step, "message": str(exc)})
        return None


async def _run_login(args: argparse.Namespace) -> int:
    from casepulse.seller_central.run_config import AutomationOverrides
    from casepulse.seller_central.supervisor import RunRequest, RunSupervisor

    app_config = _load_config()
    if app_config is None:
        return 2
    cli_overrides = AutomationOverrides(
        headless=args.headless,
        timeout_ms=args.timeout_ms,
        start_url=args.start_url,
    )
    env_overrides = AutomationOverrides(
        headless=app_config.headless_override,
        timeout_ms=app_config.timeout_ms_override,
        start_url=app_config.start_url_override,
    )
    brand_id, account_id = args.brand_id, args.account_id
    if brand_id is None and account_id is None:
        brand_id, account_id = app_config.brand_id, app_config.account_id

    with get_logger(run_id=args.run_id or new_run_id()) as logger:
        supervisor = RunSupervisor(
            app_config=app_config,
            logger=logger,
            batch_concurrency=args.concurrency,
        )
        result = await supervisor.run(
            RunRequest(
                brand_id=brand_id,
                account_id=account_id,
                overrides=cli_overrides.with_fallback(env_overrides),
            )
        )

    _emit_result(result.to_dict())
    return result.exit_code


async def _run_encrypt_accounts(args: argparse.Namespace) -> int:
    from casepulse.common.store import SecretStore
    from casepulse.vault.encrypt_accounts import encrypt_existing_accounts

    app_config = _load_config()
    if app_config is None:
        return 2
    logger = get_logger(run_id=args.run_id)

    store = None
    try:
        store = SecretStore(app_config.database_url)
        summary = await encrypt_existing_accounts(
            store,
            secret_key=app_config.encryption_key,
            logger=logger,
            dry_run=args.dry_run,
        )
    except ConfigurationError as exc:
        log_event(logger=logger, phase="vault", status="error", message=str(exc))
        _emit_result({"success": False, "step": exc.step, "message": str(exc)})
        return 2
    except Exception as exc:
        log_event(
            logger=logger,
            phase="vault",
            status="error",
            message="Migration failed",
            error=str(exc),
            exc_type=type(exc).__name__,
        )
        _emit_result({"success": False, "step": "vault", "message": str(exc)})
        return 1
    finally:
        if store is not None:
            await store.close()
        logger.close()

    _emit_result({"success": True, **summary.to_dict()})
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="casepulse", description="CasePulse credential vault and login runner")
    subparsers = parser.add_subparsers(dest="command", required=True)

    login_parser = subparsers.add_parser("login", help="Sign in to Seller Central and open brand pages")
    scope = login_parser.add_mutually_exclusive_group()
    scope.add_argument("--brand-id", dest="brand_id", type=int, default=None, help="Open a single brand")
    scope.add_argument("--account-id", dest="account_id", type=int, default=None, help="Open every brand of an account")
    headless = login_parser.add_mutually_exclusive_group()
    headless.add_argument("--headless", dest="headless", action="store_true", default=None)
    headless.add_argument("--headed", dest="headless", action="store_false")
    login_parser.set_defaults(headless=None)
    login_parser.add_argument("--timeout-ms", dest="timeout_ms", type=int, default=None, help="Global run timeout")
    login_parser.add_argument("--start-url", dest="start_url", default=None, help="Seller Central entry URL")
    login_parser.add_argument("--run-id", dest="run_id", default=None, help="Override generated run id")
    login_parser.add_argument(
        "--concurrency",
        type=int,
        default=1,
        help="Brand tabs opened in parallel for account runs",
    )

    encrypt_parser = subparsers.add_parser(
        "encrypt-accounts", help="Encrypt plaintext account secrets in the store"
    )
    encrypt_parser.add_argument("--dry-run", dest="dry_run", action="store_true", help="Report without writing")
    encrypt_parser.add_argument("--run-id", dest="run_id", default=None, help="Override generated run id")

    subparsers.add_parser("generate-key", help="Print a new ENCRYPTION_KEY")

    upgrade_parser = subparsers.add_parser("db-upgrade", help="Run Alembic upgrade")
    upgrade_parser.add_argument("--revision", default="head")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command == "login":
        if args.timeout_ms is not None and args.timeout_ms <= 0:
            parser.error("--timeout-ms must be a positive integer")
        return asyncio.run(_run_login(args))

    if args.command == "encrypt-accounts":
        return asyncio.run(_run_encrypt_accounts(args))

    if args.command == "generate-key":
        from casepulse.vault.keygen import generate_encryption_key, render_instructions

        print(render_instructions(generate_encryption_key()))
        return 0

    if args.command == "db-upgrade":
        from casepulse.common.db import run_alembic_upgrade

        app_config = _load_config()
        if app_config is None:
            return 2
        if not app_config.database_url:
            print("[db-upgrade] DATABASE_URL is not set", file=sys.stderr)
            return 2
        run_alembic_upgrade(
            revision=args.revision,
            database_url=app_config.database_url,
            alembic_config_path=app_config.alembic_config,
        )
        return 0

    parser.error("Unknown command")
    return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
