import json

import pytest

from casepulse import __main__ as cli
from casepulse.config import get_config

ENV_KEYS = ["BRAND_ID", "ACCOUNT_ID", "HEADLESS", "TIMEOUT_MS", "SELLER_CENTRAL_URL", "JSON_LOG_FILE"]


@pytest.fixture(autouse=True)
def _fresh_config(monkeypatch, tmp_path):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("ENCRYPTION_KEY", "c" * 32)
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///unused.db")
    monkeypatch.setenv("DEBUG_ARTIFACT_DIR", str(tmp_path / "debug"))
    get_config.cache_clear()
    yield
    get_config.cache_clear()


def _last_json_line(output: str) -> dict:
    lines = [line for line in output.splitlines() if line.startswith("{")]
    return json.loads(lines[-1])


def test_generate_key_prints_instructions(capsys):
    assert cli.main(["generate-key"]) == 0

    out = capsys.readouterr().out
    assert "ENCRYPTION_KEY=" in out


def test_login_without_identifier_exits_with_configuration_error(capsys):
    assert cli.main(["login"]) == 2

    result = _last_json_line(capsys.readouterr().out)
    assert result == {
        "success": False,
        "step": "configuration",
        "message": "A brand id or an account id is required",
        "duration": result["duration"],
    }


def test_invalid_env_value_exits_with_configuration_error(monkeypatch, capsys):
    monkeypatch.setenv("HEADLESS", "sometimes")
    get_config.cache_clear()

    assert cli.main(["login", "--brand-id", "1"]) == 2

    result = _last_json_line(capsys.readouterr().out)
    assert result["success"] is False
    assert result["step"] == "configuration"


def test_scope_flags_are_mutually_exclusive():
    with pytest.raises(SystemExit):
        cli.main(["login", "--brand-id", "1", "--account-id", "2"])


def test_headless_flag_defaults_to_unset():
    parser = cli._build_parser()

    assert parser.parse_args(["login", "--brand-id", "1"]).headless is None
    assert parser.parse_args(["login", "--brand-id", "1", "--headed"]).headless is False
    assert parser.parse_args(["login", "--brand-id", "1", "--headless"]).headless is True


def test_cli_overrides_win_over_environment(monkeypatch):
    captured = {}

    class _Supervisor:
        def __init__(self, **kwargs):
            pass

        async def run(self, request):
            from casepulse.seller_central.supervisor import RunResult, TerminalState

            captured["request"] = request
            return RunResult(terminal=TerminalState.COMPLETED, message="ok")

    from casepulse.seller_central import supervisor

    monkeypatch.setenv("TIMEOUT_MS", "90000")
    monkeypatch.setenv("HEADLESS", "true")
    monkeypatch.setenv("ACCOUNT_ID", "7")
    get_config.cache_clear()
    monkeypatch.setattr(supervisor, "RunSupervisor", _Supervisor)

    assert cli.main(["login", "--headed"]) == 0

    request = captured["request"]
    assert request.account_id == 7
    assert request.brand_id is None
    assert request.overrides.headless is False
    assert request.overrides.timeout_ms == 90000
