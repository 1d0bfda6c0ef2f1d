"""
Semantic test: command line entrypoint.

Invariant:
The CLI persists the session between invocations, prints JSON results and
exits non-zero with a structured error when a store action fails.
"""

from __future__ import annotations

import json

import pytest

from trading_dashboard import cli
from trading_dashboard.stores.root_store import RootStore


@pytest.fixture
def run(monkeypatch, tmp_path, fake_api, capsys):
    monkeypatch.delenv("PROMETHEUS_PUSHGATEWAY_URL", raising=False)
    monkeypatch.delenv("TRADING_ENGINE_API_KEY", raising=False)
    monkeypatch.setattr(cli, "RootStore", lambda config, **kwargs: RootStore(config, api=fake_api, **kwargs))
    state_file = tmp_path / "session.json"

    def _run(*argv: str) -> tuple[int, object]:
        code = cli.main(["--state-file", str(state_file), *argv])
        out = capsys.readouterr().out
        return code, json.loads(out)

    return _run


def test_parser_requires_a_command() -> None:
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args([])


def test_parser_orders_defaults() -> None:
    args = cli.build_parser().parse_args(["orders", "list"])
    assert args.mode == "today"
    assert args.page == 1
    assert args.page_size == 20


def test_session_survives_between_invocations(run, fake_api, user_strategy_raw) -> None:
    fake_api.dashboard = {"active_strategies": [user_strategy_raw("S1"), user_strategy_raw("S2", status="paused")]}

    code, user = run("login", "U1", "--api-key", "key-1")
    assert code == 0
    assert user["user_id"] == "U1"

    code, listing = run("strategies", "list", "--status", "PAUSED")
    assert code == 0
    assert [s["id"] for s in listing["strategies"]] == ["S2"]
    assert listing["summary"]["total_strategies"] == 2


def test_api_key_from_environment(run, monkeypatch, fake_api) -> None:
    monkeypatch.setenv("TRADING_ENGINE_API_KEY", "env-key")
    code, _ = run("login", "U1")
    assert code == 0
    assert fake_api.calls[0] == ("login", ("U1", "env-key"))


def test_commands_require_login(run, fake_api) -> None:
    code, body = run("orders", "list")
    assert code == 1
    assert body["error"]["kind"] == "authentication"
    assert fake_api.count("get_orders") == 0


def test_orders_list_and_cancel(run, fake_api, api_order_raw) -> None:
    fake_api.orders = [api_order_raw("O1"), api_order_raw("O2", "COMPLETE", filled_quantity=10)]
    run("login", "U1", "--api-key", "key-1")

    code, listing = run("orders", "list", "--mode", "all")
    assert code == 0
    assert listing["total"] == 2
    assert listing["summary"]["completed_orders"] == 1

    code, order = run("orders", "cancel", "O1")
    assert code == 0
    assert order["status"] == "CANCELLED"

    code, body = run("orders", "cancel", "O2")
    assert code == 1
    assert body["error"]["action"] == "cancel"
    assert body["error"]["entity_ids"] == ["O2"]


def test_logout_clears_state_file(run, tmp_path) -> None:
    run("login", "U1", "--api-key", "key-1")
    code, body = run("logout")
    assert code == 0
    assert body == {"authenticated": False}
    assert json.loads((tmp_path / "session.json").read_text(encoding="utf-8")) == {}


def test_events_file_records_session(run, tmp_path) -> None:
    events_file = tmp_path / "events.jsonl"
    code, _ = run("--events-file", str(events_file), "login", "U1", "--api-key", "key-1")
    assert code == 0

    records = [json.loads(line) for line in events_file.read_text(encoding="utf-8").splitlines()]
    auth_changes = [r for r in records if r["event_type"] == "AuthStateChangedEvent"]
    assert auth_changes == [{"event_type": "AuthStateChangedEvent", "authenticated": True, "user_id": "U1", "reason": "login"}]
