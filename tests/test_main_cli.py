from __future__ import annotations

from pathlib import Path
from unittest import mock

import pytest

from booking.config import Settings
from booking.database import Database
from booking.errors import StoreError
from main import _create_user, _list_users, _load_settings, _parse_args


def test_default_command_invokes_serve() -> None:
    args = _parse_args([])
    assert args.command == "serve"
    assert args.port == 8080


def test_default_command_accepts_options_without_subcommand() -> None:
    args = _parse_args(["--host", "127.0.0.1", "--port", "9000"])
    assert args.command == "serve"
    assert args.host == "127.0.0.1"
    assert args.port == 9000


def test_config_option_precedes_subcommand() -> None:
    args = _parse_args(["--config", "booking.yaml", "list-users"])
    assert args.command == "list-users"
    assert args.config == "booking.yaml"


def test_create_user_subcommand_takes_email() -> None:
    args = _parse_args(["create-user", "alice@example.com"])
    assert args.command == "create-user"
    assert args.email == "alice@example.com"


def test_malformed_yaml_exits_with_configuration_error(tmp_path: Path) -> None:
    config = tmp_path / "booking.yaml"
    config.write_text("jwt_secret: [unclosed\n", encoding="utf-8")

    with pytest.raises(SystemExit) as excinfo:
        _load_settings(str(config))

    assert "Invalid configuration" in str(excinfo.value)


def test_create_user_goes_through_signup(
    monkeypatch: pytest.MonkeyPatch, settings: Settings, database: Database, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setattr("main.getpass", lambda prompt: "longenough-password")

    assert _create_user(settings, database, "  alice@example.com ") == 0

    assert [user.email for user in database.list_users()] == ["alice@example.com"]
    assert "Created user" in capsys.readouterr().out


@pytest.mark.parametrize("email", ["", "   "])
def test_create_user_rejects_blank_email(
    monkeypatch: pytest.MonkeyPatch, settings: Settings, database: Database, email: str
) -> None:
    monkeypatch.setattr("main.getpass", lambda prompt: "longenough-password")

    assert _create_user(settings, database, email) == 1
    assert database.list_users() == []


def test_create_user_reports_store_failures(
    monkeypatch: pytest.MonkeyPatch, settings: Settings, database: Database, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setattr("main.getpass", lambda prompt: "longenough-password")

    with mock.patch.object(database, "create_user", side_effect=StoreError("database is locked")):
        assert _create_user(settings, database, "alice@example.com") == 1

    assert "database is locked" in capsys.readouterr().err


def test_list_users_reports_store_failures(database: Database, capsys: pytest.CaptureFixture[str]) -> None:
    with mock.patch.object(database, "list_users", side_effect=StoreError("disk I/O error")):
        assert _list_users(database) == 1

    assert "disk I/O error" in capsys.readouterr().err
