"""
tests/test_cli.py -- The create-user subcommand of main.py.

getpass is patched so no terminal is needed; the store points at a file in
tmp_path so the configured database is never touched.
"""

from __future__ import annotations

from types import SimpleNamespace

import pytest

import main as cli
from auth.permissions import Role
from auth.store import UserStore


@pytest.fixture
def db_url(tmp_path, monkeypatch) -> str:
    url = f"sqlite:///{tmp_path / 'cli.db'}"
    monkeypatch.setattr(cli, "get_settings", lambda: SimpleNamespace(database_url=url))
    return url


def _passwords(monkeypatch, *answers: str) -> None:
    replies = iter(answers)
    monkeypatch.setattr(cli.getpass, "getpass", lambda prompt="": next(replies))


def test_create_admin(db_url, monkeypatch, capsys) -> None:
    _passwords(monkeypatch, "s3cret!", "s3cret!")
    rc = cli.main(["create-user", "root", "--phone", "0900000000", "--role", "admin"])
    assert rc == 0
    assert "Created admin 'root'" in capsys.readouterr().out

    store = UserStore(db_url)
    user = store.get_by_username("root")
    store.close()
    assert user.role is Role.ADMIN
    assert user.full_name == "root"


def test_mismatched_passwords(db_url, monkeypatch, capsys) -> None:
    _passwords(monkeypatch, "s3cret!", "s3cret?")
    assert cli.main(["create-user", "root", "--phone", "0900000000"]) == 1
    assert "do not match" in capsys.readouterr().out


def test_duplicate_username(db_url, monkeypatch, capsys) -> None:
    _passwords(monkeypatch, "s3cret!", "s3cret!", "s3cret!", "s3cret!")
    assert cli.main(["create-user", "root", "--phone", "0900000000"]) == 0
    assert cli.main(["create-user", "root", "--phone", "0900000001"]) == 1
    assert "Username already exists." in capsys.readouterr().out


def test_unknown_role_is_rejected_by_argparse() -> None:
    with pytest.raises(SystemExit):
        cli.main(["create-user", "root", "--phone", "0900000000", "--role", "root"])
