"""Unit tests for the command-line interface."""

import pytest

from gmail_reader import cli
from gmail_reader.store import Connection
from tests.fakes import leaf, message_resource


@pytest.fixture
def fake_connect(monkeypatch: pytest.MonkeyPatch, conn: Connection):
    async def _connect() -> Connection:
        return conn

    monkeypatch.setattr(cli, "_connect", _connect)
    return conn


def test_show_prints_headers_and_body(fake_connect, gmail, capsys) -> None:
    gmail.labels["INBOX"] = {"id": "INBOX", "name": "INBOX"}
    gmail.messages["m1"] = message_resource("m1", leaf("text/plain", "hello there"), label_ids=["INBOX"])

    assert cli.main(["show", "m1"]) == 0

    out = capsys.readouterr().out
    assert "Subject: Hello" in out
    assert "From: Alice <alice@example.com>" in out
    assert "hello there" in out


def test_show_raw(fake_connect, gmail, capsys) -> None:
    gmail.messages["m1"] = message_resource("m1", leaf("text/plain", "x"), raw=b"Subject: raw\r\n\r\nbody")

    assert cli.main(["show", "m1", "--raw"]) == 0
    assert "Subject: raw" in capsys.readouterr().out


def test_errors_exit_nonzero(fake_connect, capsys) -> None:
    assert cli.main(["show", "missing"]) == 1
    assert "error:" in capsys.readouterr().err


def test_labels(fake_connect, gmail, capsys) -> None:
    gmail.labels["Label_1"] = {"id": "Label_1", "name": "Work"}

    assert cli.main(["labels"]) == 0
    assert "Work" in capsys.readouterr().out
