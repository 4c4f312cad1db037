"""Tests for the command line entry point."""

import pytest

from layerdeck import DeviceInfo
from layerdeck import __main__ as cli


def test_list(monkeypatch, capsys):
    monkeypatch.setattr(cli, "list_devices", lambda: [DeviceInfo("/dev/hidraw0", "Stream Deck XL", None)])

    assert cli.main(["--list"]) == 0
    assert capsys.readouterr().out == "/dev/hidraw0\tStream Deck XL\t-\n"


def test_missing_layout(tmp_path, capsys):
    assert cli.main([str(tmp_path / "nope.ini")]) == 1
    assert "Unable to load" in capsys.readouterr().err


def test_bad_layout(tmp_path, capsys):
    path = tmp_path / "bad.ini"
    path.write_text("[General]\nHoldTime = later\n", encoding="utf-8")

    assert cli.main([str(path)]) == 1
    assert "General.HoldTime" in capsys.readouterr().err


def test_config_required():
    with pytest.raises(SystemExit):
        cli.main([])
