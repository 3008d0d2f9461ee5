"""
Unit-tests for harness.py

• build_payload() content
• private key resolution order
• main() end-to-end with monkey-patched requests
"""
from importlib import import_module, reload
import sys
from decimal import Decimal

import pytest

MODULE_PATH = "harness"


# ─────────────────────────── shared fixture ───────────────────────────
@pytest.fixture
def mod(monkeypatch):
    """
    Import harness fresh each test and stub requests so no network I/O occurs.
    """
    m = import_module(MODULE_PATH)
    reload(m)

    sent = {}

    class _Resp:
        status_code = 200
        text = "Checking balances... 2026-01-01 00:00:00"

        @staticmethod
        def json(): return {"success": True}

    def fake_post(url, *, json=None, timeout=10):
        sent.update(method="POST", url=url, json=json, timeout=timeout)
        return _Resp()

    def fake_get(url, *, timeout=10):
        sent.update(method="GET", url=url, timeout=timeout)
        return _Resp()

    stub = type("RqStub", (), {
        "post": staticmethod(fake_post),
        "get": staticmethod(fake_get),
        "RequestException": Exception,
    })
    monkeypatch.setattr(m, "requests", stub)
    monkeypatch.delenv("SWEEPER_PRIVATE_KEY", raising=False)
    m.__dict__["_sent"] = sent   # expose for assertions
    return m


def _run(mod, monkeypatch, *argv):
    monkeypatch.setattr(sys, "argv", ["harness.py", *argv])
    mod.main()


# ───────────────────────────── helper tests ───────────────────────────
@pytest.mark.parametrize("amount,expected", [
    ("10", "10"),
    ("12.500", "12.5"),
    ("0.000001", "0.000001"),
])
def test_build_payload_amount_is_plain_decimal(mod, amount, expected):
    payload = mod.build_payload("TDest", Decimal(amount), "ab" * 32)
    assert payload == {"toAddress": "TDest", "amount": expected, "privateKey": "ab" * 32}


def test_private_key_prefers_cli_then_env(mod, monkeypatch):
    monkeypatch.setenv("SWEEPER_PRIVATE_KEY", "from-env")
    assert mod.resolve_private_key("from-cli") == "from-cli"
    assert mod.resolve_private_key(None) == "from-env"


def test_private_key_prompts_last(mod, monkeypatch):
    monkeypatch.setattr(mod.getpass, "getpass", lambda prompt: "  typed  ")
    assert mod.resolve_private_key(None) == "typed"


# ───────────────────────── main() end-to-end ──────────────────────────
def test_main_posts_transfer(mod, monkeypatch, capsys):
    _run(mod, monkeypatch, "--to", "TDest", "--amount", "2.50", "--private-key", "ab" * 32)

    assert mod._sent["url"] == "http://127.0.0.1:8080/transferTRX"
    assert mod._sent["json"] == {"toAddress": "TDest", "amount": "2.5", "privateKey": "ab" * 32}
    out = capsys.readouterr().out
    assert "ab" * 32 not in out
    assert '"success": true' in out


def test_main_ping(mod, monkeypatch, capsys):
    _run(mod, monkeypatch, "--node", "http://sweeper:9000", "--ping")

    assert mod._sent == {"method": "GET", "url": "http://sweeper:9000/ping", "timeout": 120}
    assert "Checking balances..." in capsys.readouterr().out


def test_main_requires_destination(mod, monkeypatch):
    with pytest.raises(SystemExit):
        _run(mod, monkeypatch, "--amount", "1")
