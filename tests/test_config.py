from __future__ import annotations

from pathlib import Path

import pytest

from kgp_erp_login.config import load_config


_ENV_KEYS = [
    "ERP_CREDS_FILE",
    "ERP_SESSION_FILE",
    "ERP_TIMEOUT_SECONDS",
    "GMAIL_IMAP_USER",
    "GMAIL_IMAP_APP_PASSWORD",
    "GMAIL_IMAP_SENDER_HINT",
    "OTP_MAX_ATTEMPTS",
    "OTP_MANUAL_ENTRY",
    "LOG_LEVEL",
    "LOG_FILE",
]


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch) -> None:
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def _write(tmp_path: Path, name: str, text: str) -> Path:
    p = tmp_path / name
    p.write_text(text, encoding="utf-8")
    return p


def test_defaults_without_yaml(tmp_path: Path) -> None:
    cfg = load_config(tmp_path / "missing.yaml")
    assert cfg.erp.creds_file == "erpcreds.json"
    assert cfg.erp.session_file == ".session"
    assert cfg.erp.timeout_seconds == 20
    assert cfg.gmail_imap.sender_hint == "erpkgp@adm.iitkgp.ac.in"
    assert cfg.gmail_imap.enabled is False
    assert cfg.otp.max_attempts == 5
    assert cfg.otp.manual_entry is True


def test_env_values_are_used(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("GMAIL_IMAP_USER", "me@gmail.com")
    monkeypatch.setenv("GMAIL_IMAP_APP_PASSWORD", "app-pass")
    monkeypatch.setenv("OTP_MAX_ATTEMPTS", "3")
    monkeypatch.setenv("OTP_MANUAL_ENTRY", "no")
    cfg = load_config(tmp_path / "missing.yaml")
    assert cfg.gmail_imap.enabled is True
    assert cfg.otp.max_attempts == 3
    assert cfg.otp.manual_entry is False
    assert "app-pass" not in repr(cfg.gmail_imap)


def test_yaml_overrides_env_and_expands_vars(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("ERP_SESSION_FILE", "from-env.session")
    monkeypatch.setenv("MY_GMAIL_PASSWORD", "secret-app-pass")
    cfg_path = _write(
        tmp_path,
        "cfg.yaml",
        """
erp:
  session_file: "data/erp.session"
gmail_imap:
  user: "me@gmail.com"
  app_password: "${MY_GMAIL_PASSWORD}"
otp:
  max_attempts: 4
""",
    )
    cfg = load_config(cfg_path)
    assert cfg.erp.session_file == "data/erp.session"
    assert cfg.erp.creds_file == "erpcreds.json"
    assert cfg.gmail_imap.app_password == "secret-app-pass"
    assert cfg.otp.max_attempts == 4


def test_manual_entry_off_requires_imap(tmp_path: Path) -> None:
    cfg_path = _write(tmp_path, "cfg.yaml", "otp:\n  manual_entry: false\n")
    with pytest.raises(Exception):
        _ = load_config(cfg_path)


def test_bad_integer_env_is_rejected(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("OTP_MAX_ATTEMPTS", "lots")
    with pytest.raises(ValueError):
        _ = load_config(tmp_path / "missing.yaml")
