from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Union

import yaml
from pydantic import BaseModel, Field, model_validator

from .erp.endpoints import ERP_OTP_SENDER, ERP_OTP_SUBJECT_PREFIX
from .erp.http import DEFAULT_USER_AGENT


_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z0-9_]+)\}")


def _expand_env_vars(value: object) -> object:
    if isinstance(value, str):
        def repl(match: re.Match[str]) -> str:
            var = match.group(1)
            return os.getenv(var, "")

        return _ENV_VAR_PATTERN.sub(repl, value)
    if isinstance(value, list):
        return [_expand_env_vars(v) for v in value]
    if isinstance(value, dict):
        return {k: _expand_env_vars(v) for k, v in value.items()}
    return value


def _env_bool(name: str, default: bool = False) -> bool:
    raw = (os.getenv(name, "") or "").strip().lower()
    if not raw:
        return bool(default)
    return raw in {"1", "true", "t", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name, "") or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _deep_merge(base: object, override: object) -> object:
    if isinstance(base, dict) and isinstance(override, dict):
        out = dict(base)
        for k, v in override.items():
            if k in out:
                out[k] = _deep_merge(out[k], v)
            else:
                out[k] = v
        return out
    return override


def _default_config_from_env() -> dict:
    """
    Env-only config so most users only need `.env`; a YAML file is an optional override.
    """
    return {
        "erp": {
            "creds_file": os.getenv("ERP_CREDS_FILE", "erpcreds.json"),
            "session_file": os.getenv("ERP_SESSION_FILE", ".session"),
            "user_agent": os.getenv("ERP_USER_AGENT", DEFAULT_USER_AGENT),
            "timeout_seconds": _env_int("ERP_TIMEOUT_SECONDS", 20),
        },
        "gmail_imap": {
            "user": os.getenv("GMAIL_IMAP_USER", ""),
            "app_password": os.getenv("GMAIL_IMAP_APP_PASSWORD", ""),
            "host": os.getenv("GMAIL_IMAP_HOST", "imap.gmail.com"),
            "port": _env_int("GMAIL_IMAP_PORT", 993),
            "folder": os.getenv("GMAIL_IMAP_FOLDER", "INBOX"),
            "sender_hint": os.getenv("GMAIL_IMAP_SENDER_HINT", ERP_OTP_SENDER),
            "subject_hint": os.getenv("GMAIL_IMAP_SUBJECT_HINT", ERP_OTP_SUBJECT_PREFIX),
        },
        "otp": {
            "max_attempts": _env_int("OTP_MAX_ATTEMPTS", 5),
            "manual_entry": _env_bool("OTP_MANUAL_ENTRY", default=True),
        },
        "logging": {
            "level": os.getenv("LOG_LEVEL", "INFO"),
            "file_path": os.getenv("LOG_FILE", ""),
        },
    }


class ErpConfig(BaseModel):
    creds_file: str = "erpcreds.json"
    session_file: str = ".session"
    user_agent: str = DEFAULT_USER_AGENT
    timeout_seconds: int = Field(default=20, gt=0)


class GmailImapConfig(BaseModel):
    user: str = ""
    app_password: str = Field(default="", repr=False)
    host: str = "imap.gmail.com"
    port: int = 993
    folder: str = "INBOX"
    sender_hint: str = ERP_OTP_SENDER
    subject_hint: str = ERP_OTP_SUBJECT_PREFIX

    @property
    def enabled(self) -> bool:
        return bool(self.user and self.app_password)


class OtpConfig(BaseModel):
    # Backoff doubles every attempt: 5 attempts wait 5+10+20+40+80 = 155s in total.
    max_attempts: int = Field(default=5, ge=0, le=10)
    manual_entry: bool = True


class LoggingConfig(BaseModel):
    level: str = "INFO"
    file_path: str = ""


class AppConfig(BaseModel):
    erp: ErpConfig = ErpConfig()
    gmail_imap: GmailImapConfig = GmailImapConfig()
    otp: OtpConfig = OtpConfig()
    logging: LoggingConfig = LoggingConfig()

    @model_validator(mode="after")
    def _validate_otp_channel(self) -> "AppConfig":
        if not self.otp.manual_entry and not self.gmail_imap.enabled:
            raise ValueError(
                "otp.manual_entry is disabled but Gmail IMAP is not configured; "
                "set GMAIL_IMAP_USER + GMAIL_IMAP_APP_PASSWORD or enable manual entry"
            )
        return self


def load_config(path: Union[str, Path]) -> AppConfig:
    p = Path(path)
    raw: dict = {}
    if p.exists():
        raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
        raw = _expand_env_vars(raw)  # supports ${ENV_VAR} in YAML

    merged = _deep_merge(_default_config_from_env(), raw)
    return AppConfig.model_validate(merged)
