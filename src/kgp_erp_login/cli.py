from __future__ import annotations

import argparse
import getpass
import logging
import os
import threading
import time
from pathlib import Path
from typing import Callable, List, Optional

from dotenv import load_dotenv

from .config import AppConfig, load_config
from .erp.http import create_http_session
from .erp.session import ErpSession
from .errors import ErpLoginError, OtpSourceError
from .logging_config import configure_logging
from .models import ErpCredentials
from .otp.base import OtpSource
from .otp.gmail_imap import GmailImapOtpSource, imap_connect_and_select
from .otp.manual import prompt_secret
from .otp.race import race_for_otp


logger = logging.getLogger("kgp_erp_login")


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="kgp_erp_login")
    p.add_argument(
        "--env-file",
        default=".env",
        help="Path to a dotenv file (default: .env). If missing, env vars must already be set.",
    )
    p.add_argument("--config", default="config.yaml", help="Path to YAML config (default: config.yaml)")

    sub = p.add_subparsers(dest="cmd")

    login = sub.add_parser("login", help="Sign in to ERP (reusing a saved session when it is still alive)")
    login.add_argument("--fresh", action="store_true", help="Ignore the saved session file and sign in again.")
    login.add_argument("--no-email", action="store_true", help="Do not poll Gmail; type the OTP manually.")
    login.add_argument(
        "--remember",
        action="store_true",
        help="Write credentials/answers typed at the prompt back to the credentials file.",
    )
    login.add_argument("--target-url", default="", help="ERP page to build the login URL for (default: homepage).")

    sub.add_parser("check-session", help="Restore the saved session and report whether it is still alive")

    sub.add_parser("preflight", help="Validate configuration and Gmail IMAP connectivity")
    return p


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)

    env_path = Path(args.env_file)
    if env_path.exists():
        load_dotenv(env_path)

    # Default logging: can be overridden once config is loaded.
    configure_logging(level=os.getenv("LOG_LEVEL", "INFO"))

    cmd = args.cmd or "login"
    try:
        cfg = load_config(args.config)
        configure_logging(level=cfg.logging.level, file_path=cfg.logging.file_path or None)

        if cmd == "login":
            return _login(
                cfg,
                fresh=bool(getattr(args, "fresh", False)),
                use_email=not bool(getattr(args, "no_email", False)),
                remember=bool(getattr(args, "remember", False)),
                target_url=getattr(args, "target_url", "") or None,
            )
        if cmd == "check-session":
            return _check_session(cfg)
        if cmd == "preflight":
            _preflight_gmail_imap(cfg)
            logger.info("Preflight OK")
            return 0
    except KeyboardInterrupt:
        print("Interrupted.")
        return 130
    except ErpLoginError as e:
        logger.error("%s: %s", type(e).__name__, e)
        return 1
    except Exception as e:
        logger.error("%s failed: %s", cmd, e)
        logger.debug("Traceback", exc_info=True)
        return 1

    raise AssertionError("Unhandled command")


def _new_session(cfg: AppConfig, creds: Optional[ErpCredentials] = None) -> ErpSession:
    return ErpSession(
        creds,
        http=create_http_session(cfg.erp.user_agent),
        timeout_seconds=cfg.erp.timeout_seconds,
    )


def _check_session(cfg: AppConfig) -> int:
    session_path = Path(cfg.erp.session_file)
    if not session_path.exists():
        logger.info("No session file at %s", session_path)
        return 1

    session = _new_session(cfg)
    session.load_session(session_path)
    if not session.is_signed_in:
        logger.info("Session file has no SSO token")
        return 1
    return 0 if session.is_alive() else 1


def _load_credentials(path: Path) -> ErpCredentials:
    if not path.exists():
        logger.info("No credentials file at %s; will prompt", path)
        return ErpCredentials()
    return ErpCredentials.from_file(path)


def _prompt(text: str, *, secret: bool = False) -> str:
    while True:
        raw = (getpass.getpass(text) if secret else input(text)).strip()
        if raw:
            return raw


def _login(
    cfg: AppConfig,
    *,
    fresh: bool,
    use_email: bool,
    remember: bool,
    target_url: Optional[str],
) -> int:
    session_path = Path(cfg.erp.session_file)

    if session_path.exists() and not fresh:
        logger.info("Found session file %s. Checking session.", session_path)
        restored = _new_session(cfg)
        restored.load_session(session_path)
        if restored.is_signed_in and restored.is_alive():
            print(restored.get_login_url(target_url))
            return 0
        logger.info("Saved session is not alive; signing in again")

    creds_path = Path(cfg.erp.creds_file)
    creds = _load_credentials(creds_path)
    typed = False
    if not creds.roll_number:
        creds.roll_number = _prompt("Enter roll number: ")
        typed = True
    if not creds.password:
        creds.password = _prompt("Enter password: ", secret=True)
        typed = True

    session = _new_session(cfg, creds)
    session.get_session_token()
    question = session.get_secret_question()

    answer = creds.answer_for(question)
    if answer is None:
        answer = _prompt(f"{question}: ", secret=True)
        creds.remember_answer(question, answer)
        typed = True

    # Emails older than this cannot carry the OTP for this login.
    after_timestamp = int(time.time())
    session.request_otp(answer=answer)

    source: Optional[OtpSource] = None
    if use_email and cfg.gmail_imap.enabled:
        source = GmailImapOtpSource(cfg.gmail_imap)
    try:
        otp = _acquire_otp(cfg, source, after_timestamp)
    finally:
        if isinstance(source, GmailImapOtpSource):
            source.close()
    if not otp:
        logger.error("No OTP received")
        return 1

    session.signin(otp)
    session.save_session(session_path)

    if remember and typed:
        creds.save_to_file(creds_path)
        logger.info("Saved credentials to %s", creds_path)

    print(session.get_login_url(target_url))
    return 0


def _acquire_otp(cfg: AppConfig, source: Optional[OtpSource], after_timestamp: int) -> Optional[str]:
    manual: Optional[Callable[[threading.Event], Optional[str]]] = None
    if cfg.otp.manual_entry or source is None:
        manual = lambda cancel: prompt_secret("Enter OTP: ", cancel)

    if source is None:
        return manual(threading.Event()) if manual else None

    def poll(cancel: threading.Event) -> Optional[str]:
        found = source.wait_for_otp(after_timestamp, cfg.otp.max_attempts, cancel=cancel)
        return found.code if found else None

    return race_for_otp(poll, manual)


def _preflight_gmail_imap(cfg: AppConfig) -> None:
    """
    Best-effort Gmail IMAP connectivity check (no OTP extraction).
    """
    g = cfg.gmail_imap
    if not g.enabled:
        logger.info("Gmail IMAP not configured; OTPs must be typed manually")
        return
    try:
        mail = imap_connect_and_select(g)
        try:
            mail.logout()
        except Exception:
            logger.debug("IMAP logout failed.", exc_info=True)
        logger.info("Gmail IMAP preflight OK (user=%r folder=%r)", g.user, g.folder)
    except Exception as e:
        raise OtpSourceError(
            "Gmail IMAP preflight failed. Check GMAIL_IMAP_USER/GMAIL_IMAP_APP_PASSWORD and folder/label configuration."
        ) from e
