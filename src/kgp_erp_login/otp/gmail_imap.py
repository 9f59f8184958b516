from __future__ import annotations

import imaplib
import logging
from datetime import timezone
from email import message_from_bytes
from email.header import decode_header, make_header
from email.message import Message
from email.utils import parsedate_to_datetime
from typing import Optional

from ..config import GmailImapConfig
from ..errors import MalformedOtpMessage, OtpNotInSubject, OtpSourceError
from ..models import Otp
from .base import OtpSource, otp_from_subject


logger = logging.getLogger(__name__)


def _safe_imap_logout(mail: Optional[imaplib.IMAP4_SSL]) -> None:
    if mail is None:
        return
    try:
        mail.close()
    except Exception:
        logger.debug("IMAP close failed.", exc_info=True)
    try:
        mail.logout()
    except Exception:
        logger.debug("IMAP logout failed.", exc_info=True)


def imap_connect_and_select(cfg: GmailImapConfig) -> imaplib.IMAP4_SSL:
    mail = imaplib.IMAP4_SSL(cfg.host, cfg.port)
    mail.login(cfg.user, cfg.app_password)
    sel_status, _ = mail.select(cfg.folder, readonly=True)
    if sel_status != "OK":
        _safe_imap_logout(mail)
        raise OtpSourceError(f"IMAP select failed for folder={cfg.folder!r}: {sel_status}")
    return mail


class GmailImapOtpSource(OtpSource):
    """
    Read ERP OTP emails from Gmail over IMAP.

    Requires:
    - Gmail account has 2-step verification enabled
    - An App Password is generated
    - IMAP access is enabled on the account
    """

    def __init__(self, cfg: GmailImapConfig) -> None:
        self.cfg = cfg
        self._mail: Optional[imaplib.IMAP4_SSL] = None

    def __enter__(self) -> "GmailImapOtpSource":
        return self

    def __exit__(self, *_exc: object) -> None:
        self.close()

    def close(self) -> None:
        _safe_imap_logout(self._mail)
        self._mail = None

    def _connection(self) -> imaplib.IMAP4_SSL:
        # Reuse a single IMAP session across polls; TLS handshakes + logins are slow and can trip
        # Gmail's security throttles.
        if self._mail is not None:
            try:
                self._mail.noop()
                return self._mail
            except (imaplib.IMAP4.error, OSError):
                logger.debug("IMAP connection went stale; reconnecting.", exc_info=True)
                self.close()
        self._mail = imap_connect_and_select(self.cfg)
        return self._mail

    def fetch_latest(self, after_timestamp: int) -> Optional[Otp]:
        mail = self._connection()

        # Re-select in case the server dropped the selected mailbox between polls.
        sel_status, _ = mail.select(self.cfg.folder, readonly=True)
        if sel_status != "OK":
            raise OtpSourceError(f"IMAP select failed for folder={self.cfg.folder!r}: {sel_status}")

        search_parts: list[str] = []
        if self.cfg.sender_hint:
            search_parts += ["FROM", f"\"{self.cfg.sender_hint}\""]
        if self.cfg.subject_hint:
            search_parts += ["SUBJECT", f"\"{self.cfg.subject_hint}\""]
        status, data = mail.search(None, *(search_parts or ["ALL"]))
        if status != "OK":
            raise OtpSourceError(f"IMAP search failed: {status} {data}")

        ids = data[0].split() if data and data[0] else []
        if not ids:
            return None

        # Newest only: an older OTP email can never be the one for this login.
        msg_id = ids[-1]
        status, msg_data = mail.fetch(msg_id, "(BODY.PEEK[HEADER.FIELDS (SUBJECT DATE)])")
        if status != "OK" or not msg_data or not isinstance(msg_data[0], tuple):
            raise MalformedOtpMessage(f"IMAP fetch returned no payload for message {msg_id!r}: {status}")

        msg = message_from_bytes(msg_data[0][1])
        return otp_from_message(msg, after_timestamp=after_timestamp)


def otp_from_message(msg: Message, *, after_timestamp: int) -> Optional[Otp]:
    """
    Turn an OTP email's headers into an `Otp`, or None if the email predates `after_timestamp`.
    """
    raw_date = (msg.get("Date") or "").strip()
    if not raw_date:
        raise MalformedOtpMessage("Date header not found.")
    try:
        dt = parsedate_to_datetime(raw_date)
    except (TypeError, ValueError) as e:
        raise MalformedOtpMessage(f"Unparseable Date header: {raw_date!r}") from e
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    timestamp = int(dt.timestamp())

    if timestamp < after_timestamp:
        return None

    raw_subject = msg.get("Subject")
    if raw_subject is None:
        raise MalformedOtpMessage("Subject header not found.")
    subject = str(make_header(decode_header(raw_subject))).strip()

    code = otp_from_subject(subject)
    if code is None:
        raise OtpNotInSubject(subject)
    return Otp(code=code, timestamp=timestamp)
