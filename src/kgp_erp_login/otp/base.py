from __future__ import annotations

import abc
import logging
import threading
import time
from typing import Callable, Optional

from ..models import Otp, mask_secret


logger = logging.getLogger(__name__)

OTP_LENGTH = 6
BASE_DELAY_SECONDS = 5


def is_otp(token: str) -> bool:
    return len(token) == OTP_LENGTH and token.isascii() and token.isdigit()


def otp_from_subject(subject: str) -> Optional[str]:
    """Return the first whitespace-separated 6-digit token in an email subject."""
    for token in (subject or "").split():
        if is_otp(token):
            return token
    return None


def backoff_delay(attempt: int) -> int:
    """Seconds to wait before 0-indexed poll `attempt`: 5, 10, 20, 40, ..."""
    return BASE_DELAY_SECONDS * (2**attempt)


class OtpSource(abc.ABC):
    """
    Somewhere an emailed OTP can be read from.

    Implementations only need `fetch_latest()`; `wait_for_otp()` layers the polling policy on top.
    """

    @abc.abstractmethod
    def fetch_latest(self, after_timestamp: int) -> Optional[Otp]:
        """
        Return the newest matching message's OTP, or None if there is no matching message yet.

        Raise `OtpSourceError` (or a transport error) when the channel is unreachable or the message
        is malformed; "no message" and "broken message" must stay distinguishable.
        """

    def wait_for_otp(
        self,
        after_timestamp: int,
        max_attempts: int,
        *,
        cancel: Optional[threading.Event] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> Optional[Otp]:
        """
        Poll with exponential backoff until an OTP no older than `after_timestamp` shows up.

        Attempt i sleeps `5 * 2**i` seconds before looking. Returns None once `max_attempts` are
        exhausted, or as soon as `cancel` is set.
        """
        for attempt in range(max_attempts):
            delay = backoff_delay(attempt)
            logger.info("Checking for OTP email in %ds (attempt %d/%d)", delay, attempt + 1, max_attempts)
            if _pause(delay, cancel=cancel, sleep=sleep):
                logger.info("OTP polling cancelled")
                return None

            otp = self.fetch_latest(after_timestamp)
            if otp is None:
                continue
            if not otp.is_fresh(after_timestamp):
                logger.debug(
                    "Ignoring stale OTP email (timestamp=%d < after=%d)", otp.timestamp, after_timestamp
                )
                continue

            logger.info("Found OTP in email (code=%s)", mask_secret(otp.code))
            return otp

        logger.info("No OTP email after %d attempts", max_attempts)
        return None


def _pause(
    seconds: float,
    *,
    cancel: Optional[threading.Event],
    sleep: Optional[Callable[[float], None]],
) -> bool:
    """Sleep for `seconds`; return True if cancelled."""
    if sleep is not None:
        sleep(seconds)
        return bool(cancel is not None and cancel.is_set())
    if cancel is not None:
        return cancel.wait(seconds)
    time.sleep(seconds)
    return False
