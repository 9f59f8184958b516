from __future__ import annotations

import logging
import queue
import threading
from typing import Callable, Optional


logger = logging.getLogger(__name__)

EMAIL = "email"
MANUAL = "manual"

# How often the waiting thread wakes up so Ctrl-C is handled promptly.
_QUEUE_POLL_SECONDS = 0.5

# Upper bound on waiting for the losing side to notice the cancel Event.
DEFAULT_JOIN_TIMEOUT_SECONDS = 10.0


def race_for_otp(
    poll: Callable[[threading.Event], Optional[str]],
    manual: Optional[Callable[[threading.Event], Optional[str]]] = None,
    *,
    join_timeout: float = DEFAULT_JOIN_TIMEOUT_SECONDS,
) -> Optional[str]:
    """
    Race an email poll against manual entry and return whichever OTP arrives first.

    Both callables receive the same cancel Event and must return soon after it is set.

    Rules:
    - The first non-empty code wins, whichever side it comes from.
    - A None or an error from one side does not end the race while the other side is pending.
    - Once the race ends the Event is set and both threads are joined (up to `join_timeout`),
      so no contender is still using its resources (IMAP connection, terminal) on return.
    - With no winner, a manual-entry error is re-raised; an email error is re-raised only when
      there was no manual contender. Otherwise the result is None.
    """
    cancel = threading.Event()
    results: "queue.Queue[tuple[str, Optional[str], Optional[BaseException]]]" = queue.Queue()

    def _run(name: str, fn: Callable[[threading.Event], Optional[str]]) -> None:
        try:
            results.put((name, fn(cancel), None))
        except Exception as e:
            results.put((name, None, e))

    contenders = [(EMAIL, poll)]
    if manual is not None:
        contenders.append((MANUAL, manual))

    threads = []
    for name, fn in contenders:
        t = threading.Thread(target=_run, args=(name, fn), name=f"otp-{name}", daemon=True)
        t.start()
        threads.append(t)

    pending = {name for name, _ in contenders}
    errors: dict[str, BaseException] = {}
    try:
        while pending:
            try:
                name, code, error = results.get(timeout=_QUEUE_POLL_SECONDS)
            except queue.Empty:
                continue
            pending.discard(name)

            if error is not None:
                logger.warning("OTP %s failed: %s", name, error)
                errors[name] = error
                continue

            code = (code or "").strip()
            if code:
                logger.info("Using OTP from %s", name)
                return code
            logger.info("No OTP from %s", name)
    finally:
        cancel.set()
        _join_all(threads, join_timeout)

    # Nobody produced a code. Surface the failure the operator can act on.
    if MANUAL in errors:
        raise errors[MANUAL]
    if manual is None and EMAIL in errors:
        raise errors[EMAIL]
    return None


def _join_all(threads: list[threading.Thread], timeout: float) -> None:
    for t in threads:
        t.join(timeout)
        if t.is_alive():
            logger.warning("%s did not stop within %.0fs of cancel", t.name, timeout)
