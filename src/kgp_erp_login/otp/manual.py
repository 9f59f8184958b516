from __future__ import annotations

import getpass
import os
import select
import sys
import threading
from typing import Optional, TextIO

try:
    import termios
except ImportError:  # Windows
    termios = None  # type: ignore[assignment]


# How often a blocked prompt checks whether it has been cancelled.
_CANCEL_CHECK_SECONDS = 0.2


def prompt_secret(
    prompt: str,
    cancel: threading.Event,
    *,
    stdin: Optional[TextIO] = None,
    stdout: Optional[TextIO] = None,
) -> Optional[str]:
    """
    Read a secret line from the terminal, giving up (returning None) once `cancel` is set.

    Echo is switched off while waiting and the original terminal settings are always put back
    by the reading thread itself, including when the prompt is cancelled.
    Blank lines re-prompt. End of input raises EOFError.
    """
    stdin = stdin or sys.stdin
    stdout = stdout or sys.stdout
    if termios is None:
        # No select() on console handles; fall back to a prompt that cannot be cancelled.
        while True:
            raw = getpass.getpass(prompt).strip()
            if raw:
                return raw

    fd = stdin.fileno()
    saved = None
    if os.isatty(fd):
        saved = termios.tcgetattr(fd)
        quiet = termios.tcgetattr(fd)
        quiet[3] &= ~termios.ECHO
        termios.tcsetattr(fd, termios.TCSAFLUSH, quiet)

    try:
        while True:
            stdout.write(prompt)
            stdout.flush()
            line = _read_line(fd, cancel)
            if line is None:
                return None
            raw = line.strip()
            if raw:
                return raw
    finally:
        if saved is not None:
            termios.tcsetattr(fd, termios.TCSADRAIN, saved)
            # The newline the operator typed was not echoed.
            stdout.write("\n")
            stdout.flush()


def _read_line(fd: int, cancel: threading.Event) -> Optional[str]:
    buf = b""
    while not cancel.is_set():
        ready, _, _ = select.select([fd], [], [], _CANCEL_CHECK_SECONDS)
        if not ready:
            continue
        chunk = os.read(fd, 1024)
        if not chunk:
            if buf:
                return buf.decode("utf-8", errors="replace")
            raise EOFError
        buf += chunk
        if b"\n" in buf:
            return buf.split(b"\n", 1)[0].decode("utf-8", errors="replace")
    return None
