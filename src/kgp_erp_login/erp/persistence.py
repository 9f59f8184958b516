from __future__ import annotations

import os
from pathlib import Path
from typing import Optional, Union


def write_session_file(
    path: Union[str, Path],
    *,
    session_token: Optional[str],
    sso_token: Optional[str],
) -> None:
    """
    Write the two-line session record: session token, then SSO token (empty line when absent).
    """
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(f"{session_token or ''}\n{sso_token or ''}\n", encoding="utf-8")
    # Holds a bearer token.
    os.chmod(p, 0o600)


def read_session_file(path: Union[str, Path]) -> tuple[Optional[str], Optional[str]]:
    lines = Path(path).read_text(encoding="utf-8").splitlines()
    session_token = lines[0].strip() if len(lines) > 0 else ""
    sso_token = lines[1].strip() if len(lines) > 1 else ""
    return (session_token or None, sso_token or None)
