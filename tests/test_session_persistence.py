from __future__ import annotations

import threading
from pathlib import Path

import pytest

from kgp_erp_login.erp.http import ErpCookieJar, create_http_session
from kgp_erp_login.erp.persistence import read_session_file
from kgp_erp_login.erp.session import ErpSession, SessionState
from kgp_erp_login.errors import InvalidStateError


@pytest.mark.parametrize(
    ("session_token", "sso_token"),
    [("tok-123", "abc123"), (None, None), ("tok-123", None), (None, "abc123")],
)
def test_save_then_load_round_trips_tokens(tmp_path: Path, session_token, sso_token) -> None:
    path = tmp_path / ".session"
    s1 = ErpSession(http=create_http_session())
    s1.session_token = session_token
    s1.sso_token = sso_token
    s1.save_session(path)

    s2 = ErpSession(http=create_http_session())
    s2.load_session(path)
    assert s2.session_token == session_token
    assert s2.sso_token == sso_token


def test_session_file_format(tmp_path: Path) -> None:
    path = tmp_path / ".session"
    s = ErpSession(http=create_http_session())
    s.session_token = "tok-123"
    s.save_session(path)
    assert path.read_text(encoding="utf-8") == "tok-123\n\n"

    s.session_token = None
    s.save_session(path)
    assert path.read_text(encoding="utf-8") == "\n\n"
    assert read_session_file(path) == (None, None)


def test_read_session_file_tolerates_missing_lines(tmp_path: Path) -> None:
    path = tmp_path / ".session"
    path.write_text("only-session-token", encoding="utf-8")
    assert read_session_file(path) == ("only-session-token", None)


def test_load_with_sso_token_reseeds_cookie_jar(tmp_path: Path) -> None:
    path = tmp_path / ".session"
    path.write_text("tok-123\nabc123\n", encoding="utf-8")

    s = ErpSession(http=create_http_session())
    s.cookies.set("JSESSIONID", "stale", domain="erp.iitkgp.ac.in", path="/")
    s.load_session(path)

    cookies = list(s.cookies)
    assert [(c.name, c.value, c.domain) for c in cookies] == [("ssoToken", "abc123", "erp.iitkgp.ac.in")]
    assert s.state is SessionState.SIGNED_IN
    assert s.get_login_url() == "https://erp.iitkgp.ac.in/IIT_ERP3/?ssoToken=abc123"


def test_load_without_sso_token_leaves_cookies_alone(tmp_path: Path) -> None:
    path = tmp_path / ".session"
    path.write_text("tok-123\n\n", encoding="utf-8")

    s = ErpSession(http=create_http_session())
    s.cookies.set("JSESSIONID", "live", domain="erp.iitkgp.ac.in", path="/")
    s.load_session(path)

    assert s.cookies.get("JSESSIONID") == "live"
    assert s.state is SessionState.TOKEN_ACQUIRED
    # A restored session token is reused, never refetched.
    assert s.get_session_token() == "tok-123"


def test_load_refuses_to_move_a_started_session_backwards(tmp_path: Path) -> None:
    path = tmp_path / ".session"
    path.write_text("\n\n", encoding="utf-8")

    s = ErpSession(http=create_http_session())
    s.load_session(path)
    assert s.state is SessionState.UNINITIALIZED

    s.session_token = "tok-123"
    s.sso_token = "abc123"
    s.state = SessionState.SIGNED_IN
    with pytest.raises(InvalidStateError):
        s.load_session(path)
    assert s.state is SessionState.SIGNED_IN
    assert s.sso_token == "abc123"


def test_reseed_is_safe_against_concurrent_readers() -> None:
    jar = ErpCookieJar()
    stop = threading.Event()
    seen: list[int] = []

    def reader() -> None:
        while not stop.is_set():
            seen.append(len(jar.snapshot()))

    t = threading.Thread(target=reader)
    t.start()
    try:
        for i in range(200):
            jar.reseed("ssoToken", f"v{i}", domain="erp.iitkgp.ac.in")
    finally:
        stop.set()
        t.join()

    assert jar.get("ssoToken") == "v199"
    assert jar.snapshot() == {"ssoToken": "v199"}
    assert all(n <= 1 for n in seen)
