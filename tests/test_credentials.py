from __future__ import annotations

import json
import stat
from pathlib import Path

from kgp_erp_login.models import ErpCredentials, Otp, mask_secret


def test_credentials_from_file_all_fields_optional(tmp_path: Path) -> None:
    p = tmp_path / "erpcreds.json"
    p.write_text(json.dumps({"roll_number": "21CS1000"}), encoding="utf-8")
    creds = ErpCredentials.from_file(p)
    assert creds.roll_number == "21CS1000"
    assert creds.password is None
    assert creds.answer_for("Favorite color?") is None


def test_credentials_save_and_reload(tmp_path: Path) -> None:
    p = tmp_path / "erpcreds.json"
    creds = ErpCredentials(roll_number="21CS1000", password="pw")
    creds.remember_answer("Favorite color?", "blue")
    creds.save_to_file(p)

    again = ErpCredentials.from_file(p)
    assert again == creds
    assert again.answer_for("Favorite color?") == "blue"
    assert stat.S_IMODE(p.stat().st_mode) == 0o600


def test_credentials_repr_hides_secrets() -> None:
    creds = ErpCredentials(roll_number="21CS1000", password="hunter2", answer_map={"Q?": "blue"})
    text = repr(creds)
    assert "hunter2" not in text
    assert "blue" not in text
    assert "21CS1000" in text


def test_otp_freshness_boundary() -> None:
    otp = Otp(code="482913", timestamp=100)
    assert otp.is_fresh(100)
    assert not otp.is_fresh(101)


def test_mask_secret() -> None:
    assert mask_secret("482913") == "48****13"
    assert mask_secret("abc") == "***"
    assert mask_secret(None) == "<empty>"
