from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import requests


@dataclass(frozen=True)
class ErpEndpoints:
    """
    The ERP is a fixed institutional portal; URLs may move over time.
    Keep every URL the session talks to here for easy maintenance.
    """

    base_url: str = "https://erp.iitkgp.ac.in"
    homepage_url: str = "https://erp.iitkgp.ac.in/IIT_ERP3/"
    # Its exact length tells a live session from a dead one; see welcome_page_is_alive().
    welcome_page_url: str = "https://erp.iitkgp.ac.in/IIT_ERP3/welcome.jsp"
    login_url: str = "https://erp.iitkgp.ac.in/SSOAdministration/auth.htm"
    secret_question_url: str = "https://erp.iitkgp.ac.in/SSOAdministration/getSecurityQues.htm"
    # Typo is the portal's, not ours.
    otp_url: str = "https://erp.iitkgp.ac.in/SSOAdministration/getEmilOTP.htm"

    session_token_selector: str = "#sessionToken"


@dataclass(frozen=True)
class ErpResponses:
    """Literal response bodies/messages the portal answers with."""

    secret_question_roll_invalid: str = "FALSE"
    answer_mismatch: str = "Unable to send OTP due to security question's answare mismatch ."
    password_mismatch: str = "Unable to send OTP due to password mismatch."
    otp_sent: str = (
        "An OTP(valid for a short time) has been sent to your email id registered with ERP, "
        "IIT Kharagpur. Please use that OTP for further processing. "
    )
    otp_mismatch: str = "ERROR:Email OTP mismatch"


ERP_OTP_SENDER = "erpkgp@adm.iitkgp.ac.in"
ERP_OTP_SUBJECT_PREFIX = "OTP for Sign In in ERP Portal of IIT Kharagpur"

# Byte length of the welcome page when the cookie state is still logged in.
# Undocumented by the portal: any change to that page breaks this check.
ALIVE_WELCOME_PAGE_LENGTH = 1034


def _response_length(response: requests.Response) -> Optional[int]:
    raw = (response.headers.get("Content-Length") or "").strip()
    if raw.isdigit():
        return int(raw)
    if response.content is not None:
        return len(response.content)
    return None


def welcome_page_is_alive(response: requests.Response) -> bool:
    """
    Liveness predicate for a GET of the welcome page.

    The portal gives no explicit "logged in" signal, so the exact page length is used.
    """
    return _response_length(response) == ALIVE_WELCOME_PAGE_LENGTH
