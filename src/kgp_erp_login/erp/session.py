from __future__ import annotations

import enum
import logging
from pathlib import Path
from typing import Any, Optional, Union
from urllib.parse import parse_qs, urlparse

import requests
from bs4 import BeautifulSoup

from ..errors import (
    AnswerNotFound,
    InvalidRollNumber,
    InvalidStateError,
    MalformedResponse,
    NotSignedIn,
    OtpMismatch,
    OtpRequestFailed,
    PasswordMissing,
    RollNumberMissing,
    SessionTokenMissing,
    SsoTokenNotFound,
    TokenNotFound,
    WrongAnswer,
    WrongPassword,
)
from ..models import ErpCredentials, mask_secret
from .endpoints import ErpEndpoints, ErpResponses, welcome_page_is_alive
from .http import ErpCookieJar, create_http_session
from .persistence import read_session_file, write_session_file


logger = logging.getLogger(__name__)

SSO_TOKEN_COOKIE = "ssoToken"


class SessionState(enum.IntEnum):
    """Login progress. A session only ever moves forward through these."""

    UNINITIALIZED = 0
    TOKEN_ACQUIRED = 1
    QUESTION_RESOLVED = 2
    OTP_REQUESTED = 3
    SIGNED_IN = 4


def _snippet(text: str, limit: int = 300) -> str:
    text = " ".join((text or "").split())
    return text if len(text) <= limit else text[:limit] + "..."


class ErpSession:
    """
    One ERP login attempt: session token -> security question -> email OTP -> sign in.

    Fields are only written after the step that produces them succeeds, so a failed step
    leaves the session exactly as it was and the step can be retried.
    """

    def __init__(
        self,
        creds: Optional[ErpCredentials] = None,
        *,
        http: Optional[requests.Session] = None,
        endpoints: Optional[ErpEndpoints] = None,
        responses: Optional[ErpResponses] = None,
        timeout_seconds: float = 20,
    ) -> None:
        self.creds = creds or ErpCredentials()
        self.endpoints = endpoints or ErpEndpoints()
        self.responses = responses or ErpResponses()
        self.timeout_seconds = timeout_seconds
        self._http = http or create_http_session()

        self.state = SessionState.UNINITIALIZED
        self.question: Optional[str] = None
        self.answer: Optional[str] = None
        self.session_token: Optional[str] = None
        self.sso_token: Optional[str] = None
        self.email_otp: Optional[str] = None

    @property
    def cookies(self) -> ErpCookieJar:
        return self._http.cookies

    @property
    def is_signed_in(self) -> bool:
        return self.sso_token is not None

    # ------------------------------------------------------------------
    # State bookkeeping
    # ------------------------------------------------------------------

    def _require(self, minimum: SessionState, step: str) -> None:
        if self.state < minimum:
            raise InvalidStateError(
                f"{step} requires state {minimum.name} or later (current state: {self.state.name})"
            )

    def _advance(self, target: SessionState) -> None:
        if target > self.state:
            logger.debug("Session state %s -> %s", self.state.name, target.name)
            self.state = target

    # ------------------------------------------------------------------
    # Login steps
    # ------------------------------------------------------------------

    def get_session_token(self) -> str:
        """Fetch (once) the anti-forgery token embedded in the homepage."""
        if self.session_token is not None:
            return self.session_token

        url = self.endpoints.homepage_url
        resp = self._http.get(url, timeout=self.timeout_seconds)
        resp.raise_for_status()

        soup = BeautifulSoup(resp.text, "html.parser")
        elem = soup.select_one(self.endpoints.session_token_selector)
        if elem is None:
            logger.error(
                "Session token element %r not found (url=%s body=%r)",
                self.endpoints.session_token_selector,
                url,
                _snippet(resp.text),
            )
            raise TokenNotFound("Session token selector element not found.")

        token = elem.get("value")
        if token is None:
            logger.error("Session token element has no value attribute (url=%s element=%s)", url, elem)
            raise TokenNotFound("Session token not found.")

        self.session_token = str(token)
        self._advance(SessionState.TOKEN_ACQUIRED)
        logger.info("Fetched session token (%s)", mask_secret(self.session_token))
        return self.session_token

    def get_secret_question(self, roll_number: Optional[str] = None) -> str:
        """
        Ask the portal for the account's security question.

        A roll number already stored on the session wins over the argument.
        """
        self._require(SessionState.TOKEN_ACQUIRED, "get_secret_question")

        roll = self.creds.roll_number or roll_number
        if not roll:
            raise RollNumberMissing()

        resp = self._http.post(
            self.endpoints.secret_question_url,
            data={"user_id": roll},
            timeout=self.timeout_seconds,
        )
        resp.raise_for_status()
        body = resp.text

        if body == self.responses.secret_question_roll_invalid:
            raise InvalidRollNumber(roll)

        self.creds.roll_number = roll
        self.question = body
        self._advance(SessionState.QUESTION_RESOLVED)
        logger.info("Fetched security question for roll number %s", roll)
        return body

    def get_login_details(self) -> dict[str, str]:
        """Build the form posted to both the OTP-request and sign-in endpoints."""
        if not self.creds.roll_number:
            raise RollNumberMissing()
        if not self.creds.password:
            raise PasswordMissing()
        if not self.answer:
            raise AnswerNotFound(self.question)
        if not self.session_token:
            raise SessionTokenMissing()

        return {
            "user_id": self.creds.roll_number,
            "password": self.creds.password,
            "answer": self.answer,
            # Required by the portal; meaning unknown.
            "typeee": "SI",
            "email_otp": self.email_otp or "",
            "sessionToken": self.session_token,
            "requestedUrl": self.endpoints.homepage_url,
        }

    def request_otp(self, password: Optional[str] = None, answer: Optional[str] = None) -> None:
        """
        Ask the portal to email an OTP.

        Capture the OTP cutoff timestamp right before calling this; the portal sends the mail as a
        side effect of a successful call.
        """
        self._require(SessionState.QUESTION_RESOLVED, "request_otp")

        password = password or self.creds.password
        if not password:
            raise PasswordMissing()

        if answer is None:
            answer = self.creds.answer_for(self.question or "")
            if answer is None:
                raise AnswerNotFound(self.question)

        # Validate against a scratch copy so nothing is stored unless the portal accepts it.
        prev_password, prev_answer = self.creds.password, self.answer
        self.creds.password, self.answer = password, answer
        try:
            form = self.get_login_details()
            form["email_otp"] = ""
            resp = self._http.post(self.endpoints.otp_url, data=form, timeout=self.timeout_seconds)
            resp.raise_for_status()
            self._check_otp_response(resp)
        except Exception:
            self.creds.password, self.answer = prev_password, prev_answer
            raise

        self._advance(SessionState.OTP_REQUESTED)
        logger.info("OTP requested; the portal says it was emailed")

    def _check_otp_response(self, resp: requests.Response) -> None:
        try:
            payload: Any = resp.json()
        except ValueError as e:
            logger.error("OTP response is not JSON (url=%s body=%r)", resp.url, _snippet(resp.text))
            raise MalformedResponse("OTP response is not JSON.") from e

        if not isinstance(payload, dict) or "msg" not in payload:
            logger.error("OTP response has no `msg` field (url=%s body=%r)", resp.url, _snippet(resp.text))
            raise MalformedResponse("Response has no `msg` field.")

        msg = str(payload["msg"])
        if msg == self.responses.answer_mismatch:
            raise WrongAnswer()
        if msg == self.responses.password_mismatch:
            raise WrongPassword()
        if msg == self.responses.otp_sent:
            return
        raise OtpRequestFailed(msg)

    def signin(self, otp: str) -> str:
        """Complete the login with the emailed OTP. Returns the SSO token."""
        self._require(SessionState.OTP_REQUESTED, "signin")

        prev_otp = self.email_otp
        self.email_otp = otp
        try:
            form = self.get_login_details()
            resp = self._http.post(self.endpoints.login_url, data=form, timeout=self.timeout_seconds)
            resp.raise_for_status()

            if resp.text == self.responses.otp_mismatch:
                raise OtpMismatch()

            sso_token = _sso_token_from_url(resp.url)
            if not sso_token:
                logger.error("SSO token not found in final URL (url=%s)", resp.url)
                raise SsoTokenNotFound("SSO token not found in URL.")
        except Exception:
            self.email_otp = prev_otp
            raise

        self.sso_token = sso_token
        self._advance(SessionState.SIGNED_IN)
        logger.info("Signed in (sso_token=%s)", mask_secret(sso_token))
        logger.debug("Cookies after sign-in: %s", sorted(self.cookies.snapshot()))
        return sso_token

    # ------------------------------------------------------------------
    # Helpers usable in any state
    # ------------------------------------------------------------------

    def is_alive(self) -> bool:
        """Check whether the current cookie state is still logged in."""
        resp = self._http.get(self.endpoints.welcome_page_url, timeout=self.timeout_seconds)
        alive = welcome_page_is_alive(resp)
        logger.info("Session alive: %s", alive)
        return alive

    def get_login_url(self, target: Optional[str] = None) -> str:
        if self.sso_token is None:
            raise NotSignedIn()
        return f"{target or self.endpoints.homepage_url}?ssoToken={self.sso_token}"

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save_session(self, path: Union[str, Path]) -> None:
        write_session_file(path, session_token=self.session_token, sso_token=self.sso_token)
        logger.info("Saved session to %s", path)

    def load_session(self, path: Union[str, Path]) -> None:
        """Restore a saved session. Only a fresh (UNINITIALIZED) session can be restored into."""
        if self.state != SessionState.UNINITIALIZED:
            raise InvalidStateError(
                f"load_session requires a fresh session (current state: {self.state.name})"
            )
        session_token, sso_token = read_session_file(path)
        self.session_token = session_token
        self.sso_token = sso_token

        if sso_token is not None:
            domain = urlparse(self.endpoints.base_url).hostname or ""
            self.cookies.reseed(SSO_TOKEN_COOKIE, sso_token, domain=domain)
            self.state = SessionState.SIGNED_IN
        elif session_token is not None:
            self.state = SessionState.TOKEN_ACQUIRED
        logger.info("Restored session from %s (state=%s)", path, self.state.name)


def _sso_token_from_url(url: str) -> Optional[str]:
    query = urlparse(url or "").query
    values = parse_qs(query).get("ssoToken")
    if not values:
        return None
    return values[0] or None
