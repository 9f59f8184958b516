from __future__ import annotations


class ErpLoginError(RuntimeError):
    """
    Base class for every failure raised by the ERP sign-in flow.

    Transport failures are not wrapped; they surface as `requests.RequestException`.
    """


# Preconditions: a step was called without the data it needs. Never retried.


class PreconditionError(ErpLoginError):
    pass


class RollNumberMissing(PreconditionError):
    def __init__(self) -> None:
        super().__init__("Roll number not found.")


class PasswordMissing(PreconditionError):
    def __init__(self) -> None:
        super().__init__("Password not found.")


class AnswerNotFound(PreconditionError):
    def __init__(self, question: str | None = None) -> None:
        if question:
            super().__init__(f"No answer known for security question {question!r}.")
        else:
            super().__init__("Security question answer not found.")
        self.question = question


class SessionTokenMissing(PreconditionError):
    def __init__(self) -> None:
        super().__init__("Session token not found.")


class NotSignedIn(PreconditionError):
    def __init__(self) -> None:
        super().__init__("Session is not signed in (no SSO token).")


class InvalidStateError(PreconditionError):
    """
    Raised when a login step is called before the step it depends on has succeeded.
    """


# Portal rejections: the portal understood the request and said no.


class PortalRejection(ErpLoginError):
    pass


class InvalidRollNumber(PortalRejection):
    def __init__(self, roll_number: str) -> None:
        super().__init__(f"Invalid roll number: {roll_number}")
        self.roll_number = roll_number


class WrongAnswer(PortalRejection):
    def __init__(self) -> None:
        super().__init__("Incorrect security question answer.")


class WrongPassword(PortalRejection):
    def __init__(self) -> None:
        super().__init__("Incorrect password.")


class OtpMismatch(PortalRejection):
    def __init__(self) -> None:
        super().__init__("OTP mismatch.")


class OtpRequestFailed(PortalRejection):
    def __init__(self, portal_message: str) -> None:
        super().__init__(f"Error requesting OTP: {portal_message}")
        self.portal_message = portal_message


# Protocol violations: the portal's HTML/JSON contract changed under us.


class ProtocolViolation(ErpLoginError):
    pass


class TokenNotFound(ProtocolViolation):
    pass


class MalformedResponse(ProtocolViolation):
    pass


class SsoTokenNotFound(ProtocolViolation):
    pass


# OTP source failures: the mailbox answered, but not with something usable.


class OtpSourceError(ErpLoginError):
    pass


class OtpNotInSubject(OtpSourceError):
    def __init__(self, subject: str) -> None:
        super().__init__(f"No OTP found in the subject: {subject!r}")
        self.subject = subject


class MalformedOtpMessage(OtpSourceError):
    pass
