from .base import OtpSource, backoff_delay, is_otp, otp_from_subject
from .race import race_for_otp
from .static import StaticOtpSource

__all__ = [
    "OtpSource",
    "StaticOtpSource",
    "backoff_delay",
    "is_otp",
    "otp_from_subject",
    "race_for_otp",
]


