from .erp.session import ErpSession, SessionState
from .models import ErpCredentials, Otp

__all__ = ["ErpSession", "SessionState", "ErpCredentials", "Otp"]


