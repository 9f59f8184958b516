from .endpoints import ErpEndpoints, ErpResponses, welcome_page_is_alive
from .http import ErpCookieJar, create_http_session
from .session import ErpSession, SessionState

__all__ = [
    "ErpEndpoints",
    "ErpResponses",
    "ErpCookieJar",
    "ErpSession",
    "SessionState",
    "create_http_session",
    "welcome_page_is_alive",
]


