from services.results import ErrorCategory, ErrorCode, Failure, LoginResult, Success
from services.session_manager import SessionManager

__all__ = [
    "ErrorCategory",
    "ErrorCode",
    "Failure",
    "LoginResult",
    "SessionManager",
    "Success",
]
