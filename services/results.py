"""
Tagged results returned by the session manager.

An operation returns Success(value) or Failure(code, message). The code
identifies the exact failure; its category groups codes the way the
transport reports them (validation, authentication, conflict, not found,
dependency).
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

from utils.tokens import SessionPair

T = TypeVar("T")


class ErrorCategory(str, Enum):
    VALIDATION = "VALIDATION_ERROR"
    AUTHENTICATION = "AUTHENTICATION_ERROR"
    CONFLICT = "CONFLICT"
    NOT_FOUND = "NOT_FOUND"
    DEPENDENCY = "DEPENDENCY_ERROR"


class ErrorCode(str, Enum):
    MISSING_FIELD = "MISSING_FIELD"
    INVALID_FIELD = "INVALID_FIELD"
    MISSING_CREDENTIALS = "MISSING_CREDENTIALS"
    MISSING_TOKEN = "MISSING_TOKEN"
    MISSING_REQUIRED_ASSET = "MISSING_REQUIRED_ASSET"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    INVALID_REFRESH_TOKEN = "INVALID_REFRESH_TOKEN"
    INVALID_ACCESS_TOKEN = "INVALID_ACCESS_TOKEN"
    TOKEN_REUSE_DETECTED = "TOKEN_REUSE_DETECTED"
    DUPLICATE_PRINCIPAL = "DUPLICATE_PRINCIPAL"
    PRINCIPAL_NOT_FOUND = "PRINCIPAL_NOT_FOUND"
    ASSET_UPLOAD_FAILED = "ASSET_UPLOAD_FAILED"
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"

    @property
    def category(self) -> ErrorCategory:
        return CATEGORIES[self]


CATEGORIES = {
    ErrorCode.MISSING_FIELD: ErrorCategory.VALIDATION,
    ErrorCode.INVALID_FIELD: ErrorCategory.VALIDATION,
    ErrorCode.MISSING_CREDENTIALS: ErrorCategory.VALIDATION,
    ErrorCode.MISSING_TOKEN: ErrorCategory.VALIDATION,
    ErrorCode.MISSING_REQUIRED_ASSET: ErrorCategory.VALIDATION,
    ErrorCode.INVALID_CREDENTIALS: ErrorCategory.AUTHENTICATION,
    ErrorCode.INVALID_REFRESH_TOKEN: ErrorCategory.AUTHENTICATION,
    ErrorCode.INVALID_ACCESS_TOKEN: ErrorCategory.AUTHENTICATION,
    ErrorCode.TOKEN_REUSE_DETECTED: ErrorCategory.AUTHENTICATION,
    ErrorCode.DUPLICATE_PRINCIPAL: ErrorCategory.CONFLICT,
    ErrorCode.PRINCIPAL_NOT_FOUND: ErrorCategory.NOT_FOUND,
    ErrorCode.ASSET_UPLOAD_FAILED: ErrorCategory.DEPENDENCY,
    ErrorCode.STORE_UNAVAILABLE: ErrorCategory.DEPENDENCY,
}


@dataclass(frozen=True)
class Success(Generic[T]):
    value: T = None
    ok: bool = field(default=True, init=False)


@dataclass(frozen=True)
class Failure:
    code: ErrorCode
    message: str
    details: dict | None = None
    ok: bool = field(default=False, init=False)

    @property
    def category(self) -> ErrorCategory:
        return self.code.category


@dataclass(frozen=True)
class LoginResult:
    tokens: SessionPair
    profile: dict[str, Any]
