from __future__ import annotations

from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, StrictStr, field_validator

# Bound on identity tokens; provider-issued JWTs are a few KB at most
MAX_ID_TOKEN_LENGTH = 16384

_VALID_ERROR_CODES = frozenset({
    "unauthorized",
    "not_found",
    "validation_error",
    "server_error",
})


class ErrorBody(BaseModel):
    """Error envelope body with stable code values."""

    code: str = Field(..., description="Stable error code")
    message: str
    details: Optional[Any] = None  # object, array, or null

    @field_validator("code")
    @classmethod
    def _validate_error_code(cls, value: str) -> str:
        if value not in _VALID_ERROR_CODES:
            raise ValueError(
                f"Invalid error code '{value}'. Must be one of: {', '.join(sorted(_VALID_ERROR_CODES))}"
            )
        return value


class Envelope(BaseModel):
    """API envelope format."""

    status: str = Field(..., pattern="^(ok|error)$")
    data: Optional[Any] = None
    error: Optional[ErrorBody] = None
    request_id: str = Field(default_factory=lambda: str(uuid4()))


class SessionCreateRequest(BaseModel):
    """Body of ``POST /api/auth/session``.

    ``idToken`` is required; ``redirect`` is optional. Types are strict so a
    number or object in either field is a malformed request, not coerced.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id_token: StrictStr = Field(
        ..., alias="idToken", min_length=1, max_length=MAX_ID_TOKEN_LENGTH
    )
    redirect: Optional[StrictStr] = None

    @field_validator("id_token")
    @classmethod
    def _reject_blank_token(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("idToken must not be blank")
        return value


class CsrfTokenResponse(BaseModel):
    ok: bool = True
    token: str


class SessionCreateResponse(BaseModel):
    ok: bool = True
    redirect: str


class SessionRevokeResponse(BaseModel):
    ok: bool = True
