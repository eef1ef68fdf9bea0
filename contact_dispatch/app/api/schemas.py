"""
Request / response schemas for the OpenAPI document.

The contact route parses its body by hand (so a missing or non-JSON body
gets the same ``success: false`` shape as every other error);
``ContactRequest`` only describes the expected payload.
"""

from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from contact_dispatch.app.notify import validator


class ContactRequest(BaseModel):
    """Contact form submission."""
    name: str = Field(
        ..., min_length=validator.NAME_MIN, max_length=validator.NAME_MAX,
        examples=["Jo"],
    )
    email: str = Field(..., max_length=validator.EMAIL_MAX, examples=["jo@x.com"])
    subject: str = Field(
        ..., min_length=validator.SUBJECT_MIN, max_length=validator.SUBJECT_MAX,
        examples=["Trip info"],
    )
    message: str = Field(
        ..., min_length=validator.MESSAGE_MIN, max_length=validator.MESSAGE_MAX,
        examples=["I would like pricing for a 3-day tour."],
    )


class DeliveryInfo(BaseModel):
    status: str = Field(..., examples=["delivered"])
    messageRef: Optional[str] = Field(None, description="Provider message id")
    statusCode: Optional[int] = Field(None, description="HTTP status or SMTP reply code")
    autoReply: Optional[bool] = Field(None, description="None when auto-reply is off")


class ContactSuccess(BaseModel):
    success: bool = True
    message: str
    provider: str = Field(..., examples=["sendgrid", "smtp:smtp.office365.com"])
    info: DeliveryInfo


class FieldErrorOut(BaseModel):
    param: str
    msg: str


class ErrorResponse(BaseModel):
    success: bool = False
    message: str
    code: Optional[str] = None
    errors: Optional[List[FieldErrorOut]] = None
    error: Optional[str] = Field(None, description="Only present when DEBUG_EMAIL is on")


class HealthResponse(BaseModel):
    ok: bool = True
    message: str


class VerifyResponse(BaseModel):
    ok: bool
    provider: str
    sandbox: Optional[bool] = None
    duration_ms: Optional[float] = None
    code: Optional[str] = None
    error: Optional[str] = None
    statusCode: Optional[int] = None


ERROR_RESPONSES: Dict[int, Dict[str, object]] = {
    400: {"model": ErrorResponse, "description": "Malformed body or validation error"},
    403: {"model": ErrorResponse, "description": "Origin not allowed"},
    429: {"model": ErrorResponse, "description": "Rate limit exceeded"},
    500: {"model": ErrorResponse, "description": "Not configured or delivery failed"},
}
