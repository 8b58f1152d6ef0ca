"""
schemas/errors.py — JSON envelope for every error response

Business Rules:
- error is the human-readable message; status_code repeats the HTTP status
- kind names the VantageError subclass (e.g. "NotConnectedError"), or
  "HTTPException" / "ValidationError" / "InternalError" for the framework
  cases, so clients can branch without parsing messages
- detail is only present for request validation failures: one entry per
  invalid field with its location and message
- request_id matches the X-Request-ID header and the log lines of the call

Called by: main.py (exception handlers)
Depends on: exceptions.py (VantageError)
"""

from pydantic import BaseModel, Field

from app.exceptions import VantageError


class FieldIssue(BaseModel):
    loc: list[str | int] = Field(default_factory=list)
    msg: str = ""


class ErrorResponse(BaseModel):
    error: str
    status_code: int
    kind: str = "InternalError"
    request_id: str = ""
    detail: list[FieldIssue] | None = None

    @classmethod
    def from_exception(cls, exc: VantageError, request_id: str = "") -> "ErrorResponse":
        return cls(
            error=exc.message,
            status_code=exc.status_code,
            kind=exc.__class__.__name__,
            request_id=request_id,
        )
