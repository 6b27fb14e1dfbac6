"""Rewrite FastAPI request validation errors into the same body a service ValidationError produces."""

from typing import Any, Dict, List

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.core.exceptions import FieldError

# Messages for fields whose raw pydantic wording confuses end users.
FIELD_MESSAGES: Dict[str, str] = {
    "title": "Title is required and must be at most 200 characters",
    "description": "Description must be text of at most 1000 characters",
    "start_date": "Start date must be a valid date (YYYY-MM-DD)",
    "end_date": "End date must be a valid date (YYYY-MM-DD)",
    "days": "Days must be a whole number between 1 and 365",
    "rejection_reason": "Rejection reason must be text of at most 500 characters",
    "admin_creation_reason": "Admin creation reason is required and must be at most 500 characters",
    "entries": "Entries must be a list of {student_id, status, remark}",
}

_LOCATION_PREFIXES = ("body", "query", "path", "header")


def _field_name(loc: List[Any]) -> str:
    parts = [str(p) for p in loc if p not in _LOCATION_PREFIXES]
    name = ""
    for p in parts:
        name += f"[{p}]" if p.isdigit() else (f".{p}" if name else p)
    return name or "body"


def _message(err: Dict[str, Any], field: str) -> str:
    top = field.split(".")[0].split("[")[0]
    if top in FIELD_MESSAGES:
        return FIELD_MESSAGES[top]
    kind = err.get("type", "")
    ctx = err.get("ctx") or {}
    if kind == "missing":
        return f"{field} is required"
    if kind == "enum":
        return f"{field} must be one of: {ctx.get('expected', '')}"
    if kind == "uuid_parsing":
        return f"{field} must be a valid id"
    if kind.startswith("date"):
        return f"{field} must be a valid date (YYYY-MM-DD)"
    if kind == "string_too_long":
        return f"{field} must be at most {ctx.get('max_length')} characters"
    return err.get("msg", "Invalid value")


def friendly_errors(exc: RequestValidationError) -> List[FieldError]:
    errors: List[FieldError] = []
    seen = set()
    for err in exc.errors():
        field = _field_name(list(err.get("loc", ())))
        if field in seen:
            continue
        seen.add(field)
        errors.append(FieldError(field, _message(err, field)))
    return errors


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = friendly_errors(exc)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": {"message": "Validation failed", "errors": [e.as_dict() for e in errors]}},
    )
