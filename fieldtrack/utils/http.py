"""Helpers shared by the serverless request handlers in api/."""

import asyncio
import json
from datetime import date
from typing import Any, Awaitable, Callable, Optional

from pydantic import BaseModel, ValidationError

from fieldtrack.models.auth import AuthContext
from fieldtrack.utils.errors import (
    AuthenticationError,
    AuthorizationError,
    FieldTrackError,
    InvalidInputError,
    InvalidTransitionError,
    SessionNotFoundError,
    TaskNotFoundError,
)
from fieldtrack.utils.logging import correlation_context, get_structured_logger
from fieldtrack.utils.logging_config import LoggingConfig

logger = get_structured_logger(__name__)

_STATUS_BY_ERROR: list[tuple[type, int]] = [
    (InvalidInputError, 400),
    (InvalidTransitionError, 400),
    (AuthenticationError, 401),
    (AuthorizationError, 403),
    (TaskNotFoundError, 404),
    (SessionNotFoundError, 404),
]


def json_response(status_code: int, payload: Any) -> dict:
    """Build a serverless JSON response."""
    return {
        "statusCode": status_code,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(payload, default=str),
    }


def to_payload(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, list):
        return [to_payload(item) for item in value]
    return value


def parse_body(request: dict) -> dict:
    """Decode the request body (JSON string or already-parsed dict)."""
    body = request.get("body")
    if body in (None, ""):
        return {}
    if isinstance(body, dict):
        return body
    try:
        parsed = json.loads(body)
    except json.JSONDecodeError:
        raise InvalidInputError("Request body is not valid JSON")
    if not isinstance(parsed, dict):
        raise InvalidInputError("Request body must be a JSON object")
    return parsed


def get_query(request: dict) -> dict:
    return request.get("query", {}) or {}


def get_auth(request: dict) -> AuthContext:
    """Caller identity as supplied by the authentication layer."""
    auth = request.get("auth")
    if not auth:
        raise AuthenticationError("Authentication required")
    try:
        return AuthContext.model_validate(auth)
    except ValidationError:
        raise AuthenticationError("Malformed authentication context")


def parse_day(value: Optional[str], field: str) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value.split("T")[0])
    except (ValueError, AttributeError):
        raise InvalidInputError(f"{field} must be an ISO date (YYYY-MM-DD)")


def require(params: dict, field: str) -> Any:
    value = params.get(field)
    if value in (None, ""):
        raise InvalidInputError(f"{field} is required")
    return value


def run_async(coro: Awaitable[Any]) -> Any:
    """Run a coroutine from a synchronous serverless handler."""
    try:
        loop = asyncio.get_event_loop()
        if loop.is_closed():
            raise RuntimeError("event loop is closed")
    except RuntimeError:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
    return loop.run_until_complete(coro)


def error_response(error: Exception) -> dict:
    if isinstance(error, ValidationError):
        return json_response(400, {"success": False, "message": "Invalid input", "errors": error.errors(include_url=False)})
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return json_response(status_code, {"success": False, "message": str(error)})
    return json_response(500, {"success": False, "message": "Internal error", "error": str(error)})


def handle(request: dict, operation: Callable[[dict], Awaitable[Any]], status_code: int = 200) -> dict:
    """
    Run an async operation for a request and map the outcome to a response.

    Domain errors become 4xx responses; anything else is logged and returned as 500.
    """
    LoggingConfig.ensure_configured()
    headers = request.get("headers", {}) or {}
    with correlation_context(headers.get("x-correlation-id")) as correlation_id:
        try:
            result = run_async(operation(request))
        except (FieldTrackError, ValidationError) as e:
            response = error_response(e)
            if response["statusCode"] >= 500:
                logger.error("Request failed", correlation_id=correlation_id, error=str(e), exc_info=True)
            else:
                logger.info("Request rejected", correlation_id=correlation_id, error=str(e))
            return response
        except Exception as e:
            logger.error("Unhandled request error", correlation_id=correlation_id, error=str(e), exc_info=True)
            return error_response(e)
    return json_response(status_code, {"success": True, "data": to_payload(result)})
