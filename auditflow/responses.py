"""
auditflow - HTTP response handling shared by the identity and API clients.
"""

import json
from typing import Any, Optional

import httpx

from .exceptions import (
    AuthenticationError,
    ForbiddenError,
    NotFoundError,
    TransportError,
    ValidationError,
)


def response_payload(response: httpx.Response) -> Any:
    """Decode a response body as JSON, falling back to text."""
    if not response.content:
        return None
    try:
        return response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return response.text


def detail_message(payload: Any, default: str) -> str:
    """Return the provider's ``detail`` string when there is one."""
    if isinstance(payload, dict) and isinstance(payload.get("detail"), str):
        return payload["detail"]
    return default


def handle_response(response: httpx.Response) -> Any:
    """Handle HTTP response and raise appropriate exceptions."""
    if response.is_success:
        return response_payload(response)

    data = response_payload(response)
    status = response.status_code
    if status == 400:
        raise ValidationError(
            detail_message(data, "Validation error"),
            errors=data if isinstance(data, dict) else {},
            status_code=400,
            response=data,
        )
    elif status == 401:
        raise AuthenticationError(
            detail_message(data, "Authentication credentials were not accepted"),
            status_code=401,
            response=data,
        )
    elif status == 403:
        raise ForbiddenError(
            detail_message(data, "You do not have permission to perform this action"),
            status_code=403,
            response=data,
        )
    elif status == 404:
        raise NotFoundError(
            detail_message(data, "Resource not found"),
            status_code=404,
            response=data,
        )
    raise TransportError(
        detail_message(data, f"Request failed with status {status}"),
        status_code=status,
        response=data,
    )


def field_errors(payload: Any, fields: tuple[str, ...]) -> Optional[str]:
    """
    Format the first matching field's error list as ``"Field: a, b"``.

    Django REST framework reports serializer failures as a mapping of field
    name to a list of messages.
    """
    if not isinstance(payload, dict):
        return None
    for name in fields:
        messages = payload.get(name)
        if messages:
            if isinstance(messages, list):
                messages = ", ".join(str(m) for m in messages)
            return f"{name.capitalize()}: {messages}"
    return None
