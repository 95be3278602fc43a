"""
auditflow - Input validation helpers.

Client-side checks on registration data, new requests, remarks and file
uploads. They run before any API call is made, so a bad form never costs
a round trip or a token refresh.
"""

import re
from pathlib import Path
from typing import Any, Optional

from .exceptions import ValidationError as APIValidationError
from .models import Role

# Column limits of the tracker's user and request tables
USERNAME_MAX_LENGTH = 150
REQUEST_FIELD_MAX_LENGTH = 255

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[A-Za-z]{2,}$")


class InputValidationError(APIValidationError):
    """Raised when input validation fails before making an API request."""

    def __init__(self, message: str, field: Optional[str] = None, value: Any = None):
        super().__init__(message, errors={field: [message]} if field else {})
        self.field = field
        self.value = value


ValidationError = InputValidationError


def validate_required(value: Any, field_name: str) -> None:
    """Reject ``None`` and blank strings."""
    if value is None:
        raise ValidationError(f"{field_name} is required", field=field_name)
    if isinstance(value, str) and not value.strip():
        raise ValidationError(f"{field_name} cannot be empty", field=field_name, value=value)


def validate_max_length(value: str, field_name: str, limit: int) -> None:
    if len(value) > limit:
        raise ValidationError(
            f"{field_name} must be at most {limit} characters",
            field=field_name,
            value=value,
        )


def validate_file(source: Any, field_name: str = "file") -> None:
    """
    Check an upload source before it is read.

    Paths must name an existing file. Raw bytes and explicit
    ``(name, content, mime)`` tuples are taken as they are.
    """
    validate_required(source, field_name)
    if isinstance(source, (str, Path)) and not Path(source).is_file():
        raise ValidationError(f"{field_name} does not exist: {source}", field=field_name, value=str(source))


def validate_registration(user_data: dict[str, Any]) -> None:
    """Validate a registration form, including the password confirmation."""
    for name in ("username", "email", "password", "role"):
        validate_required(user_data.get(name), name)
    validate_max_length(user_data["username"], "username", USERNAME_MAX_LENGTH)

    email = user_data["email"]
    if not EMAIL_PATTERN.match(email):
        raise ValidationError("email must be a valid email address", field="email", value=email)

    if Role.parse(user_data["role"]) is None:
        raise ValidationError(
            f"role must be one of: {', '.join(r.value for r in Role)}",
            field="role",
            value=user_data["role"],
        )

    confirm = user_data.get("confirm_password")
    if confirm is not None and confirm != user_data["password"]:
        raise ValidationError("Passwords do not match", field="confirm_password")


def validate_request_create(service_provider_name: str, data_center_location: str) -> None:
    """Validate the fields of a new audit request."""
    for value, name in (
        (service_provider_name, "service_provider_name"),
        (data_center_location, "data_center_location"),
    ):
        validate_required(value, name)
        validate_max_length(value, name, REQUEST_FIELD_MAX_LENGTH)


def validate_remark(comment: str) -> None:
    validate_required(comment, "comment")
