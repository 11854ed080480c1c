"""Helpers shared by the API routers."""

import uuid

from fastapi import HTTPException


def parse_uuid(value: str, field_name: str = "ID") -> uuid.UUID:
    """Parse UUID string with proper error handling.

    Args:
        value: String value to parse as UUID
        field_name: Field name for error message

    Returns:
        Parsed UUID

    Raises:
        HTTPException: If the value is not a valid UUID
    """
    try:
        return uuid.UUID(value)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Invalid {field_name} format") from e


def attachment_headers(filename: str) -> dict[str, str]:
    return {"Content-Disposition": f'attachment; filename="{filename}"'}
