"""Shared JSON serialization helpers for log output."""

from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel


def json_serializer(obj: Any) -> Any:
    """
    ``default=`` hook for json.dumps that keeps values typed where possible.

    - datetime/date -> ISO 8601 string
    - Enum -> value
    - pydantic models -> dict of wire (alias) names
    - Path, exceptions and everything else -> string
    """
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, BaseModel):
        return obj.model_dump(mode="json", by_alias=True, exclude_none=True)
    if isinstance(obj, (set, frozenset)):
        return sorted(obj, key=str)
    if isinstance(obj, Path):
        return str(obj)
    return str(obj)


__all__ = ["json_serializer"]
