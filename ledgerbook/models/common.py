from __future__ import annotations
from datetime import datetime, timezone
from typing import Literal, Optional
import uuid

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


def gen_id() -> str:
    return str(uuid.uuid4())


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class LedgerModel(BaseModel):
    """Base des enregistrements persistés : camelCase dans le JSON, snake_case en Python."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",  # tolère d'anciennes clés dans les JSON
    )

    def to_blob(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


ErrorCode = Literal["NOT_FOUND", "MALFORMED_INPUT"]


class OperationResult(BaseModel):
    success: bool = True
    message: Optional[str] = None
    error: Optional[ErrorCode] = None

    @classmethod
    def ok(cls, message: Optional[str] = None) -> "OperationResult":
        return cls(success=True, message=message)

    @classmethod
    def fail(cls, error: ErrorCode, message: str) -> "OperationResult":
        return cls(success=False, error=error, message=message)

    def __bool__(self) -> bool:
        return self.success
