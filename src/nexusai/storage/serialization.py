"""Portable JSON form of generation records.

Used by export/import and as the base of the remote sync payload. Keys are
camelCase to match the web API; binary results are base64 text tagged with
``resultEncoding``.
"""

import base64
import binascii
import json
from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from nexusai.core.timezone import as_naive_utc
from nexusai.models.generation import GenerationRecord, GenerationType
from nexusai.services.exceptions import ValidationFailure


class PortableGeneration(BaseModel):
    """Serialized GenerationRecord."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str = Field(min_length=1)
    user_id: str = Field(min_length=1)
    type: GenerationType
    prompt: str
    result: str
    result_encoding: Literal["text", "base64"] = "text"
    model: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None
    tags: list[str] = Field(default_factory=list)
    favorite: bool = False
    synced: bool = False
    sync_attempts: int = Field(default=0, ge=0)
    last_sync_attempt: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: GenerationRecord) -> "PortableGeneration":
        if record.result_blob is not None:
            result = base64.b64encode(record.result_blob).decode("ascii")
            encoding = "base64"
        else:
            result = record.result_text or ""
            encoding = "text"

        return cls(
            id=record.id,
            user_id=record.user_id,
            type=record.type,
            prompt=record.prompt,
            result=result,
            result_encoding=encoding,
            model=record.model,
            metadata=record.generation_metadata,
            tags=list(record.tags or []),
            favorite=record.favorite,
            synced=record.synced,
            sync_attempts=record.sync_attempts,
            last_sync_attempt=record.last_sync_attempt,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )

    def to_record(self) -> GenerationRecord:
        if self.result_encoding == "base64":
            try:
                columns = {"result_text": None, "result_blob": base64.b64decode(self.result)}
            except (binascii.Error, ValueError) as e:
                raise ValidationFailure(f"Generation {self.id}: invalid base64 result") from e
        else:
            columns = {"result_text": self.result, "result_blob": None}

        created_at = as_naive_utc(self.created_at)
        return GenerationRecord(
            id=self.id,
            user_id=self.user_id,
            type=self.type,
            prompt=self.prompt,
            model=self.model,
            generation_metadata=self.metadata,
            tags=list(self.tags),
            favorite=self.favorite,
            synced=self.synced,
            sync_attempts=self.sync_attempts,
            last_sync_attempt=(
                as_naive_utc(self.last_sync_attempt) if self.last_sync_attempt else None
            ),
            created_at=created_at,
            updated_at=as_naive_utc(self.updated_at) if self.updated_at else created_at,
            **columns,
        )


def record_to_dict(record: GenerationRecord) -> dict[str, Any]:
    """Serialize one record to a JSON-compatible camelCase dict."""
    return PortableGeneration.from_record(record).model_dump(by_alias=True, mode="json")


def dump_records(records: list[GenerationRecord]) -> str:
    """Serialize records to the export document (a JSON array)."""
    return json.dumps([record_to_dict(record) for record in records], indent=2)


def load_records(data: str | list[dict[str, Any]]) -> list[GenerationRecord]:
    """Parse an export document back into detached records.

    Args:
        data: JSON text produced by dump_records(), or the already-decoded list

    Returns:
        Detached GenerationRecord instances

    Raises:
        ValidationFailure: If the document or any entry is malformed
    """
    if isinstance(data, str):
        try:
            data = json.loads(data)
        except json.JSONDecodeError as e:
            raise ValidationFailure(f"Import data is not valid JSON: {e}") from e

    if not isinstance(data, list):
        raise ValidationFailure("Import data must be a list of generations")

    records = []
    for index, item in enumerate(data):
        try:
            portable = PortableGeneration.model_validate(item)
        except ValidationError as e:
            raise ValidationFailure(f"Import entry {index} is invalid: {e}") from e
        records.append(portable.to_record())
    return records
