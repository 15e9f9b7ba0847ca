"""GenerationRecord entity - One generated artifact plus its sync bookkeeping."""

from datetime import datetime
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict
from pydantic import Field as PydanticField
from sqlalchemy import JSON, Column, DateTime, Index, LargeBinary
from sqlmodel import Field, SQLModel

from nexusai.core.timezone import utc_now
from nexusai.services.exceptions import ValidationFailure

# Records with more failed pushes than this count as failed in storage stats
FAILED_SYNC_THRESHOLD = 3

# Fields a caller may change through update(); everything else is owned by the store
MUTABLE_FIELDS = frozenset(
    {
        "prompt",
        "result",
        "model",
        "metadata",
        "tags",
        "favorite",
        "synced",
        "sync_attempts",
        "last_sync_attempt",
    }
)
IMMUTABLE_FIELDS = frozenset({"id", "user_id", "type", "created_at", "updated_at"})


class GenerationType(str, Enum):
    """Closed set of generation kinds."""

    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    CODE = "code"
    CONVERSATION = "conversation"


class GenerationRecord(SQLModel, table=True):
    """GenerationRecord stores one generation result in the local store.

    The result is either inline text or an opaque binary payload, kept in two
    nullable columns and exposed through the ``result`` property.
    """

    __tablename__ = "generations"  # type: ignore[assignment]
    __table_args__ = (
        Index("ix_generations_user_type", "user_id", "type"),
        Index("ix_generations_user_synced", "user_id", "synced"),
        Index("ix_generations_user_created_at", "user_id", "created_at"),
    )

    id: str = Field(primary_key=True, max_length=64)
    user_id: str = Field(index=True, max_length=255)
    type: GenerationType = Field(index=True)
    prompt: str
    result_text: Optional[str] = Field(default=None)
    result_blob: Optional[bytes] = Field(default=None, sa_column=Column(LargeBinary))
    model: Optional[str] = Field(default=None, max_length=255)
    generation_metadata: Optional[dict] = Field(default=None, sa_column=Column("metadata", JSON))
    tags: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    favorite: bool = Field(default=False, index=True)
    synced: bool = Field(default=False, index=True)
    sync_attempts: int = Field(default=0, ge=0)
    # Timestamps are naive UTC; the column type is pinned so no tz-aware mapping applies
    last_sync_attempt: Optional[datetime] = Field(default=None, sa_type=DateTime)
    created_at: datetime = Field(default_factory=utc_now, sa_type=DateTime, index=True)
    updated_at: datetime = Field(default_factory=utc_now, sa_type=DateTime, index=True)

    @property
    def result(self) -> str | bytes:
        """Generation output: bytes for binary payloads, text otherwise."""
        if self.result_blob is not None:
            return self.result_blob
        return self.result_text or ""

    @property
    def is_binary(self) -> bool:
        return self.result_blob is not None

    @property
    def payload_size(self) -> int:
        """Size of the result in bytes (UTF-8 for text results)."""
        if self.result_blob is not None:
            return len(self.result_blob)
        return len((self.result_text or "").encode("utf-8"))

    @staticmethod
    def split_result(result: str | bytes) -> dict[str, Any]:
        """Map a result value onto the result_text / result_blob columns."""
        if isinstance(result, (bytes, bytearray, memoryview)):
            return {"result_text": None, "result_blob": bytes(result)}
        if isinstance(result, str):
            return {"result_text": result, "result_blob": None}
        raise ValidationFailure(
            f"result must be text or binary, got {type(result).__name__}"
        )

    def apply_updates(self, updates: dict[str, Any], at: datetime) -> None:
        """Merge caller-supplied fields and bump updated_at.

        Args:
            updates: Field name to new value (public names: ``result``, ``metadata``)
            at: Mutation timestamp

        Raises:
            ValidationFailure: Unknown or immutable field, synced reset to False,
                or sync_attempts decreased
        """
        immutable = IMMUTABLE_FIELDS.intersection(updates)
        if immutable:
            raise ValidationFailure(f"Cannot modify immutable fields: {sorted(immutable)}")

        unknown = set(updates) - MUTABLE_FIELDS
        if unknown:
            raise ValidationFailure(f"Unknown fields: {sorted(unknown)}")

        if "synced" in updates and self.synced and not updates["synced"]:
            raise ValidationFailure(f"Generation {self.id} is already synced")

        if "sync_attempts" in updates and updates["sync_attempts"] < self.sync_attempts:
            raise ValidationFailure(
                f"sync_attempts cannot decrease ({self.sync_attempts} -> "
                f"{updates['sync_attempts']})"
            )

        for name, value in updates.items():
            if name == "result":
                for column, column_value in self.split_result(value).items():
                    setattr(self, column, column_value)
            elif name == "metadata":
                self.generation_metadata = dict(value) if value is not None else None
            elif name == "tags":
                self.tags = list(value or [])
            else:
                setattr(self, name, value)

        self.updated_at = at

    def mark_synced(self, at: datetime) -> None:
        """Record a successful push. Idempotent apart from the timestamps."""
        self.synced = True
        self.last_sync_attempt = at
        self.updated_at = at

    def record_sync_failure(self, at: datetime) -> None:
        """Record a failed push attempt."""
        self.sync_attempts += 1
        self.last_sync_attempt = at
        self.updated_at = at

    def carry_sync_state(self, existing: "GenerationRecord") -> None:
        """Keep sync progress already stored for this id when overwriting it.

        A stored success is never undone and attempts never go backwards, so
        restoring an older copy of a record cannot make it unsynced again.
        """
        self.synced = self.synced or existing.synced
        self.sync_attempts = max(self.sync_attempts, existing.sync_attempts)
        if existing.last_sync_attempt is not None and (
            self.last_sync_attempt is None or existing.last_sync_attempt > self.last_sync_attempt
        ):
            self.last_sync_attempt = existing.last_sync_attempt


class GenerationDraft(BaseModel):
    """Input to LocalRecordStore.save(): a record minus its store-owned fields."""

    model_config = ConfigDict(extra="forbid")

    type: GenerationType
    prompt: str
    result: str | bytes
    model: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None
    tags: list[str] = PydanticField(default_factory=list)


class GenerationQuery(BaseModel):
    """Filters, ordering and paging for LocalRecordStore.query().

    ``synced`` selects synced (True) or unsynced (False) records; None means both.
    """

    model_config = ConfigDict(extra="forbid")

    type: Optional[GenerationType] = None
    synced: Optional[bool] = None
    favorites_only: bool = False
    limit: int = PydanticField(default=100, ge=0)
    offset: int = PydanticField(default=0, ge=0)
    sort_by: Literal["created_at", "updated_at"] = "created_at"
    sort_order: Literal["asc", "desc"] = "desc"
