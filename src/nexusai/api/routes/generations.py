"""Generation record API endpoints for the UI layer.

This module implements REST endpoints over the local record store:
- GET/POST /api/generations - List (filter, sort, page) and create generations
- GET /api/generations/stats|search|export - Derived views of the user's records
- POST /api/generations/import|bulk-delete|cleanup, DELETE /api/generations - Bulk maintenance
- GET/PATCH/DELETE /api/generations/{record_id} - Single record access
- POST /api/generations/{record_id}/favorite|tags - Favorite toggle and tagging

Records are returned in the camelCase export format. Binary results are
returned base64-encoded with resultEncoding="base64".
"""

import base64
import binascii
from dataclasses import asdict
from datetime import datetime
from typing import Any, Literal, Optional

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from nexusai.api.dependencies import get_current_user, get_store
from nexusai.models.generation import (
    GenerationDraft,
    GenerationQuery,
    GenerationRecord,
    GenerationType,
)
from nexusai.services.exceptions import NotFound, ValidationFailure
from nexusai.storage.local_store import LocalRecordStore
from nexusai.storage.serialization import record_to_dict

router = APIRouter(prefix="/api/generations", tags=["generations"])


# Request/Response Models


class CreateGenerationRequest(BaseModel):
    """Request model for saving a new generation."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    type: GenerationType
    prompt: str = Field(..., description="Prompt the generation was produced from")
    result: str = Field(..., description="Text result, or base64 payload for binary results")
    result_encoding: Literal["text", "base64"] = "text"
    model: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None
    tags: list[str] = Field(default_factory=list)

    def to_draft(self) -> GenerationDraft:
        result: str | bytes = self.result
        if self.result_encoding == "base64":
            try:
                result = base64.b64decode(self.result, validate=True)
            except (binascii.Error, ValueError) as e:
                raise ValidationFailure("result is not valid base64") from e

        return GenerationDraft(
            type=self.type,
            prompt=self.prompt,
            result=result,
            model=self.model,
            metadata=self.metadata,
            tags=self.tags,
        )


class UpdateGenerationRequest(BaseModel):
    """Partial update; only fields present in the body are changed."""

    model_config = ConfigDict(extra="forbid")

    prompt: Optional[str] = None
    model: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None
    tags: Optional[list[str]] = None
    favorite: Optional[bool] = None


class CreateGenerationResponse(BaseModel):
    id: str


class TagsRequest(BaseModel):
    tags: list[str] = Field(..., min_length=1)


class BulkDeleteRequest(BaseModel):
    ids: list[str] = Field(..., min_length=1)


class StorageStatsResponse(BaseModel):
    """Response model for storage statistics."""

    total_size: int = Field(..., description="Sum of result payload sizes in bytes")
    counts: dict[str, int] = Field(..., description="Record count per generation type")
    synced_count: int
    unsynced_count: int
    failed_sync_count: int = Field(..., description="Records with more than 3 failed pushes")
    oldest_item: datetime | None = None
    newest_item: datetime | None = None


async def _get_owned(store: LocalRecordStore, record_id: str, user_id: str) -> GenerationRecord:
    """Fetch a record belonging to the user; other users' records read as missing."""
    record = await store.get_by_id(record_id)
    if record is None or record.user_id != user_id:
        raise NotFound(record_id)
    return record


# Collection endpoints


@router.get("")
async def list_generations(
    user_id: str = Depends(get_current_user),
    store: LocalRecordStore = Depends(get_store),
    type: Optional[GenerationType] = Query(default=None),
    synced: Optional[bool] = Query(default=None),
    favorites_only: bool = Query(default=False),
    limit: int = Query(default=100, ge=0),
    offset: int = Query(default=0, ge=0),
    sort_by: Literal["created_at", "updated_at"] = Query(default="created_at"),
    sort_order: Literal["asc", "desc"] = Query(default="desc"),
) -> list[dict[str, Any]]:
    """List the user's generations. Filters apply before sorting and paging."""
    options = GenerationQuery(
        type=type,
        synced=synced,
        favorites_only=favorites_only,
        limit=limit,
        offset=offset,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    records = await store.query(user_id, options)
    return [record_to_dict(record) for record in records]


@router.post("", status_code=status.HTTP_201_CREATED, response_model=CreateGenerationResponse)
async def create_generation(
    request: CreateGenerationRequest,
    user_id: str = Depends(get_current_user),
    store: LocalRecordStore = Depends(get_store),
) -> CreateGenerationResponse:
    """Save a new generation for the user. It starts unsynced."""
    record_id = await store.save(request.to_draft(), user_id)
    return CreateGenerationResponse(id=record_id)


@router.delete("")
async def clear_generations(
    user_id: str = Depends(get_current_user),
    store: LocalRecordStore = Depends(get_store),
) -> dict[str, int]:
    """Delete every generation of the current user."""
    deleted = await store.clear_all(user_id)
    return {"deleted": deleted}


@router.get("/stats", response_model=StorageStatsResponse)
async def get_stats(
    user_id: str = Depends(get_current_user),
    store: LocalRecordStore = Depends(get_store),
) -> StorageStatsResponse:
    stats = await store.compute_stats(user_id)
    return StorageStatsResponse(**asdict(stats))


@router.get("/search")
async def search_generations(
    q: str = Query(..., description="Case-insensitive text matched against prompt, model, tags"),
    type: Optional[GenerationType] = Query(default=None),
    user_id: str = Depends(get_current_user),
    store: LocalRecordStore = Depends(get_store),
) -> list[dict[str, Any]]:
    records = await store.search(user_id, q, type=type)
    return [record_to_dict(record) for record in records]


@router.get("/export")
async def export_generations(
    user_id: str = Depends(get_current_user),
    store: LocalRecordStore = Depends(get_store),
) -> Response:
    """Download the user's generations as a JSON document."""
    document = await store.export_all(user_id)
    return Response(
        content=document,
        media_type="application/json",
        headers={"Content-Disposition": 'attachment; filename="nexusai-export.json"'},
    )


@router.post("/import")
async def import_generations(
    payload: list[dict[str, Any]],
    user_id: str = Depends(get_current_user),
    store: LocalRecordStore = Depends(get_store),
) -> dict[str, int]:
    """Restore the user's generations from an export document (upsert by id).

    Entries of another user reject the whole document with 422; ids already
    stored for another user are skipped.
    """
    imported = await store.import_all(payload, user_id=user_id)
    return {"imported": imported}


@router.post("/bulk-delete")
async def bulk_delete_generations(
    request: BulkDeleteRequest,
    user_id: str = Depends(get_current_user),
    store: LocalRecordStore = Depends(get_store),
) -> dict[str, Any]:
    """Delete several of the user's generations; each id succeeds or fails on its own."""
    owned = []
    foreign = []
    for record_id in dict.fromkeys(request.ids):
        record = await store.get_by_id(record_id)
        if record is not None and record.user_id == user_id:
            owned.append(record_id)
        else:
            foreign.append(record_id)

    result = await store.delete_many(owned)
    result.missing.extend(foreign)
    return asdict(result)


@router.post("/cleanup")
async def cleanup_generations(
    days: float = Query(..., ge=0, description="Delete generations created more than N days ago"),
    user_id: str = Depends(get_current_user),
    store: LocalRecordStore = Depends(get_store),
) -> dict[str, int]:
    """Delete the user's generations created more than N days ago."""
    deleted = await store.delete_older_than(days, user_id)
    return {"deleted": deleted}


# Single record endpoints


@router.get("/{record_id}")
async def get_generation(
    record_id: str,
    user_id: str = Depends(get_current_user),
    store: LocalRecordStore = Depends(get_store),
) -> dict[str, Any]:
    record = await _get_owned(store, record_id, user_id)
    return record_to_dict(record)


@router.patch("/{record_id}")
async def update_generation(
    record_id: str,
    request: UpdateGenerationRequest,
    user_id: str = Depends(get_current_user),
    store: LocalRecordStore = Depends(get_store),
) -> dict[str, Any]:
    await _get_owned(store, record_id, user_id)

    # Only model and metadata may be cleared with an explicit null
    updates = {
        name: value
        for name, value in request.model_dump(exclude_unset=True).items()
        if value is not None or name in ("model", "metadata")
    }
    record = await store.update(record_id, **updates)
    return record_to_dict(record)


@router.delete("/{record_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_generation(
    record_id: str,
    user_id: str = Depends(get_current_user),
    store: LocalRecordStore = Depends(get_store),
) -> Response:
    await _get_owned(store, record_id, user_id)
    if not await store.delete(record_id):
        raise NotFound(record_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{record_id}/favorite")
async def toggle_favorite(
    record_id: str,
    user_id: str = Depends(get_current_user),
    store: LocalRecordStore = Depends(get_store),
) -> dict[str, bool]:
    await _get_owned(store, record_id, user_id)
    favorite = await store.toggle_favorite(record_id)
    return {"favorite": favorite}


@router.post("/{record_id}/tags")
async def add_tags(
    record_id: str,
    request: TagsRequest,
    user_id: str = Depends(get_current_user),
    store: LocalRecordStore = Depends(get_store),
) -> dict[str, list[str]]:
    await _get_owned(store, record_id, user_id)
    tags = await store.add_tags(record_id, request.tags)
    return {"tags": tags}
