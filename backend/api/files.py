"""File upload/download endpoints backed by the quota-enforcing file store."""

import logging
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fastapi.responses import Response
from pydantic import BaseModel

from models.file_record import FileRecord
from storage.errors import AdmissionStatus, LookupStatus, StorageUnavailable
from storage.file_store import FileStore, file_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/files", tags=["files"])

_REJECTIONS = {
    AdmissionStatus.FILE_TOO_LARGE: (413, "File too large."),
    AdmissionStatus.CAPACITY_EXCEEDED: (507, "Storage is full. Try again later."),
    AdmissionStatus.NO_FILE_SELECTED: (400, "No file selected."),
}


def get_file_store() -> FileStore:
    """FastAPI dependency returning the process-wide file store."""
    return file_store


class UploadResponse(BaseModel):
    file_id: str
    name: str
    size_bytes: int


class FileNameResponse(BaseModel):
    file_id: str
    name: str


class FileExistsResponse(BaseModel):
    file_id: str
    exists: bool


class StorageStatsResponse(BaseModel):
    total_bytes_stored: int
    max_total_capacity: int
    remaining_capacity: int


@router.post("", response_model=UploadResponse, status_code=201)
async def upload_file(
    file: UploadFile | None = File(None),
    store: FileStore = Depends(get_file_store),
):
    """Store an uploaded file and return its ID."""
    name = (file.filename or "") if file is not None else ""
    # One byte past the limit is enough to reject as too large
    content = await file.read(store.max_file_size + 1) if file is not None else b""

    record = FileRecord(name=name, content=content)
    try:
        result = await store.admit(record)
    except StorageUnavailable as e:
        logger.error(f"Upload of {name!r} failed: {e}")
        raise HTTPException(status_code=503, detail="Storage is temporarily unavailable.")

    if not result.admitted:
        status_code, detail = _REJECTIONS[result.status]
        raise HTTPException(status_code=status_code, detail=detail)

    return UploadResponse(file_id=str(result.file_id), name=name, size_bytes=record.size_bytes)


@router.get("/stats", response_model=StorageStatsResponse)
async def storage_stats(store: FileStore = Depends(get_file_store)):
    return StorageStatsResponse(
        total_bytes_stored=store.total_bytes_stored,
        max_total_capacity=store.max_total_capacity,
        remaining_capacity=store.remaining_capacity,
    )


@router.get("/{file_id}")
async def download_file(file_id: str, store: FileStore = Depends(get_file_store)):
    """Download a stored file by its ID."""
    result = await store.fetch(file_id)
    if result.status is LookupStatus.STORAGE_UNAVAILABLE:
        raise HTTPException(status_code=503, detail="Storage is temporarily unavailable.")
    if not result.found:
        raise HTTPException(status_code=404, detail="File not found or expired")

    record: FileRecord = result.value
    return Response(
        content=bytes(record.content),
        media_type="application/octet-stream",
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(record.name)}"},
    )


@router.get("/{file_id}/name", response_model=FileNameResponse)
async def file_name(file_id: str, store: FileStore = Depends(get_file_store)):
    result = await store.fetch_name(file_id)
    if result.status is LookupStatus.STORAGE_UNAVAILABLE:
        raise HTTPException(status_code=503, detail="Storage is temporarily unavailable.")
    if not result.found:
        raise HTTPException(status_code=404, detail="File not found or expired")
    return FileNameResponse(file_id=file_id, name=result.value)


@router.get("/{file_id}/exists", response_model=FileExistsResponse)
async def file_exists(file_id: str, store: FileStore = Depends(get_file_store)):
    return FileExistsResponse(file_id=file_id, exists=await store.exists(file_id))
