"""Size-capped reading of multipart uploads."""

from __future__ import annotations

from http import HTTPStatus
from typing import Any

from fastapi import HTTPException

UPLOAD_CHUNK_SIZE = 1024 * 1024


async def read_upload(
    upload: Any,
    max_bytes: int,
    *,
    too_large: str,
    chunk_size: int = UPLOAD_CHUNK_SIZE,
) -> bytes:
    """Read ``upload`` chunk by chunk, rejecting it once ``max_bytes`` is passed."""
    chunks: list[bytes] = []
    total = 0
    while True:
        chunk = await upload.read(chunk_size)
        if not chunk:
            break
        total += len(chunk)
        if total > max_bytes:
            raise HTTPException(status_code=HTTPStatus.BAD_REQUEST, detail=too_large)
        chunks.append(chunk)
    return b"".join(chunks)


__all__ = ["UPLOAD_CHUNK_SIZE", "read_upload"]
