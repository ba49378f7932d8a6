"""Document chunk endpoints — the ingestion side of the in-memory chunk store."""

from fastapi import APIRouter, Depends, HTTPException, status

from docchat.application.interfaces import ChunkRepository
from docchat.application.schemas import (
    ChunkSchema,
    DeleteChunksResponse,
    StoreChunksRequest,
    StoreChunksResponse,
)
from docchat.infrastructure.dependencies import get_chunk_repository

router = APIRouter(prefix="/documents", tags=["Documents"])


@router.put("/{document_id}/chunks", response_model=StoreChunksResponse)
async def store_chunks(
    document_id: str,
    request: StoreChunksRequest,
    repository: ChunkRepository = Depends(get_chunk_repository),
) -> StoreChunksResponse:
    """Replace all chunks of a document (used when a document is reprocessed)."""
    chunks = [c.to_domain(document_id) for c in request.chunks]
    await repository.store_chunks(document_id, chunks)
    return StoreChunksResponse(document_id=document_id, stored=len(chunks))


@router.get("/{document_id}/chunks", response_model=list[ChunkSchema])
async def list_chunks(
    document_id: str,
    repository: ChunkRepository = Depends(get_chunk_repository),
) -> list[ChunkSchema]:
    chunks = await repository.get_chunks_for_document(document_id)
    if not chunks:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No chunks stored for document {document_id}",
        )
    return [ChunkSchema.from_domain(c) for c in chunks]


@router.delete("/{document_id}/chunks", response_model=DeleteChunksResponse)
async def delete_chunks(
    document_id: str,
    repository: ChunkRepository = Depends(get_chunk_repository),
) -> DeleteChunksResponse:
    deleted = await repository.delete_by_document(document_id)
    return DeleteChunksResponse(document_id=document_id, deleted=deleted)
