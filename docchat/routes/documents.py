"""
Document management API routes.
Handles document upload, listing, deletion and reprocessing.
"""
import asyncio
import os
from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from sqlalchemy.exc import SQLAlchemyError

from .. import config
from ..logging_config import logger
from ..schemas import ProcessingResponse
from ..services.processing_service import run_processing
from ..store import ChunkStore, get_store

router = APIRouter(prefix="/api", tags=["documents"])


# ==================== Document Upload ====================

@router.post("/upload", response_model=ProcessingResponse)
async def upload_document(
    file: Optional[UploadFile] = File(None),
    store: ChunkStore = Depends(get_store),
):
    """
    Upload a single document and process it.

    Supported formats: PDF, TXT, Markdown (1 KB to 1 MB)

    Process:
    1. Validate type and size
    2. Register the document as 'processing'
    3. Extract, chunk and store its text (with a deadline)
    4. Mark it 'completed' or 'error'
    """
    if file is None:
        raise HTTPException(status_code=400, detail="No file provided")

    content_type = file.content_type or ""
    if content_type not in config.ALLOWED_MIME_TYPES:
        logger.warning("Rejected file type", filename=file.filename, content_type=content_type)
        raise HTTPException(
            status_code=400,
            detail="Unsupported file type. Only PDF and text files are allowed.",
        )

    # Check file size before reading
    file.file.seek(0, os.SEEK_END)
    size_bytes = file.file.tell()
    file.file.seek(0)

    if size_bytes > config.MAX_FILE_SIZE_BYTES:
        raise HTTPException(
            status_code=400,
            detail=f"File is too large. Max size is {config.MAX_FILE_SIZE_BYTES // (1024 * 1024)} MB.",
        )
    if size_bytes < config.MIN_FILE_SIZE_BYTES:
        raise HTTPException(
            status_code=400,
            detail=f"File is too small. Min size is {config.MIN_FILE_SIZE_BYTES // 1024} KB.",
        )

    data = await file.read()
    logger.info("Processing file", filename=file.filename, content_type=content_type, size=size_bytes)

    try:
        document = await asyncio.to_thread(
            store.create_document,
            name=file.filename,
            size=size_bytes,
            type=content_type,
            file_data=data,
        )
    except SQLAlchemyError as e:
        logger.error("Error registering document", exc_info=e, filename=file.filename)
        raise HTTPException(status_code=500, detail="Failed to register the document")

    try:
        document_key = await run_processing(store, document)
    except Exception as e:
        logger.error("Error processing document", exc_info=e, doc_id=document["id"])
        raise HTTPException(status_code=500, detail=f"Failed to process document: {e}")

    return {
        "success": True,
        "documentId": document_key,
        "message": "Document processed successfully",
    }


# ==================== Document Listing ====================

@router.get("/documents")
def list_documents(store: ChunkStore = Depends(get_store)):
    """
    Returns all documents, newest first.
    """
    try:
        documents = store.list_documents()
    except SQLAlchemyError as e:
        logger.error("Error listing documents", exc_info=e)
        raise HTTPException(status_code=500, detail="Internal server error")

    logger.info("Listed documents", count=len(documents))
    return documents


# ==================== Document Deletion ====================

@router.delete("/documents/{doc_id}")
def delete_document(doc_id: str, store: ChunkStore = Depends(get_store)):
    """
    Deletes a document and every chunk sharing its correlation key.
    """
    document = store.get_document(doc_id)
    if not document:
        logger.warning("Document not found for deletion", doc_id=doc_id)
        raise HTTPException(status_code=404, detail="Document not found")

    try:
        store.delete_document(document)
    except SQLAlchemyError as e:
        logger.error("Error deleting document", exc_info=e, doc_id=doc_id)
        raise HTTPException(status_code=500, detail="Failed to delete the document")

    logger.info("Document deleted", doc_id=doc_id)
    return {"success": True, "message": "Document deleted successfully"}


# ==================== Document Retry ====================

@router.post("/documents/{doc_id}/retry", response_model=ProcessingResponse)
async def retry_document(doc_id: str, store: ChunkStore = Depends(get_store)):
    """
    Re-run processing from the stored original file.
    Old chunks are dropped and the document gets a fresh correlation key.
    """
    document = await asyncio.to_thread(store.get_document, doc_id)
    if not document:
        raise HTTPException(status_code=404, detail="Document not found")

    if not document.get("file_data"):
        raise HTTPException(
            status_code=400, detail="The original file is not available for reprocessing"
        )

    if document.get("document_id"):
        await asyncio.to_thread(store.delete_chunks, document["document_id"])

    try:
        document_key = await run_processing(store, document)
    except Exception as e:
        logger.error("Error reprocessing document", exc_info=e, doc_id=doc_id)
        raise HTTPException(status_code=500, detail=f"Failed to reprocess document: {e}")

    return {
        "success": True,
        "documentId": document_key,
        "message": "Document reprocessed successfully",
    }
