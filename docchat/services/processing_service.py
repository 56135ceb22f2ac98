"""
Document processing service.
Turns an uploaded file into stored chunks: extract → truncate → chunk → embed → persist.
"""
import asyncio
import time
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional

from .. import config
from ..embedding import embed_text
from ..errors import ContentExtractionError, ProcessingTimeoutError
from ..logging_config import logger
from ..store import ChunkStore
from ..text_extraction import chunk_text, extract_text, truncate_text


class Deadline:
    """Wall-clock limit shared between a processing run and its writes."""

    def __init__(self, seconds: float):
        self.seconds = seconds
        self.expires_at = time.monotonic() + seconds

    @property
    def expired(self) -> bool:
        return time.monotonic() >= self.expires_at

    def check(self) -> None:
        if self.expired:
            raise ProcessingTimeoutError(
                f"Processing exceeded {self.seconds:g}s deadline"
            )


def new_document_key() -> str:
    return str(uuid.uuid4())


def _chunk_record(
    document_key: str,
    file_name: str,
    index: int,
    content: str,
    embedding: Optional[List[float]],
    **extra_metadata,
) -> Dict:
    return {
        "id": str(uuid.uuid4()),
        "content": content,
        "metadata": {
            "document_id": document_key,
            "document_name": file_name,
            "chunk_index": index,
            "created_at": datetime.now(timezone.utc).isoformat(),
            **extra_metadata,
        },
        "embedding": embedding,
    }


async def save_chunks(
    store: ChunkStore,
    chunks: List[Dict],
    deadline: Optional[Deadline] = None,
) -> None:
    """Insert chunks in small batches with a short pause in between."""
    batch_size = config.PERSIST_BATCH_SIZE
    for i in range(0, len(chunks), batch_size):
        if deadline is not None:
            deadline.check()
        insert = asyncio.ensure_future(
            asyncio.to_thread(store.insert_chunks, chunks[i:i + batch_size])
        )
        try:
            await asyncio.shield(insert)
        except asyncio.CancelledError:
            # The worker thread cannot be interrupted; let its commit land
            # before the caller purges this document's chunks.
            await insert
            raise

        if i + batch_size < len(chunks):
            await asyncio.sleep(config.PERSIST_BATCH_PAUSE_SECONDS)


async def process_document(
    data: bytes,
    file_name: str,
    mime_type: str,
    store: ChunkStore,
    document_key: Optional[str] = None,
    deadline: Optional[Deadline] = None,
) -> str:
    """
    Full pipeline: chunk the text and embed every chunk.

    Embeddings are generated EMBED_CONCURRENCY at a time (one by default)
    with a pause between batches, so a single upload cannot flood the
    embedding API.

    Returns:
        The correlation key attached to every stored chunk.

    Raises:
        UnsupportedFileTypeError, ContentExtractionError, EmbeddingError,
        ProcessingTimeoutError
    """
    logger.info("Processing document", filename=file_name, mime_type=mime_type, mode="full")

    text = await asyncio.to_thread(extract_text, data, mime_type)
    logger.info("Extracted text", filename=file_name, length=len(text))
    if len(text) > config.MAX_TEXT_LENGTH:
        logger.info("Truncating text", filename=file_name, length=len(text), limit=config.MAX_TEXT_LENGTH)
    text = truncate_text(text, config.MAX_TEXT_LENGTH)

    parts = chunk_text(text)
    logger.info("Created chunks", filename=file_name, chunk_count=len(parts))
    if not parts:
        raise ContentExtractionError("Could not extract usable content from the document")

    if len(parts) > config.MAX_CHUNKS:
        logger.info("Limiting chunks", filename=file_name, chunk_count=len(parts), limit=config.MAX_CHUNKS)
        parts = parts[:config.MAX_CHUNKS]

    document_key = document_key or new_document_key()

    chunks = []
    step = config.EMBED_CONCURRENCY
    for i in range(0, len(parts), step):
        batch = parts[i:i + step]
        logger.debug("Embedding batch", batch=i // step + 1, chunk_count=len(parts))
        vectors = await asyncio.gather(
            *(asyncio.to_thread(embed_text, part) for part in batch)
        )
        for offset, (content, vector) in enumerate(zip(batch, vectors)):
            chunks.append(_chunk_record(document_key, file_name, i + offset, content, vector))

        if i + step < len(parts):
            await asyncio.sleep(config.EMBED_BATCH_PAUSE_SECONDS)

    await save_chunks(store, chunks, deadline)

    logger.info("Document processed", filename=file_name, document_key=document_key, chunks=len(chunks))
    return document_key


async def process_document_simple(
    data: bytes,
    file_name: str,
    mime_type: str,
    store: ChunkStore,
    document_key: Optional[str] = None,
    deadline: Optional[Deadline] = None,
) -> str:
    """
    Simplified pipeline: store the (truncated) text as a single chunk
    with no embedding. Such chunks are only found by the recency fallback.
    """
    logger.info("Processing document", filename=file_name, mime_type=mime_type, mode="simple")

    text = await asyncio.to_thread(extract_text, data, mime_type)
    logger.info("Extracted text", filename=file_name, length=len(text))
    if not text.strip():
        raise ContentExtractionError("Could not extract usable content from the document")
    text = truncate_text(text, config.SIMPLE_MAX_TEXT_LENGTH)

    document_key = document_key or new_document_key()
    chunk = _chunk_record(document_key, file_name, 0, text, None, simple_processing=True)
    await save_chunks(store, [chunk], deadline)

    logger.info("Document processed", filename=file_name, document_key=document_key, chunks=1)
    return document_key


async def run_processing(store: ChunkStore, document: Dict) -> str:
    """
    Process a stored document under the configured pipeline and deadline.

    The new correlation key is written to the document row before any chunk
    is stored, so every chunk always belongs to a document. On timeout the
    processing task is cancelled; on any failure the document is marked
    ``error`` and chunks already stored under the key are removed.

    Returns:
        The document's new correlation key.
    """
    document_key = new_document_key()
    await asyncio.to_thread(
        store.update_document, document["id"], status="processing", document_id=document_key, error=None
    )

    pipeline = process_document if config.PROCESSING_MODE == "full" else process_document_simple
    deadline = Deadline(config.PROCESSING_TIMEOUT_SECONDS)

    try:
        await asyncio.wait_for(
            pipeline(
                document["file_data"],
                document["name"],
                document["type"],
                store,
                document_key=document_key,
                deadline=deadline,
            ),
            timeout=config.PROCESSING_TIMEOUT_SECONDS,
        )
    except asyncio.TimeoutError:
        message = f"Processing took longer than {config.PROCESSING_TIMEOUT_SECONDS:g}s"
        await _mark_failed(store, document, document_key, message)
        raise ProcessingTimeoutError(message) from None
    except Exception as e:
        await _mark_failed(store, document, document_key, str(e))
        raise

    await asyncio.to_thread(store.update_document, document["id"], status="completed")
    logger.info("Document completed", doc_id=document["id"], document_key=document_key)
    return document_key


async def _mark_failed(store: ChunkStore, document: Dict, document_key: str, message: str) -> None:
    logger.error("Document processing failed", doc_id=document["id"], error=message)
    await asyncio.to_thread(store.update_document, document["id"], status="error", error=message)
    await asyncio.to_thread(store.delete_chunks, document_key)
