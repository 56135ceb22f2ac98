"""
Diagnostics API routes.
Configuration health check and a peek at the latest stored rows.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.exc import SQLAlchemyError

from .. import config
from ..errors import is_quota_error
from ..logging_config import logger
from ..openai_client import get_client, has_openai_key
from ..store import ChunkStore, get_store

router = APIRouter(prefix="/api", tags=["system"])


@router.get("/health")
def health(store: ChunkStore = Depends(get_store)):
    """
    Check the OpenAI key, its quota and the database tables.

    Example response:
    {
        "status": "warning",
        "results": {"openaiKey": false, "openaiQuota": false, "database": true},
        "message": "OpenAI not configured - running in demo mode"
    }
    """
    results = {"openaiKey": has_openai_key(), "openaiQuota": False, "database": False}

    if results["openaiKey"]:
        try:
            resp = get_client().embeddings.create(model=config.EMBED_MODEL, input="test")
            results["openaiQuota"] = bool(resp.data[0].embedding)
        except Exception as e:
            logger.warning("OpenAI check failed", error=str(e), quota=is_quota_error(e))

    try:
        store.ping()
        results["database"] = True
    except SQLAlchemyError as e:
        logger.warning("Database check failed", error=str(e))

    if not results["openaiKey"]:
        status, message = "warning", "OpenAI not configured - running in demo mode"
    elif not results["openaiQuota"]:
        status, message = "warning", "OpenAI quota exhausted - running in demo mode"
    else:
        status, message = "ok", "Configuration complete"

    if not results["database"]:
        status, message = "error", "Database not reachable"

    return {"status": status, "results": results, "message": message}


@router.get("/debug")
def debug(store: ChunkStore = Depends(get_store)):
    """Latest 10 documents and chunks."""
    documents = store.list_documents(limit=10)
    chunks = store.recent_chunks(10)
    return {
        "documents": {"count": len(documents), "data": documents},
        "chunks": {"count": len(chunks), "data": chunks},
    }
