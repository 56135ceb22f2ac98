"""
Chat-related API routes.
Handles RAG question answering over uploaded documents.
"""
from fastapi import APIRouter, Depends, HTTPException

from ..logging_config import logger
from ..schemas import ChatBody, ChatResponse
from ..services.rag_service import SELECT_DOCUMENT_ANSWER, answer_question
from ..store import ChunkStore, get_store

router = APIRouter(prefix="/api", tags=["chat"])


@router.post("/chat", response_model=ChatResponse)
def chat(payload: ChatBody, store: ChunkStore = Depends(get_store)):
    """
    Answer a question grounded in the selected documents.

    Workflow:
    1. Validate the question
    2. Ask for a selection if an empty one was sent while documents exist
    3. Retrieve relevant chunks (vector search, then recency fallback)
    4. Generate the answer with the retrieved chunks as sources
    """
    question = payload.question.strip()
    if not question:
        raise HTTPException(status_code=400, detail="A valid question is required")

    try:
        if payload.document_ids is not None and not payload.document_ids and store.has_documents():
            logger.info("No documents selected", question=question)
            return {"answer": SELECT_DOCUMENT_ANSWER, "sources": []}

        return answer_question(question, payload.document_ids, store)
    except Exception as e:
        logger.error("Error answering question", exc_info=e, question=question)
        raise HTTPException(status_code=500, detail="Internal server error")
