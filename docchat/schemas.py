"""
Pydantic schemas for request/response validation.
"""
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field


class ChatBody(BaseModel):
    """Request body for asking questions."""
    model_config = ConfigDict(populate_by_name=True)

    question: str = Field(..., min_length=1, description="The question to ask")
    document_ids: Optional[List[str]] = Field(
        None,
        alias="documentIds",
        description="Correlation keys of the documents to search; omit to search all",
    )


class Source(BaseModel):
    """A chunk used to ground an answer."""
    id: str
    content: str
    metadata: Dict[str, Any]


class ChatResponse(BaseModel):
    answer: str
    sources: List[Source]


class ProcessingResponse(BaseModel):
    """Returned by upload and retry."""
    success: bool
    documentId: str
    message: str
