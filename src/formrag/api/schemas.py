"""Pydantic models for the FormRAG API."""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FormQueryRequest(CamelModel):
    form_question: str = Field(..., min_length=1, max_length=1000, description="Question about the customer's data")
    customer_id: Optional[str] = Field(
        default=None,
        min_length=1,
        max_length=100,
        description="Restrict retrieval to this customer's indexed data",
    )


class SourceModel(CamelModel):
    data_path: str
    score: float


class FormQueryData(CamelModel):
    answer: str
    data_path: List[str]
    confidence: float = Field(..., ge=0.0, le=1.0)
    sources: List[SourceModel]
    cached: bool


class FormQueryEnvelope(BaseModel):
    success: Literal[True] = True
    data: FormQueryData


class IngestRequest(CamelModel):
    customer_id: str = Field(..., min_length=1, max_length=100)
    force_reindex: bool = Field(default=False, description="Delete and rebuild every chunk for the customer")


class IngestData(CamelModel):
    customer_id: str
    documents_processed: int = Field(..., ge=0)
    chunks_created: int = Field(..., ge=0)
    success: bool


class IngestEnvelope(BaseModel):
    success: Literal[True] = True
    data: IngestData


class ErrorBody(BaseModel):
    message: str
    code: str
    status: int
    details: Optional[List[str]] = None


class ErrorResponse(BaseModel):
    error: ErrorBody


class HealthResponse(BaseModel):
    status: Literal["ok", "degraded"]
    timestamp: str
    services: Dict[str, Any]
