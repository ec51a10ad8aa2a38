"""
Agent Routes
============
Thin HTTP surface over the context assembler.

Endpoints:
- POST /agent/message          - send a message, get the reply
- GET  /agent/health           - liveness and component status
- GET  /agent/session/{id}     - session info
- GET  /agent/search           - raw document search
- GET  /agent/plugins          - registered plugins

Author: Context Agent
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Request
from pydantic import BaseModel, ConfigDict, Field

from .. import __version__
from ..errors import ValidationError
from ..models import utcnow
from ..startup import AgentComponents

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/agent", tags=["Agent"])

SESSION_ID_PATTERN = r"^[A-Za-z0-9_-]+$"


# =============================================================================
# REQUEST/RESPONSE MODELS
# =============================================================================

class AgentMessageRequest(BaseModel):
    """Inbound chat message"""
    model_config = ConfigDict(str_strip_whitespace=True, populate_by_name=True)

    message: str = Field(..., min_length=1, max_length=4000, description="User message")
    session_id: str = Field(
        ...,
        alias="sessionId",
        min_length=1,
        max_length=100,
        pattern=SESSION_ID_PATTERN,
        description="Letters, digits, '_' and '-' only",
    )


class AgentMessageResponse(BaseModel):
    """Assistant reply"""
    reply: str
    session_id: str
    plugins_used: List[str] = []
    sources_used: List[str] = []
    timestamp: str


class SearchResultItem(BaseModel):
    content: str
    similarity: float
    source: str
    chunk_index: int


class SearchResponse(BaseModel):
    query: str
    results: List[SearchResultItem]
    timestamp: str


# =============================================================================
# DEPENDENCY
# =============================================================================

def get_agent(request: Request) -> AgentComponents:
    """Get agent components dependency"""
    agent = getattr(request.app.state, "agent", None)
    if agent is None:
        raise HTTPException(status_code=503, detail="Agent not initialized. Please wait for startup.")
    return agent


# =============================================================================
# ROUTES
# =============================================================================

@router.post("/message", response_model=AgentMessageResponse)
async def send_message(
    request: AgentMessageRequest,
    agent: AgentComponents = Depends(get_agent),
):
    """Process a user message and return the assistant reply"""
    logger.info(f"📨 Received agent message request for session {request.session_id}")

    reply = await agent.assembler.process_message(request.session_id, request.message)

    return AgentMessageResponse(**reply.to_dict())


@router.get("/health")
async def health(request: Request):
    agent = getattr(request.app.state, "agent", None)
    return {
        "status": "healthy",
        "timestamp": utcnow().isoformat(),
        "version": __version__,
        "retrieval_initialized": bool(agent and agent.rag_service.is_initialized()),
        "session_store_connected": bool(agent and agent.session_store.is_connected()),
    }


@router.get("/session/{session_id}")
async def get_session_info(
    session_id: str = Path(..., min_length=1, max_length=100, pattern=SESSION_ID_PATTERN),
    agent: AgentComponents = Depends(get_agent),
):
    info = await agent.assembler.get_session_info(session_id)
    return {
        "session_id": session_id,
        **info,
        "timestamp": utcnow().isoformat(),
    }


@router.get("/search", response_model=SearchResponse)
async def search_documents(
    q: str = Query(..., min_length=1, max_length=200),
    limit: int = Query(5, ge=1, le=20),
    agent: AgentComponents = Depends(get_agent),
):
    """
    Nearest-neighbour search over the document index.

    Returns 503 while the index is not initialized.
    """
    query = q.strip()
    if not query:
        raise ValidationError("Validation failed: q: Query parameter \"q\" is required")
    results = await agent.rag_service.search_documents(query, limit)

    return SearchResponse(
        query=query,
        results=[SearchResultItem(**r.to_dict()) for r in results],
        timestamp=utcnow().isoformat(),
    )


@router.get("/plugins")
async def list_plugins(agent: AgentComponents = Depends(get_agent)):
    plugins = agent.assembler.get_available_plugins()
    return {
        "plugins": plugins,
        "count": len(plugins),
        "timestamp": utcnow().isoformat(),
    }
