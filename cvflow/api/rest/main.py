"""
CV Flow Engine - Main FastAPI Application
=========================================
HTTP surface for running conversational CV wizards: start a session on a
built-in or inline flow, answer its questions, inspect its trace, reset it.
"""

import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import Dict, Any, List, Optional

from fastapi import FastAPI, HTTPException, Depends
from fastapi.middleware.cors import CORSMiddleware

from ...core.config import settings
from ...core.flow_library import list_available_flows, get_flow_info, load_builtin_flow
from ...core.flow_loader import load_flow_document, validate_flow_document
from ...core.session_manager import SessionManager, SessionRecord
from ...errors import GraphError, RuntimeAbort, InvalidAnswer, InvalidAnswerKind
from ...models.events import FlowEvent, events_to_dicts
from ...models.session import (
    CreateSessionRequest,
    AnswerRequest,
    OptionRequest,
    SessionResponse,
    ValidationReport,
    HealthResponse
)
from ...monitoring.flow_metrics import get_flow_metrics_collector

# Set up logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Global service instances
session_manager: Optional[SessionManager] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown logic"""
    global session_manager

    logger.info(f"🚀 Starting {settings.app_name}")
    session_manager = SessionManager(config=settings, metrics=get_flow_metrics_collector())
    logger.info("✅ Service initialization complete")

    yield

    logger.info(f"🛑 Shutting down {settings.app_name}")
    if session_manager:
        for session_id in session_manager.list_sessions():
            session_manager.delete_session(session_id)
    session_manager = None
    logger.info("✅ Service shutdown complete")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    description="Conversation flow execution engine for the CV builder",
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc"
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=settings.cors_methods,
    allow_headers=settings.cors_headers,
)


# Dependency functions
async def get_session_manager() -> SessionManager:
    """Get session manager instance"""
    if session_manager is None:
        raise HTTPException(status_code=503, detail="Session manager not initialized")
    return session_manager


def _session_response(record: SessionRecord, events: Optional[List[FlowEvent]] = None) -> SessionResponse:
    snapshot = record.interpreter.snapshot()
    return SessionResponse(**snapshot, events=events_to_dicts(events or []))


def _lookup(manager: SessionManager, session_id: str) -> SessionRecord:
    try:
        return manager.get_session(session_id)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Session {session_id} not found")


def _aborted(record: SessionRecord, error: Exception) -> HTTPException:
    return HTTPException(
        status_code=409,
        detail={"error": error.to_dict(), "session": record.interpreter.snapshot()}
    )


def _invalid_answer(error: InvalidAnswer) -> HTTPException:
    status_code = 409 if error.kind == InvalidAnswerKind.WRONG_STATE else 422
    return HTTPException(status_code=status_code, detail={"error": error.to_dict()})


# API Endpoints
@app.get("/health", response_model=HealthResponse)
async def health_check(manager: SessionManager = Depends(get_session_manager)):
    """Health check endpoint"""
    return HealthResponse(
        status="healthy",
        version=settings.app_version,
        timestamp=time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        sessions=manager.get_health_status()
    )


@app.get("/v1/flows")
async def list_flows() -> Dict[str, str]:
    """List built-in flows"""
    return list_available_flows()


@app.get("/v1/flows/{flow_name}")
async def flow_info(flow_name: str) -> Dict[str, Any]:
    """Describe a built-in flow"""
    info = get_flow_info(flow_name)
    if "error" in info:
        raise HTTPException(status_code=404, detail=info["error"])
    return info


@app.post("/v1/flows/validate", response_model=ValidationReport)
async def validate_flow(document: Dict[str, Any]) -> ValidationReport:
    """Validate a designer document without starting a session"""
    return ValidationReport(**validate_flow_document(document, config=settings))


@app.post("/v1/sessions", response_model=SessionResponse, status_code=201)
async def create_session(
    request: CreateSessionRequest,
    manager: SessionManager = Depends(get_session_manager)
) -> SessionResponse:
    """Start a session and run it to its first question"""
    try:
        if request.flow_name is not None:
            graph = load_builtin_flow(request.flow_name, config=settings)
        else:
            graph = load_flow_document(request.flow, config=settings)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Flow {request.flow_name} not found")
    except GraphError as e:
        raise HTTPException(status_code=422, detail={"error": e.to_dict()})

    session_id = str(uuid.uuid4())
    try:
        record = manager.create_session(graph, initial_variables=request.initial_variables, session_id=session_id)
    except RuntimeError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except (GraphError, RuntimeAbort) as e:
        raise _aborted(manager.get_session(session_id), e)

    return _session_response(record, record.interpreter.events)


@app.get("/v1/sessions/{session_id}", response_model=SessionResponse)
async def get_session(session_id: str, manager: SessionManager = Depends(get_session_manager)) -> SessionResponse:
    """Current session snapshot"""
    return _session_response(_lookup(manager, session_id))


@app.post("/v1/sessions/{session_id}/answer", response_model=SessionResponse)
async def submit_answer(
    session_id: str,
    request: AnswerRequest,
    manager: SessionManager = Depends(get_session_manager)
) -> SessionResponse:
    """Answer the pending question"""
    record = _lookup(manager, session_id)
    try:
        events = manager.submit_answer(session_id, request.value)
    except InvalidAnswer as e:
        raise _invalid_answer(e)
    except (GraphError, RuntimeAbort) as e:
        raise _aborted(record, e)
    return _session_response(record, events)


@app.post("/v1/sessions/{session_id}/option", response_model=SessionResponse)
async def select_option(
    session_id: str,
    request: OptionRequest,
    manager: SessionManager = Depends(get_session_manager)
) -> SessionResponse:
    """Answer the pending question by picking an option"""
    record = _lookup(manager, session_id)
    try:
        events = manager.select_option(session_id, request.value)
    except InvalidAnswer as e:
        raise _invalid_answer(e)
    except (GraphError, RuntimeAbort) as e:
        raise _aborted(record, e)
    return _session_response(record, events)


@app.post("/v1/sessions/{session_id}/reset", response_model=SessionResponse)
async def reset_session(session_id: str, manager: SessionManager = Depends(get_session_manager)) -> SessionResponse:
    """Return the session to idle"""
    _lookup(manager, session_id)
    return _session_response(manager.reset_session(session_id))


@app.get("/v1/sessions/{session_id}/trace")
async def get_trace(session_id: str, manager: SessionManager = Depends(get_session_manager)) -> Dict[str, Any]:
    """Per-step execution trace for debugging"""
    record = _lookup(manager, session_id)
    return {
        "session_id": session_id,
        "trace": [entry.to_dict() for entry in record.interpreter.trace]
    }


@app.delete("/v1/sessions/{session_id}", status_code=204)
async def delete_session(session_id: str, manager: SessionManager = Depends(get_session_manager)) -> None:
    """Drop a session"""
    try:
        manager.delete_session(session_id)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Session {session_id} not found")


@app.get("/v1/metrics")
async def metrics() -> Dict[str, Any]:
    """Flow session metrics"""
    return get_flow_metrics_collector().get_metrics()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.host, port=settings.port)
