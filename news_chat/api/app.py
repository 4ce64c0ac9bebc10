"""
HTTP API

FastAPI application exposing chat, history and health endpoints.
Route handlers are synchronous; FastAPI runs them in its threadpool so
blocking client calls don't stall other requests.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..config import Config, get_config
from ..query.chat_service import ChatProcessingError, ChatValidationError
from ..services import Services, build_services

logger = logging.getLogger(__name__)

CHAT_PATH = "/api/chat"


class ChatRequest(BaseModel):
    sessionId: Optional[str] = None
    message: Optional[str] = None


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={'error': message})


def create_app(services: Optional[Services] = None, config: Optional[Config] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        services: Pre-built services (tests); when None they are built from
            configuration at startup and closed at shutdown
        config: Configuration used when building services

    Returns:
        Configured FastAPI app
    """
    config = config or get_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = services is None
        app.state.services = services or build_services(config)
        logger.info(f"Environment: {config.environment}")
        try:
            yield
        finally:
            if owned:
                logger.info("Shutting down gracefully...")
                app.state.services.close()

    app = FastAPI(
        title="News Chat",
        lifespan=lifespan,
        docs_url=None if config.is_production else "/docs",
        redoc_url=None
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"]
    )
    if services is not None:
        app.state.services = services

    def get_services(request: Request) -> Services:
        return request.app.state.services

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        if request.url.path == CHAT_PATH:
            return error_response(400, "Session ID and message are required")
        return error_response(400, "Invalid request")

    @app.post("/api/session")
    def create_session(request: Request):
        session_id = get_services(request).chat_service.new_session_id()
        return {'sessionId': session_id}

    @app.post(CHAT_PATH)
    def chat(request: Request, payload: Optional[ChatRequest] = None):
        payload = payload or ChatRequest()
        chat_service = get_services(request).chat_service

        try:
            reply = chat_service.handle_message(payload.sessionId, payload.message)
        except ChatValidationError as e:
            return error_response(400, str(e))
        except ChatProcessingError as e:
            return error_response(500, str(e))

        return reply.to_dict()

    @app.get("/api/history/{session_id}")
    def get_history(session_id: str, request: Request):
        try:
            history = get_services(request).chat_service.get_history(session_id)
        except Exception as e:
            logger.error(f"History retrieval error: {e}")
            return error_response(500, "Failed to retrieve history")

        return {'history': [message.to_dict() for message in history]}

    @app.delete("/api/history/{session_id}")
    def clear_history(session_id: str, request: Request):
        try:
            get_services(request).chat_service.clear_history(session_id)
        except Exception as e:
            logger.error(f"Session clear error: {e}")
            return error_response(500, "Failed to clear session")

        return {'success': True}

    @app.get("/api/session/{session_id}")
    def session_info(session_id: str, request: Request):
        try:
            info = get_services(request).chat_service.session_info(session_id)
        except Exception as e:
            logger.error(f"Session info error: {e}")
            return error_response(500, "Failed to retrieve session")

        if info is None:
            return error_response(404, "Session not found")
        return info.to_dict()

    @app.get("/api/stats")
    def stats(request: Request):
        vector_store = get_services(request).vector_store
        count = vector_store.count()
        return {
            'documents': count.value,
            'countAvailable': count.available,
            'vectorStore': vector_store.health_check()
        }

    @app.get("/api/health")
    def health():
        return {'status': 'OK', 'timestamp': datetime.now(timezone.utc).isoformat()}

    return app
