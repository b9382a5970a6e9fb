import logging
import os
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from leap.config_manager import config
from leap.exceptions import (
    DataIntegrityError,
    EntitlementError,
    InvalidStateError,
    LeapError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from leap.goal_service import GoalService, free_tier_entitlement
from web.backend.routers import goals, microhabits

logger = logging.getLogger("leap.api")

# 异常类型 -> HTTP 状态码（按继承顺序匹配，子类在前）
ERROR_STATUS = (
    (EntitlementError, 402),
    (ValidationError, 400),
    (NotFoundError, 404),
    (InvalidStateError, 409),
    (DataIntegrityError, 409),
    (StorageError, 503),
)


def _build_default_service() -> GoalService:
    enforce_free_tier = os.getenv("LEAP_ENFORCE_FREE_TIER", "0").lower() in {"1", "true", "yes"}
    check = free_tier_entitlement(config.FREE_GOAL_LIMIT) if enforce_free_tier else None
    return GoalService.from_config(can_create_goal=check)


def create_app(service: Optional[GoalService] = None) -> FastAPI:
    app = FastAPI(title="Leap API", version="0.3")
    app.state.goal_service = service or _build_default_service()

    raw_origins = os.getenv("LEAP_ALLOWED_ORIGINS", "*")
    allow_origins = [o.strip() for o in raw_origins.split(",") if o.strip()]
    allow_credentials = "*" not in allow_origins

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_credentials=allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(LeapError)
    async def leap_error_handler(request: Request, exc: LeapError):
        status = next((code for kind, code in ERROR_STATUS if isinstance(exc, kind)), 500)
        if status >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(
            status_code=status,
            content={"error": type(exc).__name__, "detail": exc.message, "hint": exc.hint},
        )

    @app.get("/health")
    async def health_check():
        return {"status": "ok", "service": "Leap"}

    app.include_router(goals.router, prefix="/api/v1/goals", tags=["goals"])
    app.include_router(microhabits.router, prefix="/api/v1/microhabits", tags=["microhabits"])
    return app
