# Copyright (c) 2026 TempoOS Contributors. All Rights Reserved.

"""
API Error Handling — Unified error structure for the catalog HTTP API.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.responses import JSONResponse

from prompt_catalog.core.errors import SystemicError

logger = logging.getLogger("catalog.api")


class APIError(Exception):
    """Base API error with structured response."""

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 400,
        details: Optional[Dict[str, Any]] = None,
        trace_id: Optional[str] = None,
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.trace_id = trace_id or str(uuid.uuid4())
        super().__init__(message)


class PromptNotFoundError(APIError):
    def __init__(self, prompt_id: str, trace_id: str = None):
        super().__init__(
            code="PROMPT_NOT_FOUND",
            message=f"Prompt '{prompt_id}' not found",
            status_code=404,
            trace_id=trace_id,
        )


class InvalidPhaseAPIError(APIError):
    def __init__(self, phase: str, trace_id: str = None):
        super().__init__(
            code="INVALID_PHASE",
            message=f"'{phase}' is not an ADDIE phase",
            status_code=422,
            trace_id=trace_id,
        )


class ServiceUnavailableAPIError(APIError):
    def __init__(self, detail: str, trace_id: str = None):
        super().__init__(
            code="SERVICE_UNAVAILABLE",
            message=detail,
            status_code=503,
            trace_id=trace_id,
        )


async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    """Global exception handler for APIError."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "code": exc.code,
            "message": exc.message,
            "trace_id": exc.trace_id,
            "details": exc.details,
        },
    )


async def systemic_error_handler(request: Request, exc: SystemicError) -> JSONResponse:
    """Infrastructure failures answer 503 so callers retry."""
    error = ServiceUnavailableAPIError(str(exc))
    logger.error(
        "%s %s failed: %s", request.method, request.url.path, exc,
        extra={"trace_id": error.trace_id, "error_kind": exc.kind},
    )
    error.details = {"kind": exc.kind}
    return await api_error_handler(request, error)
