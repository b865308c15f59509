# Copyright (c) 2026 TempoOS Contributors. All Rights Reserved.

"""
Ingest API — Operator upload of a batch file, processed synchronously.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, File, Form, Request, UploadFile

from prompt_catalog.api.errors import APIError
from prompt_catalog.api.schemas import IngestionResponse

logger = logging.getLogger("catalog.api.ingest")

router = APIRouter(prefix="/api", tags=["ingest"])


@router.post("/ingest/batch", response_model=IngestionResponse)
async def ingest_batch(
    request: Request,
    file: UploadFile = File(...),
    uploaded_by: str = Form(None),
):
    """
    Upload a CSV or XLSX batch and run it through the ingestion pipeline.

    Rejected batches answer 200 with status "rejected" and the error list;
    systemic failures answer 503 through the global handler.
    """
    if not file.filename:
        raise APIError(code="MISSING_FILE_NAME", message="uploaded file has no name")

    pipeline = request.app.state.pipeline
    content = await file.read()
    logger.info("Operator upload: %s (%d bytes)", file.filename, len(content))

    result = await pipeline.process_content(
        content,
        file_name=file.filename,
        object_key=f"upload/{file.filename}",
        uploaded_by=uploaded_by or None,
    )
    return result.to_dict()
