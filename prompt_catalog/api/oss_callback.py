# Copyright (c) 2026 TempoOS Contributors. All Rights Reserved.

"""
OSS Upload Callback Webhook — Object-created trigger for batch ingestion.

OSS POSTs to this endpoint after a batch file is uploaded. Delivery is
at-least-once, so the response code decides whether OSS redelivers:
  200  processed, rejected, or ignored (not a batch object); no redelivery
  503  systemic failure (warehouse / landing store); redelivery wanted

OSS callback configuration (in OSS console or via SDK):
  callbackUrl: https://<catalog-host>/api/oss/callback
  callbackBody: bucket=${bucket}&object=${object}&size=${size}&mimeType=${mimeType}&etag=${etag}&x:uploader=${x:uploader}
  callbackBodyType: application/x-www-form-urlencoded
"""

from __future__ import annotations

import fnmatch
import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Form, Request
from fastapi.responses import JSONResponse

from prompt_catalog.core.errors import SystemicError

logger = logging.getLogger("catalog.api.oss_callback")

router = APIRouter(prefix="/api/oss", tags=["oss_callback"])


def is_batch_object(object_key: str, prefix: str, patterns: List[str]) -> bool:
    """True if the object sits under the batch prefix and matches a file pattern."""
    if prefix and not object_key.startswith(prefix):
        return False
    file_name = object_key.rsplit("/", 1)[-1]
    return any(fnmatch.fnmatch(file_name.lower(), p.lower()) for p in patterns)


@router.post("/callback")
async def oss_upload_callback(
    request: Request,
    bucket: str = Form(""),
    object: str = Form("", alias="object"),
    size: int = Form(0),
    mimeType: str = Form(""),
    etag: str = Form(""),
) -> Any:
    """Receive an OSS upload completion callback and ingest the batch."""
    settings = request.app.state.settings
    form_data = await request.form()
    uploaded_by = form_data.get("x:uploader") or None

    if not is_batch_object(object, settings.BATCH_OBJECT_PREFIX, settings.batch_patterns_list):
        logger.info("OSS callback ignored: %s/%s is not a batch object", bucket, object)
        return {"status": "ignored", "object_key": object}

    logger.info(
        "OSS callback received: bucket=%s object=%s size=%d etag=%s",
        bucket, object, size, etag,
    )

    pipeline = request.app.state.pipeline
    try:
        result = await pipeline.process_object(
            bucket=bucket,
            object_key=object,
            etag=etag or None,
            uploaded_by=uploaded_by,
        )
    except SystemicError as e:
        logger.error(
            "OSS callback processing failed, requesting redelivery: %s", e,
            extra={"error_kind": e.kind},
        )
        return JSONResponse(
            status_code=503,
            content={"status": "failed", "object_key": object, "error": str(e)},
        )

    body: Dict[str, Any] = result.to_dict()
    return body
