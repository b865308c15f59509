# Copyright (c) 2026 TempoOS Contributors. All Rights Reserved.

"""
Landing Store — Read uploaded batch files from object storage.

OSSLandingStore wraps the synchronous oss2 SDK in asyncio.to_thread;
LocalLandingStore reads {root}/{bucket}/{key} for development.
Every read is bounded by the storage timeout.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

import oss2

from prompt_catalog.core.errors import LandingStoreError

logger = logging.getLogger("catalog.landing_store")


class LandingStore(ABC):
    def __init__(self, timeout: float = 60.0) -> None:
        self._timeout = timeout

    async def fetch(self, bucket: str, key: str) -> bytes:
        """Download one object, failing with LandingStoreError on timeout or I/O error."""
        try:
            content = await asyncio.wait_for(self._fetch(bucket, key), timeout=self._timeout)
        except asyncio.TimeoutError as e:
            raise LandingStoreError(
                f"reading {bucket}/{key} timed out after {self._timeout}s"
            ) from e
        logger.info("Landing store read: %s/%s (%d bytes)", bucket, key, len(content))
        return content

    @abstractmethod
    async def _fetch(self, bucket: str, key: str) -> bytes:
        ...


class OSSLandingStore(LandingStore):
    """Aliyun OSS backed landing store."""

    def __init__(
        self,
        endpoint: str,
        access_key_id: str,
        access_key_secret: str,
        timeout: float = 60.0,
    ) -> None:
        super().__init__(timeout)
        self._endpoint = endpoint if endpoint.startswith("http") else f"https://{endpoint}"
        self._auth = oss2.Auth(access_key_id, access_key_secret)

    async def _fetch(self, bucket: str, key: str) -> bytes:
        return await asyncio.to_thread(self._fetch_sync, bucket, key)

    def _fetch_sync(self, bucket: str, key: str) -> bytes:
        """Synchronous OSS download using oss2 SDK (runs in thread)."""
        try:
            oss_bucket = oss2.Bucket(
                self._auth, self._endpoint, bucket, connect_timeout=self._timeout,
            )
            return oss_bucket.get_object(key).read()
        except oss2.exceptions.OssError as e:
            raise LandingStoreError(f"OSS read failed for {bucket}/{key}: {e}") from e


class LocalLandingStore(LandingStore):
    """Filesystem landing store: bucket = subdirectory of root."""

    def __init__(self, root: str, timeout: float = 60.0) -> None:
        super().__init__(timeout)
        self._root = Path(root)

    async def _fetch(self, bucket: str, key: str) -> bytes:
        root = self._root.resolve()
        path = (root / bucket / key).resolve()
        if not path.is_relative_to(root):
            raise LandingStoreError(f"object {bucket}/{key} resolves outside the landing root")
        try:
            return await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            raise LandingStoreError(f"cannot read {path}: {e}") from e


def build_landing_store(settings: Any) -> LandingStore:
    if settings.LANDING_STORE == "local":
        return LocalLandingStore(settings.LANDING_LOCAL_ROOT, settings.STORAGE_TIMEOUT_SECONDS)
    return OSSLandingStore(
        endpoint=settings.OSS_ENDPOINT,
        access_key_id=settings.OSS_ACCESS_KEY_ID,
        access_key_secret=settings.OSS_ACCESS_KEY_SECRET,
        timeout=settings.STORAGE_TIMEOUT_SECONDS,
    )
