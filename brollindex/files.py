"""Gemini Files API lifecycle: upload, wait for ACTIVE, delete."""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from typing import Any

from google.genai import types

from brollindex.exceptions import FileActivationTimeout, FileProcessingError, UploadError
from brollindex.retry import retry_async
from brollindex.types import VIDEO_MIME_TYPES, AnalysisConfig, RemoteFileHandle

logger = logging.getLogger(__name__)


def mime_type_for(path: str | Path) -> str:
    return VIDEO_MIME_TYPES.get(Path(path).suffix.lower(), "video/mp4")


def _state_name(file: Any) -> str:
    """Normalize ``file.state`` (enum or string) to its bare name."""
    state = getattr(file, "state", None)
    if state is None:
        return "STATE_UNSPECIFIED"
    name = getattr(state, "name", None) or str(state)
    return name.rsplit(".", 1)[-1].upper()


class RemoteFileManager:
    """Upload videos to the provider's file store and release them afterwards.

    Uploaded files expire on the provider side after 48 hours, so a failed
    release only leaves a temporary file behind.

    Args:
        client: A ``google.genai.Client``.
        config: Retry and polling settings.
    """

    def __init__(self, client, config: AnalysisConfig | None = None):
        self.client = client
        self.config = config or AnalysisConfig()

    async def upload(self, video_path: str | Path) -> RemoteFileHandle:
        """Upload *video_path* and wait until the provider marks it ACTIVE.

        The whole upload-then-poll sequence is retried as a unit.

        Raises:
            RetryExhaustedError: When every attempt failed; the message names
                the last underlying cause.
        """
        path = Path(video_path)
        mime_type = mime_type_for(path)
        size_mb = path.stat().st_size / (1024 * 1024)
        logger.info("File: %s (%.1f MB, %s)", path.name, size_mb, mime_type)

        async def _attempt() -> RemoteFileHandle:
            return await self._upload_once(path, mime_type)

        return await retry_async("Upload", _attempt, self.config.upload_retry)

    async def _upload_once(self, path: Path, mime_type: str) -> RemoteFileHandle:
        file = await self.client.aio.files.upload(
            file=str(path),
            config=types.UploadFileConfig(mime_type=mime_type, display_name=path.name),
        )
        error = getattr(file, "error", None)
        if error is not None and _state_name(file) == "FAILED":
            raise UploadError(f"Gemini API error ({getattr(error, 'code', 'unknown')}): {getattr(error, 'message', error)}")
        if not getattr(file, "uri", None) or not getattr(file, "name", None):
            raise UploadError(f"No file URI in upload response for {path.name}")

        await self.wait_until_active(file.name)
        return RemoteFileHandle(file_uri=file.uri, file_name=file.name, mime_type=mime_type)

    async def wait_until_active(self, file_name: str) -> None:
        """Poll the file status every ``poll_interval`` seconds until ACTIVE.

        Raises:
            FileProcessingError: If the provider reports FAILED.
            FileActivationTimeout: If ``poll_timeout`` elapses first.
        """
        deadline = time.monotonic() + self.config.poll_timeout
        while True:
            file = await self.client.aio.files.get(name=file_name)
            state = _state_name(file)
            if state == "ACTIVE":
                return
            if state == "FAILED":
                error = getattr(file, "error", None)
                raise FileProcessingError(f"File processing failed: {getattr(error, 'message', error) or 'unknown error'}")
            if time.monotonic() >= deadline:
                raise FileActivationTimeout("Timed out waiting for video file to be processed")
            logger.debug("File %s is %s; polling again in %.0fs", file_name, state, self.config.poll_interval)
            await asyncio.sleep(self.config.poll_interval)

    async def release(self, handle: RemoteFileHandle | None) -> None:
        """Delete an uploaded file. Failures are logged, never raised."""
        if handle is None:
            return
        try:
            await self.client.aio.files.delete(name=handle.file_name)
        except Exception as e:
            logger.warning("Couldn't delete uploaded file %s: %s", handle.file_name, e)
