from __future__ import annotations

import logging
from typing import Any

import requests
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from portfolio.config import settings
from portfolio.enums import VideoStatus, VideoVisibility
from portfolio.tables import utcnow, videos_table

logger = logging.getLogger(__name__)

# Bunny Stream encoding states.
BUNNY_STATUS_MAP = {
    3: VideoStatus.TRANSCODING,
    4: VideoStatus.READY,
    5: VideoStatus.ERROR,
    6: VideoStatus.ERROR,
}


class BunnyStreamError(RuntimeError):
    pass


def map_bunny_status(raw_status: Any) -> VideoStatus:
    try:
        code = int(raw_status)
    except (TypeError, ValueError):
        return VideoStatus.PENDING
    return BUNNY_STATUS_MAP.get(code, VideoStatus.PENDING)


class BunnyStreamClient:
    def __init__(
        self,
        library_id: str,
        api_key: str,
        base_url: str = "https://video.bunnycdn.com",
        timeout: float = 30.0,
    ) -> None:
        self.library_id = library_id
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _url(self, suffix: str = "") -> str:
        return f"{self.base_url}/library/{self.library_id}/videos{suffix}"

    def _headers(self) -> dict[str, str]:
        return {"AccessKey": self.api_key, "Accept": "application/json"}

    def get_video(self, video_id: str) -> dict[str, Any]:
        try:
            response = requests.get(self._url(f"/{video_id}"), headers=self._headers(), timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise BunnyStreamError(f"Bunny Stream error for video {video_id}: {exc}") from exc
        return response.json()

    def create_video(self, title: str) -> dict[str, Any]:
        try:
            response = requests.post(
                self._url(), json={"title": title}, headers=self._headers(), timeout=self.timeout
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            raise BunnyStreamError(f"Bunny Stream video creation failed: {exc}") from exc
        payload = response.json()
        if not payload.get("guid"):
            raise BunnyStreamError("Bunny Stream returned no video guid")
        return payload

    def upload_video_file(self, video_id: str, content: bytes) -> None:
        try:
            response = requests.put(
                self._url(f"/{video_id}"),
                data=content,
                headers={**self._headers(), "Content-Type": "application/octet-stream"},
                timeout=max(self.timeout, 300.0),
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            raise BunnyStreamError(f"Bunny Stream upload failed for video {video_id}: {exc}") from exc

    def delete_video(self, video_id: str) -> None:
        try:
            response = requests.delete(self._url(f"/{video_id}"), headers=self._headers(), timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise BunnyStreamError(f"Bunny Stream delete failed for video {video_id}: {exc}") from exc

    def playback_url(self, video_id: str) -> str:
        return f"https://iframe.mediadelivery.net/embed/{self.library_id}/{video_id}"


def build_bunny_client() -> BunnyStreamClient | None:
    if not (settings.bunny_stream_library_id and settings.bunny_stream_api_key):
        return None
    return BunnyStreamClient(
        library_id=settings.bunny_stream_library_id,
        api_key=settings.bunny_stream_api_key,
        base_url=settings.bunny_stream_base_url,
    )


def check_pending_videos(session: Session, client: BunnyStreamClient) -> dict[str, int]:
    """Refresh the status of pending and transcoding videos from Bunny Stream."""
    rows = session.execute(
        select(videos_table.c.id, videos_table.c.bunny_video_id, videos_table.c.status).where(
            videos_table.c.status.in_([VideoStatus.PENDING.value, VideoStatus.TRANSCODING.value])
        )
    ).mappings().all()
    summary = {"checked": 0, "updated": 0, "failed": 0}
    for row in rows:
        summary["checked"] += 1
        try:
            payload = client.get_video(row["bunny_video_id"])
        except BunnyStreamError:
            logger.exception("Failed to check status of video %s", row["id"])
            summary["failed"] += 1
            continue
        new_status = map_bunny_status(payload.get("status"))
        if new_status.value == row["status"]:
            continue
        values: dict[str, Any] = {"status": new_status.value, "updated_at": utcnow()}
        if new_status is VideoStatus.READY:
            values["visibility"] = VideoVisibility.PUBLIC.value
        session.execute(update(videos_table).where(videos_table.c.id == row["id"]).values(**values))
        summary["updated"] += 1
        logger.info("Video %s status %s -> %s", row["id"], row["status"], new_status.value)
    return summary
