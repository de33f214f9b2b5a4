import asyncio
import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from sqlalchemy import delete, insert, select, update
from sqlalchemy.orm import Session

from portfolio.auth import require_admin
from portfolio.deps import check_exists, db_session_dependency, fetch_or_404, not_found, validation_error
from portfolio.enums import VideoStatus
from portfolio.jobs.broker import dispatch
from portfolio.jobs.tasks import optimize_picture
from portfolio.schemas import VideoIn, VideoOut
from portfolio.services import pictures, videos
from portfolio.tables import pictures_table, utcnow, videos_table

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/dashboard/api", tags=["media"], dependencies=[Depends(require_admin)])

MAX_UPLOAD_BYTES = 50 * 1024 * 1024
ALLOWED_IMAGE_PREFIX = "image/"


# Pictures


@router.get("/pictures")
async def list_pictures(session: Session = Depends(db_session_dependency)) -> List[Dict[str, Any]]:
    ids = session.execute(select(pictures_table.c.id).order_by(pictures_table.c.id.desc())).scalars().all()
    serialized = pictures.serialize_pictures(session, list(ids))
    return [serialized[picture_id] for picture_id in ids]


@router.post("/pictures", status_code=status.HTTP_201_CREATED)
async def upload_picture(
    file: UploadFile = File(...),
    session: Session = Depends(db_session_dependency),
) -> Dict[str, Any]:
    if file.content_type and not file.content_type.startswith(ALLOWED_IMAGE_PREFIX):
        raise validation_error({"file": ["The file must be an image."]})
    content = await file.read()
    if not content:
        raise validation_error({"file": ["The file field is required."]})
    if len(content) > MAX_UPLOAD_BYTES:
        raise validation_error({"file": ["The file may not be greater than 50 MB."]})
    picture = pictures.store_picture(session, file.filename or "upload", content)
    session.commit()
    await dispatch(optimize_picture, picture["id"])
    return pictures.serialize_pictures(session, [picture["id"]])[picture["id"]]


@router.get("/pictures/{picture_id}")
async def show_picture(picture_id: int, session: Session = Depends(db_session_dependency)) -> Dict[str, Any]:
    serialized = pictures.serialize_pictures(session, [picture_id])
    if picture_id not in serialized:
        raise not_found("Picture not found")
    return serialized[picture_id]


@router.delete("/pictures/{picture_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_picture(picture_id: int, session: Session = Depends(db_session_dependency)) -> None:
    if not pictures.delete_picture(session, picture_id):
        raise not_found("Picture not found")


# Videos


def _video_errors(session: Session, payload: VideoIn) -> Dict[str, List[str]]:
    errors: Dict[str, List[str]] = {}
    check_exists(session, errors, pictures_table, "cover_picture_id", payload.cover_picture_id)
    return errors


def _playback_path(bunny_video_id: str) -> str:
    client = videos.build_bunny_client()
    return client.playback_url(bunny_video_id) if client is not None else bunny_video_id


@router.get("/videos", response_model=List[VideoOut])
async def list_videos(session: Session = Depends(db_session_dependency)) -> List[Dict[str, Any]]:
    rows = session.execute(select(videos_table).order_by(videos_table.c.id.desc())).mappings().all()
    return [dict(row) for row in rows]


@router.post("/videos", response_model=VideoOut, status_code=status.HTTP_201_CREATED)
async def create_video(payload: VideoIn, session: Session = Depends(db_session_dependency)) -> Dict[str, Any]:
    errors = _video_errors(session, payload)
    if errors:
        raise validation_error(errors)
    row = session.execute(
        insert(videos_table)
        .values(
            name=payload.name,
            bunny_video_id=payload.bunny_video_id,
            path=_playback_path(payload.bunny_video_id),
            cover_picture_id=payload.cover_picture_id,
            visibility=payload.visibility.value,
            status=VideoStatus.PENDING.value,
        )
        .returning(*videos_table.c)
    ).mappings().one()
    return dict(row)


@router.post("/videos/upload", response_model=VideoOut, status_code=status.HTTP_201_CREATED)
async def upload_video(
    name: str = Form(...),
    file: UploadFile = File(...),
    session: Session = Depends(db_session_dependency),
) -> Dict[str, Any]:
    client = videos.build_bunny_client()
    if client is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Video hosting is not configured",
        )
    content = await file.read()
    if not content:
        raise validation_error({"file": ["The file field is required."]})
    try:
        created = await asyncio.to_thread(client.create_video, name)
        await asyncio.to_thread(client.upload_video_file, created["guid"], content)
    except videos.BunnyStreamError as exc:
        logger.exception("Video upload failed")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from None
    row = session.execute(
        insert(videos_table)
        .values(
            name=name,
            bunny_video_id=created["guid"],
            path=client.playback_url(created["guid"]),
            file_size=len(content),
            status=VideoStatus.PENDING.value,
        )
        .returning(*videos_table.c)
    ).mappings().one()
    return dict(row)


@router.get("/videos/{video_id}", response_model=VideoOut)
async def show_video(video_id: int, session: Session = Depends(db_session_dependency)) -> Dict[str, Any]:
    return fetch_or_404(session, videos_table, video_id, "Video not found")


@router.put("/videos/{video_id}", response_model=VideoOut)
async def update_video(
    video_id: int,
    payload: VideoIn,
    session: Session = Depends(db_session_dependency),
) -> Dict[str, Any]:
    current = fetch_or_404(session, videos_table, video_id, "Video not found")
    errors = _video_errors(session, payload)
    if errors:
        raise validation_error(errors)
    values: Dict[str, Any] = {
        "name": payload.name,
        "cover_picture_id": payload.cover_picture_id,
        "visibility": payload.visibility.value,
        "updated_at": utcnow(),
    }
    if payload.bunny_video_id != current["bunny_video_id"]:
        values["bunny_video_id"] = payload.bunny_video_id
        values["path"] = _playback_path(payload.bunny_video_id)
        values["status"] = VideoStatus.PENDING.value
    row = session.execute(
        update(videos_table).where(videos_table.c.id == video_id).values(**values).returning(*videos_table.c)
    ).mappings().one()
    return dict(row)


@router.delete("/videos/{video_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_video(video_id: int, session: Session = Depends(db_session_dependency)) -> None:
    video = fetch_or_404(session, videos_table, video_id, "Video not found")
    client = videos.build_bunny_client()
    if client is not None:
        try:
            await asyncio.to_thread(client.delete_video, video["bunny_video_id"])
        except videos.BunnyStreamError:
            logger.warning("Could not delete video %s from Bunny Stream", video["bunny_video_id"])
    session.execute(delete(videos_table).where(videos_table.c.id == video_id))
