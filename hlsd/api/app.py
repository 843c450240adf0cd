"""
HTTP adapter over the transcode orchestrator.

POST /video      upload a video, start a job, get its id
GET  /status     poll a job; a finished job is reported once, then forgotten
POST /thumbnail  upload an image straight into the content store
"""

import logging
import shutil
import uuid
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, File, HTTPException, Query, UploadFile
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from hlsd.config.models import AppConfig
from hlsd.domain.errors import TranscodeError
from hlsd.domain.models import Done, Failed, InProgress
from hlsd.pipeline.orchestrator import TranscodeOrchestrator

logger = logging.getLogger(__name__)


class VideoStartEncodingResponse(BaseModel):
    """Id under which the upload can be polled."""

    id: str


class VideoEncodingStatusResponse(BaseModel):
    finished: bool
    progress: int = 0
    cid: str = ""
    length: int = 0
    error: str = ""


class ThumbnailUploadResponse(BaseModel):
    cid: str


def _scratch_name(filename: Optional[str], suffix: str = "") -> str:
    extension = Path(filename or "").suffix
    return f"{uuid.uuid4()}{suffix}{extension}"


def _write_upload(upload: UploadFile, destination: Path) -> None:
    destination.parent.mkdir(parents=True, exist_ok=True)
    with open(destination, "wb") as f:
        shutil.copyfileobj(upload.file, f)


def create_app(orchestrator: TranscodeOrchestrator, config: AppConfig) -> FastAPI:
    app = FastAPI(title="hlsd", version="0.1.0")
    scratch_dir = config.storage.scratch_dir

    @app.post("/video", status_code=202, response_model=VideoStartEncodingResponse)
    def upload_video(video: Optional[UploadFile] = File(None)):
        if video is None:
            raise HTTPException(status_code=400, detail="Failed getting video from multipart form data")
        destination = scratch_dir / _scratch_name(video.filename)
        try:
            _write_upload(video, destination)
        except OSError as e:
            logger.error(f"Failed writing video to disk: {e}")
            raise HTTPException(status_code=500, detail="Failed writing video to disk")

        job_id = orchestrator.submit(destination)
        logger.debug(f"Accepted upload {video.filename} as job {job_id}")
        return VideoStartEncodingResponse(id=job_id)

    @app.get("/status", response_model=VideoEncodingStatusResponse)
    def encoding_status(job_id: Optional[str] = Query(None, alias="id")):
        if not job_id:
            raise HTTPException(status_code=400, detail="Param 'id' is missing")
        status = orchestrator.query(job_id)
        logger.debug(f"Returning status for {job_id}: {status.state}")

        if isinstance(status, InProgress):
            body = VideoEncodingStatusResponse(finished=False, progress=status.percentage)
            return JSONResponse(status_code=202, content=body.model_dump())
        if isinstance(status, Done):
            body = VideoEncodingStatusResponse(finished=True, cid=status.content_id, length=status.length)
            return JSONResponse(status_code=201, content=body.model_dump())
        if isinstance(status, Failed):
            body = VideoEncodingStatusResponse(finished=True, error=status.message)
            return JSONResponse(status_code=500, content=body.model_dump())
        raise HTTPException(status_code=404, detail="Specified ID is not transcoding.")

    @app.post("/thumbnail", status_code=201, response_model=ThumbnailUploadResponse)
    def upload_thumbnail(thumbnail: Optional[UploadFile] = File(None)):
        if thumbnail is None:
            raise HTTPException(status_code=400, detail="Failed getting thumbnail from multipart form data")
        destination = scratch_dir / _scratch_name(thumbnail.filename, suffix="-thumbnail")
        try:
            _write_upload(thumbnail, destination)
        except OSError as e:
            logger.error(f"Failed writing thumbnail to disk: {e}")
            raise HTTPException(status_code=500, detail="Failed writing thumbnail to disk")

        try:
            cid = orchestrator.add_thumbnail(destination)
        except TranscodeError as e:
            logger.error(f"Failed adding thumbnail to IPFS: {e}")
            raise HTTPException(status_code=500, detail="Failed adding thumbnail to IPFS")
        return ThumbnailUploadResponse(cid=cid)

    return app
