"""
Media storage and the video publishing workflow.

Raw files go to a bucket-style object store over HTTP; the resulting public
urls are what the Video row stores. Publishing validates the inputs, uploads
the assets and then hands a VideoDraft to the session's upload_video.
"""
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Protocol

import httpx

from tutorhub.core.config import settings
from tutorhub.core.errors import AuthorizationError, MediaUploadError, NotProvisionedError, ValidationError
from tutorhub.schemas import Role, Video, VideoDraft

logger = logging.getLogger(__name__)

VIDEO_BUCKET = "videos"
THUMBNAIL_BUCKET = "thumbnails"

CATEGORIES = ("Programming", "Design", "Business", "Science", "Language", "Other")


@dataclass(slots=True)
class MediaFile:
    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def extension(self) -> str:
        if "." in self.filename:
            return self.filename.rsplit(".", 1)[-1]
        return self.content_type.split("/", 1)[-1].split(";", 1)[0]


class MediaUploader(Protocol):
    async def upload_media(self, file: MediaFile, owner_id: str, bucket: str = VIDEO_BUCKET) -> str:
        """Store ``file`` for ``owner_id`` and return its public url."""
        ...


DurationProbe = Callable[[MediaFile], Awaitable[int]]
Thumbnailer = Callable[[MediaFile], Awaitable[MediaFile]]


def object_path(file: MediaFile, owner_id: str) -> str:
    return f"{owner_id}/{int(time.time() * 1000)}.{file.extension}"


class StorageMediaUploader:
    """Uploads to a storage REST API (``/storage/v1/object/<bucket>/<path>``)."""

    def __init__(
        self,
        base_url: str = settings.STORAGE_URL,
        api_key: str = settings.STORAGE_API_KEY,
        timeout: float = settings.STORAGE_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    def public_url(self, bucket: str, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{bucket}/{path}"

    async def upload_media(self, file: MediaFile, owner_id: str, bucket: str = VIDEO_BUCKET) -> str:
        path = object_path(file, owner_id)
        headers = {
            "Content-Type": file.content_type,
            "cache-control": "max-age=3600",
            "x-upsert": "false",
        }
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    f"{self.base_url}/storage/v1/object/{bucket}/{path}",
                    content=file.data,
                    headers=headers,
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Upload of {file.filename} to {bucket} failed: {e}")
            raise MediaUploadError(f"Could not upload {file.filename}") from e

        logger.info(f"Uploaded {file.filename} ({file.size} bytes) to {bucket}/{path}")
        return self.public_url(bucket, path)


# ── Validation ─────────────────────────────────────────────────────────────

def validate_video_file(file: MediaFile):
    if not file.content_type.startswith("video/"):
        raise ValidationError("Please select a valid video file")
    if file.size > settings.MAX_VIDEO_BYTES:
        raise ValidationError(f"Video file size must be less than {settings.MAX_VIDEO_BYTES // (1024 * 1024)}MB")


def validate_thumbnail_file(file: MediaFile):
    if not file.content_type.startswith("image/"):
        raise ValidationError("Please select a valid image file for thumbnail")
    if file.size > settings.MAX_THUMBNAIL_BYTES:
        raise ValidationError(
            f"Thumbnail file size must be less than {settings.MAX_THUMBNAIL_BYTES // (1024 * 1024)}MB"
        )


def parse_tags(raw: str | list[str]) -> list[str]:
    """Split a comma separated tag string, dropping blanks."""
    parts = raw.split(",") if isinstance(raw, str) else raw
    return [tag.strip() for tag in parts if tag and tag.strip()]


# ── Publishing ─────────────────────────────────────────────────────────────

async def publish_video(
    session,
    uploader: MediaUploader,
    *,
    title: str,
    description: str,
    video_file: MediaFile,
    category: str = "Programming",
    tags: str | list[str] = "",
    thumbnail_file: MediaFile | None = None,
    probe: DurationProbe | None = None,
    thumbnailer: Thumbnailer | None = None,
) -> Video:
    """Validate, upload the assets, then create the Video through the session.

    Nothing is uploaded unless the caller is a provisioned tutor and every
    input is valid. A failed duration probe falls back to the configured
    default. Without a thumbnail file one is generated from the video when a
    thumbnailer is given; if that fails or none is given the default
    thumbnail url is used.
    """
    profile = session.profile
    if profile is None:
        raise NotProvisionedError()
    if profile.role != Role.TUTOR:
        raise AuthorizationError("Only tutors can upload videos")

    title = title.strip()
    description = description.strip()
    if not title or not description:
        raise ValidationError("Please fill in all required fields")
    if category not in CATEGORIES:
        raise ValidationError(f"Unknown category: {category}")
    validate_video_file(video_file)
    if thumbnail_file is not None:
        validate_thumbnail_file(thumbnail_file)

    duration = 0
    if probe is not None:
        try:
            duration = int(round(await probe(video_file)))
        except (MediaUploadError, ValueError) as e:
            logger.warning(f"Could not get duration of {video_file.filename}: {e}")

    if thumbnail_file is None and thumbnailer is not None:
        try:
            thumbnail_file = await thumbnailer(video_file)
            validate_thumbnail_file(thumbnail_file)
        except (MediaUploadError, ValidationError, ValueError) as e:
            logger.warning(f"Could not generate thumbnail for {video_file.filename}: {e}")
            thumbnail_file = None

    video_url = await uploader.upload_media(video_file, profile.external_id, VIDEO_BUCKET)
    if thumbnail_file is not None:
        thumbnail_url = await uploader.upload_media(thumbnail_file, profile.external_id, THUMBNAIL_BUCKET)
    else:
        thumbnail_url = settings.DEFAULT_THUMBNAIL_URL

    draft = VideoDraft(
        title=title,
        description=description,
        category=category,
        tags=parse_tags(tags),
        thumbnail_url=thumbnail_url,
        media_url=video_url,
        duration_seconds=duration or settings.DEFAULT_DURATION_SECONDS,
    )
    return await session.upload_video(draft)
