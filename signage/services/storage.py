import logging
import os
import time

from fastapi import UploadFile

from signage.errors import ValidationError
from signage.schemas.media import MediaType

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp", ".gif"}
ALLOWED_VIDEO_EXTENSIONS = {".mp4", ".webm", ".mkv", ".mov"}


class MediaStorage:
    """Physical media files of every player, kept flat in one directory."""

    def __init__(self, upload_dir: str, max_image_bytes: int, max_video_bytes: int) -> None:
        self.upload_dir = upload_dir
        self.max_image_bytes = max_image_bytes
        self.max_video_bytes = max_video_bytes

    def ensure(self) -> None:
        os.makedirs(self.upload_dir, exist_ok=True)

    def path_for(self, filename: str) -> str:
        name = (filename or "").strip()
        if not name or name in {".", ".."} or os.path.basename(name) != name or "\\" in name:
            raise ValidationError(f"Invalid media filename: {filename!r}")
        return os.path.join(self.upload_dir, name)

    def file_exists(self, filename: str) -> bool:
        return os.path.isfile(self.path_for(filename))

    def write_file(self, filename: str, content: bytes) -> str:
        self.ensure()
        path = self.path_for(filename)
        with open(path, "wb") as f:
            f.write(content)
        return path

    def create_file(self, filename: str, content: bytes) -> bool:
        """Write a new file, returning False when the name is already taken."""
        self.ensure()
        path = self.path_for(filename)
        try:
            f = open(path, "xb")
        except FileExistsError:
            return False
        try:
            with f:
                f.write(content)
        except OSError:
            os.remove(path)
            raise
        return True

    def delete_file(self, filename: str) -> bool:
        try:
            os.remove(self.path_for(filename))
        except FileNotFoundError:
            return False
        logger.info("Deleted media file %s", filename)
        return True

    def _validate_extension(self, media_type: MediaType, filename: str) -> None:
        _, ext = os.path.splitext(filename.lower())
        if media_type == MediaType.image and ext not in ALLOWED_IMAGE_EXTENSIONS:
            raise ValidationError("Unsupported image format. Use JPG/JPEG/PNG/WEBP/GIF.")
        if media_type == MediaType.video and ext not in ALLOWED_VIDEO_EXTENSIONS:
            raise ValidationError("Unsupported video format. Use MP4/WEBM/MKV/MOV.")

    def save_upload(self, file: UploadFile, media_type: MediaType) -> str:
        if not media_type.has_file:
            raise ValidationError(f"Media type {media_type.value} does not take a file")
        content = file.file.read()
        if not content:
            raise ValidationError("Empty files cannot be uploaded.")
        original = os.path.basename((file.filename or "upload.bin").replace("\\", "/").strip()) or "upload.bin"
        self._validate_extension(media_type, original)
        size = len(content)
        if media_type == MediaType.image and size > self.max_image_bytes:
            raise ValidationError(f"Image exceeds the {self.max_image_bytes // (1024 * 1024)} MB limit.")
        if media_type == MediaType.video and size > self.max_video_bytes:
            raise ValidationError(f"Video exceeds the {self.max_video_bytes // (1024 * 1024)} MB limit.")
        stem, ext = os.path.splitext(original)
        stem = "".join(ch for ch in stem if ch.isalnum() or ch in {"-", "_", " "}).strip() or "media"
        stamp = int(time.time() * 1000)
        filename = f"{stamp}-{stem}{ext.lower()}"
        counter = 1
        while not self.create_file(filename, content):
            filename = f"{stamp}-{stem}-{counter}{ext.lower()}"
            counter += 1
        logger.info("Stored upload %s (%d bytes)", filename, size)
        return filename
