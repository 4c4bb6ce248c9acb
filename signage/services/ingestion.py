import asyncio
import logging
from typing import Any

from fastapi import UploadFile

from signage.errors import ValidationError
from signage.schemas.media import MediaItem
from signage.services.manifest_store import ManifestStore, parse_media_type
from signage.services.storage import MediaStorage

logger = logging.getLogger(__name__)


async def ingest_media(
    store: ManifestStore,
    storage: MediaStorage,
    player_id: str,
    media_type: str,
    upload: UploadFile | None = None,
    url: str | None = None,
    page_name: str | None = None,
    display_duration: Any = None,
    expiration: Any = None,
) -> MediaItem:
    """Store an upload (or take a URL) and append it to the player's manifest."""
    kind = parse_media_type(media_type)
    stored_filename: str | None = None
    if kind.has_file:
        if upload is None:
            raise ValidationError(f"A file is required for {kind.value} media")
        stored_filename = await asyncio.to_thread(storage.save_upload, upload, kind)
        raw_ref = stored_filename
    else:
        raw_ref = url

    try:
        return await store.add_item(
            player_id,
            kind,
            raw_ref,
            page_name=page_name,
            display_duration=display_duration,
            expires_at=expiration,
        )
    except Exception:
        if stored_filename:
            logger.info("Discarding %s after rejected ingestion", stored_filename)
            await asyncio.to_thread(storage.delete_file, stored_filename)
        raise
