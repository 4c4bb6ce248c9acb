import asyncio
import contextlib
import json
import logging
import math
import os
import tempfile
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Iterable

from pydantic import ValidationError as SchemaValidationError

from signage.config import DEFAULT_DISPLAY_DURATION_SEC
from signage.errors import NotFoundError, StorageError, ValidationError
from signage.models.player import Player
from signage.schemas.media import MEDIA_TYPE_ALIASES, MediaItem, MediaType
from signage.services.identity import resolve_identity
from signage.services.realtime import LiveSyncBus
from signage.services.registry import PlayerRegistry
from signage.services.storage import MediaStorage

logger = logging.getLogger(__name__)


def parse_media_type(value: MediaType | str | None) -> MediaType:
    if isinstance(value, MediaType):
        return value
    raw = (value or "").strip().lower()
    if raw in MEDIA_TYPE_ALIASES:
        return MEDIA_TYPE_ALIASES[raw]
    for candidate in MediaType:
        if candidate.value.lower() == raw:
            return candidate
    raise ValidationError(f"Unsupported media type: {value!r}")


def coerce_duration(value: Any) -> int:
    """Return a positive display duration, falling back to the default."""
    if value is None or isinstance(value, bool):
        return DEFAULT_DISPLAY_DURATION_SEC
    try:
        duration = value if isinstance(value, int) else int(str(value).strip())
    except ValueError:
        return DEFAULT_DISPLAY_DURATION_SEC
    return duration if duration > 0 else DEFAULT_DISPLAY_DURATION_SEC


def _from_epoch_ms(value: float) -> datetime:
    if math.isnan(value) or math.isinf(value):
        raise ValidationError(f"Invalid expiry timestamp: {value!r}")
    try:
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    except (OverflowError, OSError, ValueError) as exc:
        raise ValidationError(f"Invalid expiry timestamp: {value!r}") from exc


def parse_expiry(value: Any) -> datetime | None:
    """Parse an expiry instant.

    Accepts ISO-8601 text (naive values are read as UTC), datetimes and
    epoch milliseconds. ``None`` and blank text mean "never expires".
    Anything else raises ValidationError.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValidationError(f"Invalid expiry timestamp: {value!r}")
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        parsed = _from_epoch_ms(value)
    else:
        text = str(value).strip()
        if not text:
            return None
        if text.lstrip("-").isdigit():
            parsed = _from_epoch_ms(int(text))
        else:
            try:
                parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
            except ValueError as exc:
                raise ValidationError(f"Invalid expiry timestamp: {value!r}") from exc
    try:
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)
    except (OverflowError, ValueError) as exc:
        raise ValidationError(f"Expiry timestamp out of range: {value!r}") from exc


def _upgrade_legacy_entry(entry: Any) -> Any:
    # Documents written by the first signage server keyed items by
    # "filename" and stored expiry as epoch milliseconds.
    if not isinstance(entry, dict) or "identifier" in entry or "filename" not in entry:
        return entry
    media_type = parse_media_type(entry.get("type"))
    return {
        "identifier": entry.get("filename"),
        "type": media_type,
        "sourceRef": entry.get("reportId") if media_type == MediaType.embedded_report else None,
        "pageName": entry.get("pageName") if media_type == MediaType.embedded_report else None,
        "displayDurationSeconds": coerce_duration(entry.get("displayDuration")),
        "expiresAt": parse_expiry(entry.get("expiresAt")),
    }


class ManifestStore:
    """Ordered media manifests, one JSON document per player.

    Every mutation loads the whole document, computes the new sequence and
    writes the whole sequence back while holding that player's lock, so
    concurrent writers against one player are serialized and writers on
    different players never wait on each other. Documents are replaced
    atomically; readers do not take the lock.

    Adding an item never checks for an existing entry with the same
    identifier: duplicates are kept as separate entries. Removal and expiry
    updates apply to every entry with the identifier.
    """

    def __init__(self, data_dir: str, storage: MediaStorage, registry: PlayerRegistry, bus: LiveSyncBus) -> None:
        self.data_dir = data_dir
        self._storage = storage
        self._registry = registry
        self._bus = bus
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    def ensure(self) -> None:
        os.makedirs(self.data_dir, exist_ok=True)

    def manifest_path(self, player_id: str) -> str:
        if not player_id or player_id in {".", ".."} or any(ch in player_id for ch in ("/", "\\", "\x00")):
            raise ValidationError(f"Invalid player id: {player_id!r}")
        return os.path.join(self.data_dir, f"media_{player_id}.json")

    @contextlib.asynccontextmanager
    async def _player_lock(self, player_id: str) -> AsyncIterator[None]:
        # A player's lock lives only while some coroutine holds or awaits it.
        lock = self._locks.get(player_id)
        if lock is None:
            lock = self._locks[player_id] = asyncio.Lock()
        self._lock_users[player_id] = self._lock_users.get(player_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[player_id] -= 1
            if not self._lock_users[player_id]:
                del self._lock_users[player_id]
                del self._locks[player_id]

    def _load(self, player_id: str) -> list[MediaItem] | None:
        path = self.manifest_path(player_id)
        try:
            with open(path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            logger.exception("Could not read manifest of player %s", player_id)
            raise StorageError(f"Manifest of player {player_id} is unreadable") from exc
        if not isinstance(raw, list):
            raise StorageError(f"Manifest of player {player_id} is not a list")
        try:
            return [MediaItem.model_validate(_upgrade_legacy_entry(entry)) for entry in raw]
        except (SchemaValidationError, ValidationError) as exc:
            logger.exception("Manifest of player %s holds an invalid entry", player_id)
            raise StorageError(f"Manifest of player {player_id} holds an invalid entry") from exc

    def _save(self, player_id: str, items: list[MediaItem]) -> None:
        path = self.manifest_path(player_id)
        self.ensure()
        fd, tmp_path = tempfile.mkstemp(dir=self.data_dir, prefix=f".media_{player_id}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump([item.to_document() for item in items], f, indent=2)
            os.replace(tmp_path, path)
        except Exception as exc:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            if isinstance(exc, OSError):
                logger.exception("Could not write manifest of player %s", player_id)
                raise StorageError(f"Manifest of player {player_id} could not be written") from exc
            raise

    def _delete_document(self, player_id: str) -> None:
        try:
            os.remove(self.manifest_path(player_id))
        except FileNotFoundError:
            pass
        except OSError as exc:
            raise StorageError(f"Manifest of player {player_id} could not be deleted") from exc

    async def _release_files(self, dropped: Iterable[MediaItem], remaining: Iterable[MediaItem]) -> None:
        still_used = {item.identifier for item in remaining if item.type.has_file}
        filenames = {item.identifier for item in dropped if item.type.has_file} - still_used
        for filename in sorted(filenames):
            try:
                await asyncio.to_thread(self._storage.delete_file, filename)
            except ValidationError:
                logger.warning("Skipping file removal for unsafe identifier %r", filename)
            except OSError:
                logger.exception("Could not delete media file %s", filename)

    async def list_players(self) -> list[Player]:
        return await asyncio.to_thread(self._registry.list_players)

    async def get_manifest(self, player_id: str) -> list[MediaItem]:
        items = await asyncio.to_thread(self._load, player_id)
        return items or []

    async def add_item(
        self,
        player_id: str,
        media_type: MediaType | str,
        raw_ref: str | None,
        page_name: str | None = None,
        display_duration: Any = None,
        expires_at: Any = None,
    ) -> MediaItem:
        self.manifest_path(player_id)
        kind = parse_media_type(media_type)
        identity = resolve_identity(kind, raw_ref, page_name)
        if not identity.identifier:
            raise ValidationError("Media identifier cannot be empty")
        item = MediaItem(
            identifier=identity.identifier,
            type=kind,
            source_ref=identity.source_ref,
            page_name=identity.page_name,
            display_duration_seconds=coerce_duration(display_duration),
            expires_at=parse_expiry(expires_at),
        )
        async with self._player_lock(player_id):
            items = await asyncio.to_thread(self._load, player_id) or []
            items.append(item)
            await asyncio.to_thread(self._save, player_id, items)
        logger.info("Added %s %s to player %s", kind.value, item.identifier, player_id)
        await self._bus.publish(player_id)
        return item

    async def remove_item(self, player_id: str, identifier: str) -> list[MediaItem]:
        async with self._player_lock(player_id):
            items = await asyncio.to_thread(self._load, player_id)
            if items is None:
                raise NotFoundError(f"No manifest for player {player_id}")
            removed = [item for item in items if item.identifier == identifier]
            kept = [item for item in items if item.identifier != identifier]
            await asyncio.to_thread(self._save, player_id, kept)
            await self._release_files(removed, kept)
        logger.info("Removed %d entries %s from player %s", len(removed), identifier, player_id)
        await self._bus.publish(player_id)
        return kept

    async def reorder(self, player_id: str, ordered_identifiers: Iterable[str]) -> list[MediaItem]:
        """Rebuild the manifest in the requested order.

        Unknown identifiers are skipped and entries left out of the request
        are dropped, files included.
        """
        async with self._player_lock(player_id):
            items = await asyncio.to_thread(self._load, player_id)
            if items is None:
                return []
            by_identifier: dict[str, MediaItem] = {}
            for item in items:
                by_identifier.setdefault(item.identifier, item)
            seen: set[str] = set()
            reordered: list[MediaItem] = []
            for identifier in ordered_identifiers:
                if identifier in seen or identifier not in by_identifier:
                    continue
                seen.add(identifier)
                reordered.append(by_identifier[identifier])
            kept_ids = {id(item) for item in reordered}
            dropped = [item for item in items if id(item) not in kept_ids]
            await asyncio.to_thread(self._save, player_id, reordered)
            await self._release_files(dropped, reordered)
        logger.info("Reordered player %s (%d kept, %d dropped)", player_id, len(reordered), len(dropped))
        await self._bus.publish(player_id)
        return reordered

    async def update_expiry(self, player_id: str, identifier: str, new_expiry: Any) -> MediaItem:
        """Set the expiry of the matching entries; ``None`` or blank clears it."""
        expires_at = parse_expiry(new_expiry)
        async with self._player_lock(player_id):
            items = await asyncio.to_thread(self._load, player_id)
            if items is None:
                raise NotFoundError(f"No manifest for player {player_id}")
            updated: MediaItem | None = None
            for index, item in enumerate(items):
                if item.identifier == identifier:
                    items[index] = item.model_copy(update={"expires_at": expires_at})
                    updated = updated or items[index]
            if updated is None:
                raise NotFoundError(f"Media {identifier} not found for player {player_id}")
            await asyncio.to_thread(self._save, player_id, items)
        logger.info("Updated expiry of %s on player %s", identifier, player_id)
        await self._bus.publish(player_id)
        return updated

    async def delete_player(self, player_id: str) -> None:
        self.manifest_path(player_id)
        await asyncio.to_thread(self._registry.delete_player, player_id)
        async with self._player_lock(player_id):
            items = await asyncio.to_thread(self._load, player_id)
            if items is not None:
                await asyncio.to_thread(self._delete_document, player_id)
                await self._release_files(items, [])
        if items is not None:
            logger.info("Deleted player %s with %d media entries", player_id, len(items))
            await self._bus.publish(player_id)
