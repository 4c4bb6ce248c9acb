from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile
from signage.errors import ManifestError, NotFoundError, StorageError, ValidationError
from signage.schemas.media import ExpiryUpdateIn, ReorderIn
from signage.services.ingestion import ingest_media
from signage.services.manifest_store import ManifestStore
from signage.services.storage import MediaStorage

router = APIRouter(prefix="/api/media", tags=["media"])


def get_store(request: Request) -> ManifestStore:
    return request.app.state.store


def get_storage(request: Request) -> MediaStorage:
    return request.app.state.storage


def _http_error(exc: ManifestError) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, StorageError):
        return HTTPException(status_code=500, detail=str(exc))
    return HTTPException(status_code=500, detail="Manifest operation failed")


@router.get("/{player_id}")
async def get_manifest(player_id: str, store: ManifestStore = Depends(get_store)):
    try:
        items = await store.get_manifest(player_id)
    except ManifestError as exc:
        raise _http_error(exc) from exc
    return [item.to_document() for item in items]


@router.post("/{player_id}")
async def add_media(
    player_id: str,
    type: str = Form(...),
    file: UploadFile | None = File(None),
    url: str | None = Form(None),
    page_name: str | None = Form(None, alias="pageName"),
    display_duration: str | None = Form(None, alias="displayDuration"),
    expiration: str | None = Form(None, alias="expirationDateTime"),
    store: ManifestStore = Depends(get_store),
    storage: MediaStorage = Depends(get_storage),
):
    try:
        item = await ingest_media(
            store,
            storage,
            player_id,
            type,
            upload=file,
            url=url,
            page_name=page_name,
            display_duration=display_duration,
            expiration=expiration,
        )
    except ManifestError as exc:
        raise _http_error(exc) from exc
    return item.to_document()


@router.post("/{player_id}/reorder")
async def reorder_media(player_id: str, body: ReorderIn, store: ManifestStore = Depends(get_store)):
    try:
        items = await store.reorder(player_id, body.ordered_identifiers)
    except ManifestError as exc:
        raise _http_error(exc) from exc
    return [item.to_document() for item in items]


@router.post("/{player_id}/expiry")
async def update_expiry(player_id: str, body: ExpiryUpdateIn, store: ManifestStore = Depends(get_store)):
    try:
        item = await store.update_expiry(player_id, body.identifier, body.new_expiry)
    except ManifestError as exc:
        raise _http_error(exc) from exc
    return item.to_document()


@router.delete("/{player_id}/{identifier:path}")
async def delete_media(player_id: str, identifier: str, store: ManifestStore = Depends(get_store)):
    try:
        await store.remove_item(player_id, identifier)
    except ManifestError as exc:
        raise _http_error(exc) from exc
    return {"ok": True}
