from fastapi import APIRouter, Depends, HTTPException, Request
from signage.errors import NotFoundError, StorageError, ValidationError
from signage.schemas.player import PlayerIn, PlayerOut, PlayerRenameIn
from signage.services.manifest_store import ManifestStore
from signage.services.registry import PlayerRegistry

router = APIRouter(prefix="/api/players", tags=["players"])


def get_registry(request: Request) -> PlayerRegistry:
    return request.app.state.registry


def get_store(request: Request) -> ManifestStore:
    return request.app.state.store


def _normalize_player_id(value: str) -> str:
    normalized = (value or "").strip()
    if not normalized or normalized in {".", ".."} or any(ch in normalized for ch in ("/", "\\", "\x00")):
        raise HTTPException(status_code=400, detail="Invalid player id")
    return normalized


@router.get("", response_model=list[PlayerOut])
async def list_players(store: ManifestStore = Depends(get_store)):
    return await store.list_players()


@router.post("", response_model=PlayerOut, status_code=201)
def upsert_player(body: PlayerIn, registry: PlayerRegistry = Depends(get_registry)):
    player_id = _normalize_player_id(body.id)
    name = body.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Player name cannot be empty")
    return registry.upsert_player(player_id, name)


@router.put("/{player_id}", response_model=PlayerOut)
def rename_player(player_id: str, body: PlayerRenameIn, registry: PlayerRegistry = Depends(get_registry)):
    name = body.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Player name cannot be empty")
    try:
        return registry.rename_player(player_id, name)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.delete("/{player_id}")
async def delete_player(player_id: str, store: ManifestStore = Depends(get_store)):
    try:
        await store.delete_player(player_id)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except StorageError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return {"ok": True}
