import logging

from sqlalchemy.orm import Session, sessionmaker

from signage.errors import NotFoundError
from signage.models.player import Player

logger = logging.getLogger(__name__)


class PlayerRegistry:
    """Id/name list of the displays known to the service."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def _session(self) -> Session:
        return self._session_factory()

    def list_players(self) -> list[Player]:
        db = self._session()
        try:
            return db.query(Player).order_by(Player.name.asc(), Player.id.asc()).all()
        finally:
            db.close()

    def get_player(self, player_id: str) -> Player | None:
        db = self._session()
        try:
            return db.get(Player, player_id)
        finally:
            db.close()

    def upsert_player(self, player_id: str, name: str) -> Player:
        db = self._session()
        try:
            player = db.get(Player, player_id)
            if player is None:
                player = Player(id=player_id, name=name)
                db.add(player)
                logger.info("Registered player %s", player_id)
            else:
                player.name = name
            db.commit()
            db.refresh(player)
            return player
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def rename_player(self, player_id: str, name: str) -> Player:
        db = self._session()
        try:
            player = db.get(Player, player_id)
            if player is None:
                raise NotFoundError(f"Player {player_id} not found")
            player.name = name
            db.commit()
            db.refresh(player)
            return player
        finally:
            db.close()

    def delete_player(self, player_id: str) -> bool:
        db = self._session()
        try:
            deleted = db.query(Player).filter(Player.id == player_id).delete(synchronize_session=False)
            db.commit()
            return bool(deleted)
        finally:
            db.close()
