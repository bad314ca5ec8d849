from datetime import timedelta

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from herdmentality import db, socketio
from herdmentality.models import Answer, Game, Player, Round, utcnow
from herdmentality.services.game.locks import room_locks
from herdmentality.services.game.sessions import registry


def purge_stale_rooms(max_age_days=None, now=None) -> int:
    """Delete rooms created more than ``max_age_days`` ago.

    Answers, rounds and players go with their room. Each room is deleted
    under its lock so an in-flight operation never sees half a room.
    Returns the number of rooms removed.
    """
    if max_age_days is None:
        max_age_days = int(current_app.config.get('ROOM_RETENTION_DAYS', 7))
    cutoff = (now or utcnow()) - timedelta(days=max_age_days)

    stale_ids = [gid for (gid,) in db.session.query(Game.id).filter(Game.created_at < cutoff).all()]
    if not stale_ids:
        current_app.logger.info('[cleanup] no old games to clean up')
        return 0

    removed = 0
    for game_id in stale_ids:
        with room_locks.hold(game_id):
            try:
                round_ids = db.session.query(Round.id).filter(Round.game_id == game_id)
                Answer.query.filter(Answer.round_id.in_(round_ids.scalar_subquery())).delete(synchronize_session=False)
                Round.query.filter_by(game_id=game_id).delete(synchronize_session=False)
                Player.query.filter_by(game_id=game_id).delete(synchronize_session=False)
                removed += Game.query.filter_by(id=game_id).delete(synchronize_session=False)
                db.session.commit()
            except SQLAlchemyError:
                db.session.rollback()
                current_app.logger.error(f"[cleanup] failed to delete game={game_id}", exc_info=True)
                continue
        registry.drop_room(game_id)
        room_locks.discard(game_id)

    current_app.logger.info(f"[cleanup] removed {removed} old game(s) and related data")
    return removed


def start_retention_sweeper(app) -> None:
    """Sweep once now, then every CLEANUP_INTERVAL_SEC in a background task.

    No-ops in TESTING mode.
    """
    if app.config.get('TESTING'):
        return

    with app.app_context():
        purge_stale_rooms()

    interval = int(app.config.get('CLEANUP_INTERVAL_SEC', 0))
    if interval <= 0:
        return

    def _worker():
        while True:
            socketio.sleep(interval)
            with app.app_context():
                try:
                    purge_stale_rooms()
                except Exception:
                    app.logger.error('[cleanup] sweep failed', exc_info=True)

    app.logger.info(f"[cleanup] sweeping every {interval}s")
    socketio.start_background_task(_worker)
