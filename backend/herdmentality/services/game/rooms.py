"""Room state machine.

Every operation here runs under the room's lock and inside one database
transaction, and is the only code that mutates games, rounds, players and
answers. Operations return an ``Outcome`` listing the events to send back to
the caller and the events to broadcast to the room; payloads are built
before the room lock is released.

Lifecycle: waiting -> in-progress -> completed. A round closes exactly once:
the answer counter is bumped with an atomic UPDATE and the round row flips
from collecting-answers to completed with a compare-and-set, so only one
submission can run the tally.
"""
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from flask import current_app
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from herdmentality import db
from herdmentality.models import (
    COLLECTING, COMPLETED, IN_PROGRESS, ROUND_COMPLETED, WAITING,
    Answer, Game, Player, Round, generate_room_code, utcnow,
)
from herdmentality.services.game.errors import (
    AllocationExhausted, AlreadyConnected, BadRequest, DuplicateSubmission, GameInProgress,
    InvalidState, NameTaken, NotFound, Unauthorized, UnknownPlayer,
)
from herdmentality.services.game.locks import room_locks
from herdmentality.services.game.normalizer import normalize_answer
from herdmentality.services.game.prompts import pick_next_prompt
from herdmentality.services.game.scoring import (
    DEFAULT_WIN_SCORE, RoundTally, SubmittedAnswer, find_winner, next_token_holder, tally_answers,
)


@dataclass
class Event:
    name: str
    payload: Dict[str, Any]


@dataclass
class Outcome:
    room_id: Optional[int] = None
    player_id: Optional[int] = None
    reply: List[Event] = field(default_factory=list)
    broadcast: List[Event] = field(default_factory=list)
    # Events for one specific connection other than the caller
    direct: List[Tuple[str, Event]] = field(default_factory=list)
    released_sid: Optional[str] = None

    def send(self, name, payload):
        self.reply.append(Event(name, payload))

    def announce(self, name, payload):
        self.broadcast.append(Event(name, payload))


@dataclass
class RoundClose:
    round_number: int
    tally: RoundTally
    token_holder_id: Optional[int]
    winner_id: Optional[int]


# ----------------------------
# Helpers
# ----------------------------

@contextmanager
def _locked(room_id):
    with room_locks.hold(room_id):
        # Objects loaded before the lock may be stale
        db.session.expire_all()
        try:
            yield
        except Exception:
            db.session.rollback()
            raise


def _config(key, default):
    try:
        return current_app.config.get(key, default)
    except RuntimeError:
        return default


def _clean_name(display_name):
    name = (display_name or '').strip() if isinstance(display_name, str) else ''
    if not name:
        raise BadRequest('displayName is required')
    max_len = int(_config('MAX_DISPLAY_NAME_LENGTH', 32))
    if len(name) > max_len:
        raise BadRequest(f'displayName must be at most {max_len} characters')
    return name


def _load_game(room_id) -> Game:
    game = db.session.execute(
        select(Game).where(Game.id == room_id).with_for_update().execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if game is None:
        raise NotFound()
    return game


def _find_game_id(room_code) -> int:
    code = (room_code or '').strip().upper() if isinstance(room_code, str) else ''
    if not code:
        raise BadRequest('roomCode is required')
    game_id = db.session.execute(select(Game.id).where(Game.room_code == code)).scalar_one_or_none()
    if game_id is None:
        raise NotFound()
    return game_id


def _existing_game_id(room_id) -> int:
    """Check a client-supplied room id before a lock is created for it."""
    game_id = db.session.execute(select(Game.id).where(Game.id == room_id)).scalar_one_or_none()
    if game_id is None:
        raise NotFound()
    return game_id


def _require_host(game: Game, player_id) -> Player:
    player = db.session.get(Player, player_id) if player_id is not None else None
    if player is None or player.game_id != game.id or not player.is_host:
        raise Unauthorized()
    return player


def _current_round(game: Game) -> Optional[Round]:
    if not game.current_round:
        return None
    return Round.query.filter_by(game_id=game.id, round_number=game.current_round).first()


def _players(game_id) -> List[Player]:
    return Player.query.filter_by(game_id=game_id).order_by(Player.id).all()


def _connected_count(game_id) -> int:
    return db.session.execute(
        select(func.count(Player.id)).where(Player.game_id == game_id, Player.connected.is_(True))
    ).scalar_one()


def _connected_answered(round_id) -> int:
    """Answers in this round from players who are still connected."""
    return db.session.execute(
        select(func.count(Answer.id))
        .join(Player, Player.id == Answer.player_id)
        .where(Answer.round_id == round_id, Player.connected.is_(True))
    ).scalar_one()


def _everyone_answered(game: Game, rnd: Round) -> bool:
    # Answers from players who since left do not stand in for the ones still here
    answered = _connected_answered(rnd.id)
    return answered > 0 and answered >= _connected_count(game.id)


def _players_payload(game_id):
    return [p.to_dict() for p in _players(game_id)]


def _submitted(round_id) -> List[SubmittedAnswer]:
    rows = (
        db.session.query(Answer, Player.display_name)
        .join(Player, Player.id == Answer.player_id)
        .filter(Answer.round_id == round_id)
        .order_by(Answer.id)
        .all()
    )
    return [
        SubmittedAnswer(
            player_id=a.player_id,
            display_name=name,
            original_text=a.original_text,
            normalized_text=a.normalized_text,
        )
        for a, name in rows
    ]


def room_state(game: Game, player: Optional[Player] = None) -> Dict[str, Any]:
    """Everything a client needs to render the room as it is right now."""
    rnd = _current_round(game)
    state = {
        'roomId': game.id,
        'roomCode': game.room_code,
        'status': game.status,
        'hostPlayerId': game.host_player_id,
        'roundNumber': game.current_round,
        'prompt': game.current_prompt,
        'tokenHolder': game.token_holder_id,
        'answeredCount': game.players_answered,
        'connectedCount': _connected_count(game.id),
        'winner': game.winner_id,
        'roundStatus': rnd.status if rnd else None,
        'players': _players_payload(game.id),
    }
    if player is not None:
        state['playerId'] = player.id
        state['hasAnswered'] = bool(
            rnd and Answer.query.filter_by(round_id=rnd.id, player_id=player.id).first()
        )
    # A client landing between round close and the next round must see results
    if rnd is not None and rnd.status == ROUND_COMPLETED:
        tally = tally_answers(_submitted(rnd.id))
        if tally is not None:
            state['roundResults'] = tally.to_dict()
    return state


# ----------------------------
# Round closing
# ----------------------------

def _increment_answered(game: Game) -> int:
    db.session.execute(
        update(Game)
        .where(Game.id == game.id)
        .values(players_answered=Game.players_answered + 1)
        .execution_options(synchronize_session=False)
    )
    db.session.expire(game, ['players_answered'])
    return db.session.execute(select(Game.players_answered).where(Game.id == game.id)).scalar_one()


def _close_round(game: Game, rnd: Round) -> Optional[RoundClose]:
    claimed = db.session.execute(
        update(Round)
        .where(Round.id == rnd.id, Round.status == COLLECTING)
        .values(status=ROUND_COMPLETED, completed_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if claimed.rowcount != 1:
        return None

    tally = tally_answers(_submitted(rnd.id))
    if tally is None:
        tally = RoundTally(majority_answer=None, unique_player_id=None)
    holder = next_token_holder(game.token_holder_id, tally.unique_player_id)

    if tally.scoring_player_ids:
        db.session.execute(
            update(Player)
            .where(Player.id.in_(tally.scoring_player_ids))
            .values(score=Player.score + 1)
            .execution_options(synchronize_session=False)
        )
    db.session.execute(
        update(Round)
        .where(Round.id == rnd.id)
        .values(majority_answer=tally.majority_answer, unique_player_id=tally.unique_player_id)
        .execution_options(synchronize_session=False)
    )
    if game.token_holder_id != holder:
        game.token_holder_id = holder
    game.players_answered = 0
    db.session.flush()
    # Scores were bumped in SQL
    db.session.expire_all()

    threshold = int(_config('WIN_SCORE', DEFAULT_WIN_SCORE))
    winner = find_winner(_players(game.id), holder, threshold)
    if winner is not None:
        game.status = COMPLETED
        game.winner_id = winner.id
    return RoundClose(
        round_number=rnd.round_number,
        tally=tally,
        token_holder_id=holder,
        winner_id=winner.id if winner is not None else None,
    )


def _close_if_everyone_left(game: Game) -> Optional[RoundClose]:
    """Re-run the closing test after a connected player went away."""
    if game.status != IN_PROGRESS:
        return None
    rnd = _current_round(game)
    if rnd is None or rnd.status != COLLECTING:
        return None
    db.session.flush()
    if _everyone_answered(game, rnd):
        return _close_round(game, rnd)
    return None


def _announce_close(outcome: Outcome, game: Game, closed: RoundClose) -> None:
    players = _players_payload(game.id)
    outcome.announce('round_completed', {
        'roundNumber': closed.round_number,
        'results': closed.tally.to_dict(),
        'tokenHolder': closed.token_holder_id,
        'players': players,
    })
    if closed.winner_id is not None:
        winner = db.session.get(Player, closed.winner_id)
        outcome.announce('game_completed', {
            'winner': winner.to_dict() if winner else None,
            'players': players,
        })


# ----------------------------
# Operations
# ----------------------------

def create_room(display_name, sid=None) -> Outcome:
    name = _clean_name(display_name)
    attempts = int(_config('ROOM_CODE_MAX_ATTEMPTS', 50))
    for _ in range(attempts):
        code = generate_room_code(
            length=int(_config('ROOM_CODE_LENGTH', 6)),
            alphabet=_config('ROOM_CODE_ALPHABET', 'ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789'),
            max_attempts=attempts,
        )
        game = Game(room_code=code, status=WAITING)
        try:
            db.session.add(game)
            db.session.flush()
            host = Player(game_id=game.id, display_name=name, is_host=True, connected=True, sid=sid)
            db.session.add(host)
            db.session.flush()
            game.host_player_id = host.id
            db.session.commit()
        except IntegrityError:
            # Another process took the code between the check and the insert
            db.session.rollback()
            continue
        current_app.logger.info(f"[room-created] room={game.id} code={code} host={host.id}")
        outcome = Outcome(room_id=game.id, player_id=host.id)
        outcome.send('game_created', {'roomId': game.id, 'roomCode': code, 'playerId': host.id})
        return outcome
    raise AllocationExhausted()


def join_room(room_code, display_name, sid=None) -> Outcome:
    name = _clean_name(display_name)
    room_id = _find_game_id(room_code)
    with _locked(room_id):
        game = _load_game(room_id)
        player = Player.query.filter_by(game_id=game.id, display_name=name).first()
        if player is None and game.status != WAITING:
            raise GameInProgress()
        if player is not None and player.connected:
            raise NameTaken()

        returning = player is not None
        if returning:
            reattached = db.session.execute(
                update(Player)
                .where(Player.id == player.id, Player.connected.is_(False))
                .values(connected=True, sid=sid)
                .execution_options(synchronize_session=False)
            )
            if reattached.rowcount != 1:
                raise NameTaken()
            db.session.expire(player)
        else:
            player = Player(game_id=game.id, display_name=name, is_host=False, connected=True, sid=sid)
            db.session.add(player)
            try:
                db.session.flush()
            except IntegrityError:
                raise NameTaken()
        db.session.commit()

        current_app.logger.info(
            f"[player-joined] room={game.id} player={player.id} returning={returning}"
        )
        outcome = Outcome(room_id=game.id, player_id=player.id)
        state = room_state(game, player)
        state['isReconnected'] = returning
        outcome.send('game_joined', state)
        outcome.announce('players_updated', {'players': state['players']})
        return outcome


def rejoin_room(room_id, room_code, display_name, sid=None) -> Outcome:
    """Reconnect a disconnected player under a new connection."""
    name = _clean_name(display_name)
    if room_id is None:
        room_id = _find_game_id(room_code)
    else:
        room_id = _existing_game_id(room_id)
    with _locked(room_id):
        game = _load_game(room_id)
        if room_code and game.room_code != str(room_code).strip().upper():
            raise NotFound()
        player = Player.query.filter_by(game_id=game.id, display_name=name).first()
        if player is None:
            raise UnknownPlayer()
        # Only a disconnected player can be claimed, so two connections never share one
        claimed = db.session.execute(
            update(Player)
            .where(Player.id == player.id, Player.connected.is_(False))
            .values(connected=True, sid=sid)
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount != 1:
            raise AlreadyConnected()
        db.session.commit()

        current_app.logger.info(f"[player-rejoined] room={game.id} player={player.id}")
        db.session.expire(player)
        outcome = Outcome(room_id=game.id, player_id=player.id)
        state = room_state(game, player)
        state['isReconnected'] = True
        outcome.send('game_rejoined', state)
        outcome.announce('players_updated', {'players': state['players']})
        return outcome


def start_game(room_id, player_id) -> Outcome:
    with _locked(room_id):
        game = _load_game(room_id)
        _require_host(game, player_id)
        if game.status != WAITING:
            raise InvalidState('Game has already started')

        prompt = pick_next_prompt([])
        game.status = IN_PROGRESS
        game.current_round = 1
        game.current_prompt = prompt
        game.used_prompts = [prompt]
        game.players_answered = 0
        rnd = Round(game_id=game.id, round_number=1, prompt=prompt, status=COLLECTING)
        db.session.add(rnd)
        db.session.commit()

        current_app.logger.info(f"[game-started] room={game.id}")
        outcome = Outcome(room_id=game.id, player_id=player_id)
        outcome.announce('game_started', {
            'room': game.to_dict(),
            'players': _players_payload(game.id),
            'round': rnd.to_dict(),
        })
        return outcome


def submit_answer(room_id, player_id, text) -> Outcome:
    if not isinstance(text, str) or not text.strip():
        raise BadRequest('text is required')
    text = text.strip()
    max_len = int(_config('MAX_ANSWER_LENGTH', 120))
    if len(text) > max_len:
        raise BadRequest(f'Answers must be at most {max_len} characters')

    with _locked(room_id):
        game = _load_game(room_id)
        if game.status != IN_PROGRESS:
            raise InvalidState()
        player = db.session.get(Player, player_id) if player_id is not None else None
        if player is None or player.game_id != game.id or not player.connected:
            raise UnknownPlayer()
        rnd = _current_round(game)
        if rnd is None or rnd.status != COLLECTING:
            raise InvalidState('This round is no longer accepting answers')

        if Answer.query.filter_by(round_id=rnd.id, player_id=player.id).first() is not None:
            raise DuplicateSubmission()
        db.session.add(Answer(
            round_id=rnd.id,
            player_id=player.id,
            original_text=text,
            normalized_text=normalize_answer(text),
        ))
        try:
            db.session.flush()
        except IntegrityError:
            raise DuplicateSubmission()

        answered = _increment_answered(game)
        connected = _connected_count(game.id)
        closed = _close_round(game, rnd) if _everyone_answered(game, rnd) else None
        db.session.commit()

        outcome = Outcome(room_id=game.id, player_id=player.id)
        outcome.announce('player_answered', {
            'playerId': player.id,
            'displayName': player.display_name,
            'answeredCount': answered,
            'connectedCount': connected,
        })
        if closed is not None:
            current_app.logger.info(
                f"[round-closed] room={game.id} round={closed.round_number} "
                f"majority={closed.tally.majority_answer!r} token={closed.token_holder_id} winner={closed.winner_id}"
            )
            _announce_close(outcome, game, closed)
        return outcome


def next_round(room_id, player_id) -> Outcome:
    with _locked(room_id):
        game = _load_game(room_id)
        _require_host(game, player_id)
        if game.status != IN_PROGRESS:
            raise InvalidState()
        current = _current_round(game)
        if current is not None and current.status == COLLECTING:
            raise InvalidState('The current round is still collecting answers')

        number = game.current_round + 1
        used = game.used_prompts
        prompt = pick_next_prompt(used)
        db.session.add(Round(game_id=game.id, round_number=number, prompt=prompt, status=COLLECTING))
        try:
            db.session.flush()
        except IntegrityError:
            raise InvalidState(f'Round {number} already exists')
        game.current_round = number
        game.current_prompt = prompt
        game.used_prompts = used + [prompt]
        game.players_answered = 0
        db.session.commit()

        current_app.logger.info(f"[next-round] room={game.id} round={number}")
        outcome = Outcome(room_id=game.id, player_id=player_id)
        outcome.announce('next_round', {'roundNumber': number, 'prompt': prompt})
        return outcome


def remove_player(room_id, player_id, target_id) -> Outcome:
    with _locked(room_id):
        game = _load_game(room_id)
        _require_host(game, player_id)
        target = db.session.get(Player, target_id) if target_id is not None else None
        if target is None or target.game_id != game.id:
            raise UnknownPlayer()
        if target.id == player_id:
            raise InvalidState('The host cannot remove themselves')

        released_sid = target.sid
        target.connected = False
        target.sid = None
        closed = _close_if_everyone_left(game)
        db.session.commit()

        current_app.logger.info(f"[player-removed] room={game.id} player={target.id} by={player_id}")
        outcome = Outcome(room_id=game.id, player_id=player_id, released_sid=released_sid)
        if released_sid:
            outcome.direct.append((released_sid, Event('player_removed', {'roomId': game.id, 'playerId': target.id})))
        outcome.announce('players_updated', {'players': _players_payload(game.id)})
        if closed is not None:
            _announce_close(outcome, game, closed)
        return outcome


def leave_room(room_id, player_id, sid) -> Outcome:
    """Mark a player disconnected, unless a newer connection already claimed them."""
    with _locked(room_id):
        game = db.session.get(Game, room_id)
        if game is None:
            return Outcome()
        left = db.session.execute(
            update(Player)
            .where(Player.id == player_id, Player.sid == sid, Player.connected.is_(True))
            .values(connected=False, sid=None)
            .execution_options(synchronize_session=False)
        )
        if left.rowcount != 1:
            db.session.rollback()
            return Outcome()
        db.session.expire_all()
        closed = _close_if_everyone_left(game)
        db.session.commit()

        current_app.logger.info(f"[player-left] room={game.id} player={player_id}")
        outcome = Outcome(room_id=game.id, player_id=player_id)
        outcome.announce('players_updated', {'players': _players_payload(game.id)})
        if closed is not None:
            _announce_close(outcome, game, closed)
        return outcome
