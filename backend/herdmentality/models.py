from herdmentality import db
from datetime import datetime, timezone
import json
import random

from herdmentality.services.game.errors import AllocationExhausted

WAITING = 'waiting'
IN_PROGRESS = 'in-progress'
COMPLETED = 'completed'

COLLECTING = 'collecting-answers'
ROUND_COMPLETED = 'completed'

ROOM_CODE_ALPHABET = 'ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789'


def utcnow():
    # Naive UTC, which is what SQLite hands back for DateTime columns
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Player(db.Model):
    __tablename__ = 'player'
    __table_args__ = (db.UniqueConstraint('game_id', 'display_name', name='uq_player_game_name'),)
    id = db.Column(db.Integer, primary_key=True)
    game_id = db.Column(db.Integer, db.ForeignKey('game.id'), nullable=False, index=True)
    display_name = db.Column(db.String(64), nullable=False)
    is_host = db.Column(db.Boolean, default=False, nullable=False)
    score = db.Column(db.Integer, default=0, nullable=False)
    connected = db.Column(db.Boolean, default=True, nullable=False)
    sid = db.Column(db.String(64), nullable=True, index=True)
    joined_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    def to_dict(self):
        return {
            'id': self.id,
            'displayName': self.display_name,
            'isHost': self.is_host,
            'score': self.score,
            'connected': self.connected,
        }


def generate_room_code(length=6, alphabet=ROOM_CODE_ALPHABET, max_attempts=50, is_taken=None):
    """Generate a room code that no existing game uses.

    Draws random codes until one is free. ``is_taken`` defaults to a lookup
    against the game table. Raises AllocationExhausted after ``max_attempts``
    collisions in a row.
    """
    if is_taken is None:
        def is_taken(candidate):
            return Game.query.filter_by(room_code=candidate).first() is not None
    for _ in range(max_attempts):
        code = ''.join(random.choices(alphabet, k=length))
        if not is_taken(code):
            return code
    raise AllocationExhausted(f'No free room code after {max_attempts} attempts')


class Game(db.Model):
    __tablename__ = 'game'
    id = db.Column(db.Integer, primary_key=True)
    room_code = db.Column(db.String(16), unique=True, nullable=False, index=True)
    host_player_id = db.Column(db.Integer, nullable=True)
    status = db.Column(db.String(32), default=WAITING, nullable=False)  # waiting, in-progress, completed
    current_round = db.Column(db.Integer, default=0, nullable=False)
    current_prompt = db.Column(db.Text, nullable=True)
    players_answered = db.Column(db.Integer, default=0, nullable=False)
    token_holder_id = db.Column(db.Integer, nullable=True)
    winner_id = db.Column(db.Integer, nullable=True)
    used_prompts_json = db.Column('used_prompts', db.Text, nullable=True)  # JSON-encoded list, in draw order
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False, index=True)

    @property
    def used_prompts(self):
        try:
            return json.loads(self.used_prompts_json) if self.used_prompts_json else []
        except ValueError:
            return []

    @used_prompts.setter
    def used_prompts(self, prompts):
        self.used_prompts_json = json.dumps(list(prompts))

    def to_dict(self):
        return {
            'id': self.id,
            'roomCode': self.room_code,
            'hostPlayerId': self.host_player_id,
            'status': self.status,
            'currentRound': self.current_round,
            'prompt': self.current_prompt,
            'answeredCount': self.players_answered,
            'tokenHolder': self.token_holder_id,
            'winner': self.winner_id,
            'usedPrompts': self.used_prompts,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
        }


class Round(db.Model):
    __tablename__ = 'round'
    __table_args__ = (db.UniqueConstraint('game_id', 'round_number', name='uq_round_game_number'),)
    id = db.Column(db.Integer, primary_key=True)
    game_id = db.Column(db.Integer, db.ForeignKey('game.id'), nullable=False, index=True)
    round_number = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(32), default=COLLECTING, nullable=False)  # collecting-answers, completed
    prompt = db.Column(db.Text, nullable=True)
    majority_answer = db.Column(db.Text, nullable=True)
    unique_player_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    completed_at = db.Column(db.DateTime, nullable=True)

    def to_dict(self):
        return {
            'id': self.id,
            'roundNumber': self.round_number,
            'status': self.status,
            'prompt': self.prompt,
            'majorityAnswer': self.majority_answer,
            'uniqueAnswerer': self.unique_player_id,
        }


class Answer(db.Model):
    __tablename__ = 'answer'
    __table_args__ = (db.UniqueConstraint('round_id', 'player_id', name='uq_answer_round_player'),)
    id = db.Column(db.Integer, primary_key=True)
    round_id = db.Column(db.Integer, db.ForeignKey('round.id'), nullable=False, index=True)
    player_id = db.Column(db.Integer, db.ForeignKey('player.id'), nullable=False)
    original_text = db.Column(db.Text, nullable=False)
    normalized_text = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
