from flask import Blueprint, jsonify

from herdmentality.models import Game
from herdmentality.services.game.rooms import room_state

games = Blueprint('games', __name__)


@games.route('/<string:room_code>/state', methods=['GET'])
def get_game_state(room_code):
    """Read-only snapshot of a room, for clients that poll instead of listening."""
    game = Game.query.filter_by(room_code=room_code.upper()).first()
    if game is None:
        return jsonify({'reason': 'not_found', 'message': 'Game not found'}), 404
    return jsonify(room_state(game))
