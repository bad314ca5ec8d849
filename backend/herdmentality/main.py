from flask import Blueprint, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from herdmentality import db

main = Blueprint('main', __name__)


@main.route('/')
def index():
    return jsonify({'message': 'Welcome to the Herd Mentality game server!'})


@main.route('/health')
def health():
    try:
        db.session.execute(text('SELECT 1'))
        return jsonify({'ok': True, 'db': 'ok'})
    except SQLAlchemyError as exc:
        db.session.rollback()
        return jsonify({'ok': False, 'db': str(exc.__class__.__name__)}), 503
