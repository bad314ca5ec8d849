import os


def _origins(raw):
    return [o.strip() for o in raw.split(',') if o.strip()]


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'herd-the-cows'
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///herdmentality.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    # Comma-separated list; FRONTEND_URL mirrors the env var the web client is deployed with
    CORS_ORIGINS = _origins(os.environ.get(
        'FRONTEND_URL',
        'http://localhost:5173,http://127.0.0.1:5173,http://localhost:5174,http://127.0.0.1:5174',
    ))
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    # Game rules
    WIN_SCORE = int(os.environ.get('WIN_SCORE', '8'))
    MAX_DISPLAY_NAME_LENGTH = 32
    MAX_ANSWER_LENGTH = 120
    # Room codes
    ROOM_CODE_LENGTH = 6
    ROOM_CODE_ALPHABET = 'ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789'
    ROOM_CODE_MAX_ATTEMPTS = int(os.environ.get('ROOM_CODE_MAX_ATTEMPTS', '50'))
    # Retention sweep: rooms older than this are deleted with their rounds/players/answers
    ROOM_RETENTION_DAYS = int(os.environ.get('ROOM_RETENTION_DAYS', '7'))
    # Sweep interval (sec). 0 disables the background loop; startup sweep still runs.
    CLEANUP_INTERVAL_SEC = int(os.environ.get('CLEANUP_INTERVAL_SEC', '3600'))
