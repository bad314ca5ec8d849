from herdmentality import create_app, db, socketio
from herdmentality.services.game.cleanup import start_retention_sweeper

app = create_app()

if __name__ == '__main__':
    with app.app_context():
        import herdmentality.models  # noqa: F401
        db.create_all()
    start_retention_sweeper(app)
    # Use SocketIO server to enable websockets in dev
    socketio.run(app, debug=True)
