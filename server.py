import argparse
import logging

from flask import Flask
from flask_cors import CORS
from flask_socketio import SocketIO

from config import config, get_env
from chat_server.routes.chat import chat_bp
from chat_server.messaging.service import init_messaging_service
from chat_server.repository.mongo_helper import MongoRepositorySingleton
from chat_server.security.authentication import AuthSecurity
from chat_server.websocket.hub import init_websocket_hub


def configure_logging():
    """Configure root logging from config (LOG_LEVEL, LOG_FORMAT, LOG_DATE_FORMAT)."""
    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL, logging.INFO),
        format=config.LOG_FORMAT,
        datefmt=config.LOG_DATE_FORMAT,
    )


def configure_auth_from_config():
    """Configure AuthSecurity from config / environment.

    JWT_SECRET (required): secret the identity provider signs tokens with.
    JWT_ALGORITHM (optional): default HS256.
    ACCESS_TOKEN_MINUTES (optional): default 7 days.
    """
    config.validate_required()
    AuthSecurity.configure(
        secret_key=config.JWT_SECRET,
        algorithm=config.JWT_ALGORITHM,
        access_token_expire_minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES,
    )


def create_app(db=None, start_dispatcher: bool = True) -> Flask:
    """Application factory used by server.py and tests.

    Connects to MongoDB (unless a database is passed in), builds the
    messaging service, registers the chat blueprint and attaches
    Flask-SocketIO with the chat hub. The SocketIO instance is available
    as app.extensions['socketio'].

    Raises RuntimeError when MongoDB cannot be reached.
    """
    app = Flask(__name__)
    CORS(app, origins=config.CORS_ORIGINS_LIST)

    if db is None:
        db = MongoRepositorySingleton.get_db()
    service = init_messaging_service(db)

    app.register_blueprint(chat_bp)

    @app.route('/health')
    def health():
        return {'status': 'ok', 'name': config.APP_NAME, 'version': config.APP_VERSION}

    origins = config.CORS_ORIGINS_LIST
    socketio = SocketIO(app, async_mode='threading', cors_allowed_origins='*' if origins == ['*'] else origins)
    init_websocket_hub(app, socketio, service, start_dispatcher=start_dispatcher)

    return app


def parse_args():
    """Parse simple CLI arguments for running the server.

    Supports overriding the port and disabling the outbound dispatcher
    thread (pushes are then emitted inline).
    """
    parser = argparse.ArgumentParser(description='Run the buyer/farmer chat server')
    parser.add_argument('--port', type=int, default=config.PORT, help='TCP port to bind (default: 5000 or PORT env)')
    parser.add_argument('--no-dispatcher', action='store_true', help='Do not start the outbound dispatcher thread')
    return parser.parse_args()


if __name__ == "__main__":
    args = parse_args()
    configure_logging()
    configure_auth_from_config()
    app = create_app(start_dispatcher=not args.no_dispatcher)
    logging.info('Starting %s (%s) with Socket.IO on port %s', config.APP_NAME, get_env(), args.port)
    app.extensions['socketio'].run(
        app, host="0.0.0.0", port=args.port, debug=config.DEBUG, allow_unsafe_werkzeug=True
    )
