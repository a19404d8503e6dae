"""Permit Hub: permit intake and multi-step, role-based approval service.

`create_app` builds the Flask application and binds the module-level engine and
`scoped_session` that every service reaches through `get_db()`.
"""
from flask import Flask
from werkzeug.exceptions import HTTPException
from flask_jwt_extended import JWTManager
from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import sessionmaker, scoped_session
from dotenv import load_dotenv
from typing import Optional, Dict, Any
import logging
import os

from .errors import PermitHubError

load_dotenv()

db_engine = None
SessionLocal = None
jwt = JWTManager()

logger = logging.getLogger(__name__)

DOCS_HTML = (
    "<!DOCTYPE html><html><head><title>Permit Hub API Docs</title>"
    "<link rel=\"stylesheet\" href=\"https://cdn.jsdelivr.net/npm/redoc@next/bundles/redoc.standalone.css\" />"
    "</head><body><redoc spec-url='/openapi.json'></redoc>"
    "<script src='https://cdn.jsdelivr.net/npm/redoc@next/bundles/redoc.standalone.js'></script>"
    "</body></html>"
)


def _env_flag(name: str, default: str = 'false') -> bool:
    return os.getenv(name, default).strip().lower() in ('1', 'true', 'yes', 'on')


def _default_config() -> Dict[str, Any]:
    return {
        'JWT_SECRET_KEY': os.getenv('JWT_SECRET_KEY', 'dev-secret'),
        'DATABASE_URL': os.getenv('DATABASE_URL', 'sqlite:///dev.db'),
        'LOG_LEVEL': os.getenv('LOG_LEVEL', 'INFO'),
        'PERMIT_HUB_AUTO_MIGRATE': _env_flag('PERMIT_HUB_AUTO_MIGRATE'),
        'PERMIT_STORAGE_BASE_URL': os.getenv('PERMIT_STORAGE_BASE_URL', '/files/permits'),
        'PERMIT_STRICT_FIELD_CHOICES': _env_flag('PERMIT_STRICT_FIELD_CHOICES'),
        # DocumentRenderer instance; None selects the storage URL renderer
        'PERMIT_RENDERER': None,
    }


def _make_engine(url: str):
    if url.endswith(':memory:'):
        # one connection, so every session sees the same in-memory database
        return create_engine(url, future=True, connect_args={'check_same_thread': False}, poolclass=StaticPool)
    return create_engine(url, future=True)


def _error_body(status: int, title: str, detail: str):
    return {'error': {'status': status, 'title': title, 'detail': detail}}, status


def _register_error_handler(app: Flask):
    @app.errorhandler(Exception)
    def handle_errors(e):  # type: ignore
        if isinstance(e, PermitHubError):
            if e.status >= 500:
                app.logger.error('%s: %s', e.title, e.detail)
            return e.to_dict(), e.status
        if isinstance(e, HTTPException):
            return _error_body(e.code, e.name, e.description)
        app.logger.exception('Unhandled exception')
        return _error_body(500, 'Internal Server Error', 'Unexpected error')


def _register_blueprints(app: Flask):
    from .routes.iam import iam_bp
    from .routes.catalog import cat_bp
    from .routes.permits import permits_bp
    from .routes.citizens import citizens_bp
    app.register_blueprint(iam_bp, url_prefix='/iam')
    app.register_blueprint(cat_bp, url_prefix='/catalog')
    app.register_blueprint(permits_bp, url_prefix='/permits')
    app.register_blueprint(citizens_bp, url_prefix='/citizens')

    from .openapi import build_openapi_spec

    @app.route('/openapi.json')
    def openapi_spec():
        return build_openapi_spec()

    @app.route('/docs')
    def docs_index():
        return DOCS_HTML

    @app.route('/healthz')
    def health():
        return {'status': 'ok'}


def create_app(config: Optional[Dict[str, Any]] = None):
    """Application factory; ``config`` overrides values read from the environment."""
    global db_engine, SessionLocal
    app = Flask(__name__)
    app.config.update(_default_config())
    if config:
        app.config.update(config)

    logging.getLogger('permit_hub').setLevel(app.config['LOG_LEVEL'])

    db_engine = _make_engine(app.config['DATABASE_URL'])
    SessionLocal = scoped_session(sessionmaker(bind=db_engine, expire_on_commit=False, autoflush=False))
    if app.config['PERMIT_HUB_AUTO_MIGRATE']:
        _auto_migrate()

    jwt.init_app(app)
    _register_blueprints(app)
    _register_error_handler(app)

    return app


def _auto_migrate():
    """Create missing tables. Failures are reported but never block startup."""
    from .models import Base
    try:
        Base.metadata.create_all(db_engine)
    except SQLAlchemyError as exc:
        logger.warning('permit hub schema migration failed: %s', exc)


def get_db():
    return SessionLocal()
