"""
PodPlanner API - Flask application for engineering resource allocation and project budgeting

This is the main entry point for the PodPlanner backend. It provides RESTful
API endpoints for managing engineers, pods, roles, skills, projects and their
monthly allocations, and for tracking project budgets in man-days.

Features:
- Monthly allocation CRUD with year grid, totals and full-year expansion
- Budget health report (on-track / at-risk / over-budget)
- Referential integrity checks for roles, skills, engineers and projects
- Grid reconciliation that saves only the cells that changed
- Rate limiting and structured JSON errors

Environment Variables:
- FLASK_ENV: development/production
- DATABASE_URL: Database connection string
- SECRET_KEY: Flask secret key
- CORS_ORIGINS: Allowed CORS origins
- SEED_DATABASE: Load sample data on startup (true/false)

Usage:
    python app.py

Or with Gunicorn (production):
    gunicorn "app:create_app('production')" --bind 0.0.0.0:8000
"""

from flask import Flask, jsonify, current_app, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from config import config
from db import db
import logging
import os
from errors import register_error_handlers
from flask_migrate import Migrate


def configure_logging(app, config_name='development'):
    """Configure logging for the application"""
    # Clear existing handlers
    for handler in app.logger.handlers[:]:
        app.logger.removeHandler(handler)

    # Set log level
    log_level = logging.INFO if app.config.get('DEBUG', False) else logging.WARNING
    if app.config.get('LOG_LEVEL'):
        configured = logging.getLevelName(app.config['LOG_LEVEL'].upper())
        if isinstance(configured, int):
            log_level = configured
    app.logger.setLevel(log_level)
    app.logger.propagate = False

    # Create console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)

    # Create formatter
    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    console_handler.setFormatter(formatter)

    # Add handler to logger
    app.logger.addHandler(console_handler)

    # Module loggers (allocations, grid, integrity, ...) share the handler
    root_logger = logging.getLogger()
    if not root_logger.handlers:
        root_logger.addHandler(console_handler)
    root_logger.setLevel(log_level)

    # Log application startup
    app.logger.info(f"PodPlanner API starting in {config_name} mode")


def create_app(config_name='development'):
    """Application factory pattern"""
    app = Flask(__name__)

    # Load configuration
    app.config.from_object(config[config_name])

    # Configure logging
    configure_logging(app, config_name)

    # Initialize extensions
    db.init_app(app)
    CORS(app, origins=app.config['CORS_ORIGINS'])

    # Initialize rate limiter
    Limiter(
        app=app,
        key_func=get_remote_address,
        default_limits=["200 per day", "50 per hour"]
    )

    # Initialize Flask-Migrate
    Migrate(app, db)

    # Register error handlers
    register_error_handlers(app)

    # Request logging middleware
    @app.before_request
    def log_request_info():
        current_app.logger.info(f'{request.method} {request.url} - {request.remote_addr}')

    @app.after_request
    def log_response_info(response):
        current_app.logger.info(f'Response: {response.status_code}')
        return response

    # Health check endpoint
    @app.route('/api/health', methods=['GET'])
    def health_check():
        """Health check endpoint to verify API is running"""
        return jsonify({
            'status': 'healthy',
            'message': 'PodPlanner API is running'
        })

    # Initialize and optionally seed database on startup
    with app.app_context():
        from database import init_db, seed_database
        init_db()
        if app.config.get('SEED_DATABASE'):
            seed_database()

    # Register blueprints
    from routes import api
    app.register_blueprint(api, url_prefix='/api')

    return app

if __name__ == '__main__':
    app = create_app(os.environ.get('FLASK_ENV', 'development'))
    app.run(host='0.0.0.0', port=5002, debug=True)
