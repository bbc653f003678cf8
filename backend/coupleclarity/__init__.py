"""
Application factory module.
"""
import os
from typing import Optional, Dict, Any

from flask import Flask, jsonify, send_from_directory
from flask_jwt_extended import JWTManager
from flask_cors import CORS

from .models import db, migrate
from .utils.logger import configure_logging
from .config.config import get_config
from .utils.csrf import csrf_protect
from .utils.ai_service import init_ai_service
from .utils.rate_limit import limiter
from .utils.seed import seed_command
from .ws import init_socketio


def create_app(config_name: Optional[str] = None, overrides: Optional[Dict[str, Any]] = None) -> Flask:
    """Application factory for creating a Flask app instance.

    Args:
        config_name: Name of the config class ('development', 'testing', 'production').
        overrides: Optional configuration values applied on top of the config class.

    Returns:
        Configured Flask application instance.
    """
    app = Flask(__name__, instance_relative_config=True)

    # Load config; an instance so property-based settings resolve
    app.config.from_object(get_config(config_name)())
    if overrides:
        app.config.from_mapping(overrides)

    configure_logging(app)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    JWTManager(app)
    init_socketio(app)
    init_ai_service(app)
    limiter.init_app(app)

    cors_origins = app.config.get('CORS_ORIGINS')
    app.logger.info(f"Configuring CORS with origins: {cors_origins}")
    CORS(app, resources={r"/api/*": {
        "origins": cors_origins,
        "methods": ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        "allow_headers": ["Content-Type", "Authorization", "X-Requested-With"],
        "supports_credentials": True
    }})

    app.before_request(csrf_protect)

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({"error": "Method not allowed"}), 405

    @app.errorhandler(413)
    def too_large(error):
        return jsonify({"error": "File too large"}), 413

    @app.errorhandler(429)
    def rate_limited(error):
        return jsonify({"error": error.description}), 429

    @app.route('/api/health', methods=['GET'])
    def health():
        return {"status": "ok", "message": "Backend is healthy"}

    @app.route('/uploads/<path:filename>', methods=['GET'])
    def uploaded_file(filename):
        return send_from_directory(app.config['UPLOAD_FOLDER'], filename)

    # Register blueprints
    from .api.auth import auth_bp
    from .api.invites import invites_bp
    from .api.partnerships import partnerships_bp
    from .api.milestones import milestones_bp
    from .api.memories import memories_bp
    from .api.messages import messages_bp
    from .api.direct_messages import direct_messages_bp
    from .api.journals import journals_bp
    from .api.conflicts import conflicts_bp
    from .api.appreciations import appreciations_bp
    from .api.check_ins import check_ins_bp
    from .api.users import users_bp
    from .api.emotions import emotions_bp
    from .api.notifications import notifications_bp
    from .api.avatars import avatars_bp
    from .api.exercises import exercises_bp
    from .api.therapy_sessions import therapy_sessions_bp

    for blueprint in (auth_bp, invites_bp, partnerships_bp, milestones_bp, memories_bp, messages_bp,
                      direct_messages_bp, journals_bp, conflicts_bp, appreciations_bp, check_ins_bp,
                      users_bp, emotions_bp, notifications_bp, avatars_bp, exercises_bp, therapy_sessions_bp):
        app.register_blueprint(blueprint, url_prefix='/api')

    app.cli.add_command(seed_command)

    os.makedirs(os.path.join(app.config['UPLOAD_FOLDER'], 'avatars'), exist_ok=True)

    # Shell context for Flask CLI
    @app.shell_context_processor
    def ctx():
        return {'app': app, 'db': db}

    return app
