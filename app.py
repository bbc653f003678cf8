#!/usr/bin/env python
"""
Development server script for running the CoupleClarity API and its
WebSocket relay.
Supports different environments through environment files:
- .env, .env.development, .env.production

Usage:
  FLASK_ENV=development python app.py  # Development mode with local SQLite unless DATABASE_URL is set
  FLASK_ENV=production python app.py   # Production settings (secure cookies, strict CORS)
"""
import os
from backend.coupleclarity.config.env_manager import load_environment
from backend.coupleclarity import create_app
from backend.coupleclarity.models import db
from backend.coupleclarity.ws import socketio

# Load environment variables based on FLASK_ENV
env_vars = load_environment()
flask_env = os.environ.get('FLASK_ENV', 'development')

if __name__ == "__main__":
    app = create_app()
    port = int(os.environ.get("PORT", 5000))

    print(f"Starting CoupleClarity on http://localhost:{port}")
    print(f"Environment: {flask_env}")

    if not os.environ.get('DATABASE_URL'):
        print("DATABASE_URL not set, using local SQLite; creating tables")
        with app.app_context():
            db.create_all()

    debug = os.environ.get('DEBUG', 'False').lower() == 'true'
    socketio.run(app, host=os.environ.get('HOST', '0.0.0.0'), port=port, debug=debug,
                 allow_unsafe_werkzeug=True)
