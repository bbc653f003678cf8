"""
Environment configuration manager.
Loads the .env files that match FLASK_ENV before the app is built.
"""
import os
from dotenv import load_dotenv
import logging

logger = logging.getLogger(__name__)

SECRET_KEYS = ('JWT_SECRET_KEY', 'OPENAI_API_KEY', 'ANTHROPIC_API_KEY')


def mask_db_url(db_url: str) -> str:
    """Hide the password part of a database URL for logging."""
    if '@' not in db_url or '://' not in db_url:
        return db_url
    scheme, rest = db_url.split('://', 1)
    userinfo, host = rest.rsplit('@', 1)
    username = userinfo.split(':', 1)[0]
    return f"{scheme}://{username}:***@{host}"


def load_environment():
    """
    Load the appropriate environment file based on FLASK_ENV.

    Priority:
    1. .env.{environment}.local (for local overrides)
    2. .env.{environment}
    3. .env.local (for local overrides)
    4. .env (default)
    5. .env.shared (shared configuration across environments)

    Returns:
        dict: Loaded environment variables
    """
    env = os.environ.get('FLASK_ENV', 'development')
    logger.info(f"Loading environment configuration for: {env}")

    if os.path.isfile('.env.shared'):
        load_dotenv('.env.shared')
        logger.info("Loaded shared environment from .env.shared")

    # Lowest priority first so that later files win
    env_files = [
        ".env",
        ".env.local",
        f".env.{env}",
        f".env.{env}.local",
    ]

    loaded_files = []
    for env_file in env_files:
        if os.path.isfile(env_file):
            load_dotenv(env_file, override=True)
            loaded_files.append(env_file)

    if loaded_files:
        logger.info(f"Loaded environment from: {', '.join(loaded_files)}")
    else:
        logger.warning("No environment files found. Using system environment variables.")

    logger.info(f"FLASK_ENV: {os.environ.get('FLASK_ENV', 'development')}")

    db_url = os.environ.get('DATABASE_URL')
    if db_url:
        logger.info(f"Using database: {mask_db_url(db_url)}")
    else:
        logger.info("DATABASE_URL not set, falling back to local SQLite")

    for key in SECRET_KEYS:
        if not os.environ.get(key):
            logger.warning(f"{key} is not set")

    return os.environ
