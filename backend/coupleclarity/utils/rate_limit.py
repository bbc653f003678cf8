"""
Request rate limits for the credential endpoints.

Login and both registration routes draw from one shared allowance per client
address; password reset requests have their own.
"""
from flask import current_app
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

limiter = Limiter(key_func=get_remote_address)

auth_limit = limiter.shared_limit(lambda: current_app.config['AUTH_RATE_LIMIT'], scope='auth',
                                  error_message="Too many attempts. Please try again later.")

password_reset_limit = limiter.shared_limit(lambda: current_app.config['PASSWORD_RESET_RATE_LIMIT'],
                                            scope='password-reset',
                                            error_message="Too many password reset requests. "
                                                          "Please try again later.")
