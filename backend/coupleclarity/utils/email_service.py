"""
Outgoing email. The development service writes each message to the log.
"""
import logging

from flask import current_app

logger = logging.getLogger(__name__)

DEFAULT_APP_URL = 'http://localhost:5000'


class DevEmailService:
    """Logs emails instead of sending them."""

    def __init__(self, app_url: str = DEFAULT_APP_URL):
        self.app_url = app_url.rstrip('/')

    def reset_link(self, token: str) -> str:
        return f"{self.app_url}/reset-password?token={token}"

    def invite_link(self, token: str) -> str:
        return f"{self.app_url}/auth?token={token}"

    def _deliver(self, to: str, subject: str, body: str) -> bool:
        logger.info(f"\n==== EMAIL ====\nTo: {to}\nSubject: {subject}\n\n{body}\n===============")
        return True

    def send_password_reset_email(self, user, reset_token: str) -> bool:
        body = (
            f"Hello {user.first_name},\n\n"
            "We received a request to reset your CoupleClarity password.\n\n"
            "To reset your password, follow this link:\n"
            f"{self.reset_link(reset_token)}\n\n"
            "This link will expire in 1 hour.\n\n"
            "If you did not request a password reset, please ignore this message.\n\n"
            "Best regards,\nThe CoupleClarity Team"
        )
        return self._deliver(user.email, "Reset Your CoupleClarity Password", body)

    def send_partner_invite_email(self, user, partner_email: str, invite_token: str) -> bool:
        inviter = f"{user.first_name} {user.last_name}"
        body = (
            "Hello,\n\n"
            f"{inviter} has invited you to connect on CoupleClarity, an app for strengthening your relationship.\n\n"
            "To accept their invitation, follow this link:\n"
            f"{self.invite_link(invite_token)}\n\n"
            "This link will allow you to create an account and connect with your partner.\n\n"
            "Best regards,\nThe CoupleClarity Team"
        )
        return self._deliver(partner_email, f"{inviter} has invited you to join CoupleClarity", body)

    def send_welcome_email(self, user) -> bool:
        body = (
            f"Hello {user.first_name},\n\n"
            "Welcome to CoupleClarity! We're excited to help you strengthen your relationship.\n\n"
            "Here are some tips to get started:\n"
            "1. Complete your profile and relationship questionnaire\n"
            "2. Invite your partner to join\n"
            "3. Start expressing emotions and working through challenges together\n\n"
            "Best regards,\nThe CoupleClarity Team"
        )
        return self._deliver(user.email, f"Welcome to CoupleClarity, {user.first_name}!", body)


def get_email_service() -> DevEmailService:
    """Email service configured from the current app."""
    return DevEmailService(current_app.config.get('APP_URL', DEFAULT_APP_URL))
