"""
User model module for authentication and user management.
"""
import datetime
import secrets
from typing import Dict, Any, Optional

from passlib.hash import pbkdf2_sha256
from sqlalchemy import Column, String, Text, DateTime, Integer, Boolean, ForeignKey
from sqlalchemy.orm import relationship

from . import db, utcnow, isoformat

LOVE_LANGUAGES = ('words_of_affirmation', 'quality_time', 'acts_of_service', 'physical_touch', 'gifts', 'not_sure')
CONFLICT_STYLES = ('avoid', 'emotional', 'talk_calmly', 'need_space', 'not_sure')
COMMUNICATION_STYLES = ('gentle', 'direct', 'structured', 'supportive', 'light')
REPAIR_STYLES = ('apology', 'space_checkin', 'physical_closeness', 'caring_message', 'talking')
COMMUNICATION_FREQUENCIES = ('daily', 'few_times_week', 'weekly', 'few_times_month', 'monthly_or_less')
AI_MODELS = ('openai', 'anthropic')

RESET_TOKEN_TTL = datetime.timedelta(hours=1)


class User(db.Model):
    """User model for authentication and authorization."""
    __tablename__ = 'users'

    id = Column(Integer, primary_key=True)
    username = Column(String(80), unique=True, nullable=False)
    email = Column(String(120), unique=True, nullable=False)
    password_hash = Column(String(256), nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    display_name = Column(String(200), nullable=False)
    avatar_url = Column(String, nullable=True)
    relationship_goals = Column(Text, nullable=True)
    challenge_areas = Column(Text, nullable=True)
    communication_frequency = Column(String(32), nullable=True)
    onboarding_completed = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    preferences = relationship('UserPreferences', backref='user', uselist=False, lazy=True,
                               cascade='all, delete-orphan')

    def __init__(self, username: str, email: str, password: str, first_name: str, last_name: str,
                 display_name: Optional[str] = None):
        """Initialize a new user.

        Args:
            username: A unique username.
            email: User's email address.
            password: Plain text password (will be hashed).
            first_name: User's first name.
            last_name: User's last name.
            display_name: Optional display name, defaults to "first last".
        """
        self.username = username
        self.email = email
        self.set_password(password)
        self.first_name = first_name
        self.last_name = last_name
        self.display_name = display_name or f"{first_name} {last_name}"

    def set_password(self, password: str) -> None:
        self.password_hash = pbkdf2_sha256.hash(password)

    def verify_password(self, password: str) -> bool:
        """Verify a password against the stored hash.

        Args:
            password: Plain text password to verify.

        Returns:
            True if the password matches, False otherwise.
        """
        return pbkdf2_sha256.verify(password, self.password_hash)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def to_dict(self) -> Dict[str, Any]:
        """Convert user to dictionary representation.

        Returns:
            Dictionary representation of user, excluding sensitive fields.
        """
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "displayName": self.display_name,
            "avatarUrl": self.avatar_url,
            "relationshipGoals": self.relationship_goals,
            "challengeAreas": self.challenge_areas,
            "communicationFrequency": self.communication_frequency,
            "onboardingCompleted": bool(self.onboarding_completed),
            "createdAt": isoformat(self.created_at),
        }

    def to_summary(self) -> Dict[str, Any]:
        """Public fields shown to a partner."""
        return {
            "id": self.id,
            "displayName": self.display_name,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "avatarUrl": self.avatar_url,
        }

    def __repr__(self) -> str:
        return f"<User {self.username}>"


class UserPreferences(db.Model):
    """Onboarding answers and the preferred AI model of a user."""
    __tablename__ = 'user_preferences'

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey('users.id'), unique=True, nullable=False)
    love_language = Column(String(32), nullable=False, default='not_sure')
    conflict_style = Column(String(32), nullable=False, default='not_sure')
    communication_style = Column(String(32), nullable=False, default='gentle')
    repair_style = Column(String(32), nullable=False, default='talking')
    preferred_ai_model = Column(String(16), nullable=False, default='openai')
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "loveLanguage": self.love_language,
            "conflictStyle": self.conflict_style,
            "communicationStyle": self.communication_style,
            "repairStyle": self.repair_style,
            "preferredAiModel": self.preferred_ai_model,
            "createdAt": isoformat(self.created_at),
            "updatedAt": isoformat(self.updated_at),
        }

    def __repr__(self) -> str:
        return f"<UserPreferences user={self.user_id}>"


class PasswordResetToken(db.Model):
    """Single-use password reset token, valid for one hour."""
    __tablename__ = 'password_reset_tokens'

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    token = Column(String(64), unique=True, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    def __init__(self, user_id: int):
        self.user_id = user_id
        self.token = secrets.token_hex(16)
        self.expires_at = utcnow() + RESET_TOKEN_TTL

    @property
    def is_expired(self) -> bool:
        return utcnow() > self.expires_at

    def __repr__(self) -> str:
        return f"<PasswordResetToken user={self.user_id}>"
