"""
Models package that defines the database schema.
"""
import datetime

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

# Initialize SQLAlchemy
db = SQLAlchemy()
migrate = Migrate()


def utcnow() -> datetime.datetime:
    """Naive UTC timestamp; every DateTime column stores naive UTC."""
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


def isoformat(value):
    """Serialize an optional datetime for JSON responses."""
    return value.isoformat() if value else None


# Import models to ensure they are registered by SQLAlchemy
from .user import User, UserPreferences, PasswordResetToken
from .partnership import Partnership, Invite, Milestone, Memory
from .message import Message, MessageResponse, DirectMessage, Appreciation
from .journal import JournalEntry, JournalResponse
from .conflict import ConflictThread, ConflictMessage
from .check_in import CheckInPrompt, CheckInResponse, CurrentEmotion
from .notification import NotificationPreferences, PushSubscription
from .exercise import ExerciseTemplate, CommunicationExercise, ExerciseStep, ExerciseResponse
from .emotion import EmotionalExpression
from .therapy import TherapySession

__all__ = ['db', 'migrate', 'utcnow', 'isoformat',
           'User', 'UserPreferences', 'PasswordResetToken',
           'Partnership', 'Invite', 'Milestone', 'Memory',
           'Message', 'MessageResponse', 'DirectMessage', 'Appreciation',
           'JournalEntry', 'JournalResponse',
           'ConflictThread', 'ConflictMessage',
           'CheckInPrompt', 'CheckInResponse', 'CurrentEmotion',
           'NotificationPreferences', 'PushSubscription',
           'ExerciseTemplate', 'CommunicationExercise', 'ExerciseStep', 'ExerciseResponse',
           'EmotionalExpression', 'TherapySession']
