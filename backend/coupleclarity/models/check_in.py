"""
Weekly check-in and current emotion models.
"""
import datetime
from typing import Dict, Any

from sqlalchemy import Column, String, Text, DateTime, Integer, Boolean, ForeignKey

from . import db, utcnow, isoformat


def week_start(now: datetime.datetime = None) -> datetime.datetime:
    """Return Sunday 00:00 of the week containing ``now``."""
    now = now or utcnow()
    # weekday(): Monday=0 .. Sunday=6
    days_since_sunday = (now.weekday() + 1) % 7
    start = now - datetime.timedelta(days=days_since_sunday)
    return start.replace(hour=0, minute=0, second=0, microsecond=0)


class CheckInPrompt(db.Model):
    __tablename__ = 'check_in_prompts'

    id = Column(Integer, primary_key=True)
    prompt = Column(Text, nullable=False)
    category = Column(String(50), nullable=False)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "prompt": self.prompt,
            "category": self.category,
            "active": bool(self.active),
            "createdAt": isoformat(self.created_at),
        }


class CheckInResponse(db.Model):
    __tablename__ = 'check_in_responses'

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    prompt_id = Column(Integer, ForeignKey('check_in_prompts.id'), nullable=False)
    response = Column(Text, nullable=False)
    week_of = Column(DateTime, nullable=False)
    is_shared = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "promptId": self.prompt_id,
            "response": self.response,
            "weekOf": isoformat(self.week_of),
            "isShared": bool(self.is_shared),
            "createdAt": isoformat(self.created_at),
        }


class CurrentEmotion(db.Model):
    """The one emotion a user is currently broadcasting to their partner."""
    __tablename__ = 'current_emotions'

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey('users.id'), unique=True, nullable=False)
    emotion = Column(String(100), nullable=False)
    intensity = Column(Integer, nullable=False, default=5)
    note = Column(Text, nullable=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "emotion": self.emotion,
            "intensity": self.intensity,
            "note": self.note,
            "updatedAt": isoformat(self.updated_at),
        }
