"""
Notification preference and push subscription models.
"""
from typing import Dict, Any

from sqlalchemy import Column, String, Text, DateTime, Integer, Boolean, ForeignKey

from . import db, utcnow, isoformat

# camelCase API name -> column attribute
PREFERENCE_FLAGS = {
    'newConflicts': 'new_conflicts',
    'partnerEmotions': 'partner_emotions',
    'directMessages': 'direct_messages',
    'conflictUpdates': 'conflict_updates',
    'weeklyCheckIns': 'weekly_check_ins',
    'appreciations': 'appreciations',
    'exerciseNotifications': 'exercise_notifications',
}


class NotificationPreferences(db.Model):
    __tablename__ = 'notification_preferences'

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey('users.id'), unique=True, nullable=False)
    new_conflicts = Column(Boolean, nullable=False, default=True)
    partner_emotions = Column(Boolean, nullable=False, default=True)
    direct_messages = Column(Boolean, nullable=False, default=True)
    conflict_updates = Column(Boolean, nullable=False, default=True)
    weekly_check_ins = Column(Boolean, nullable=False, default=True)
    appreciations = Column(Boolean, nullable=False, default=True)
    exercise_notifications = Column(Boolean, nullable=False, default=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def __init__(self, user_id: int):
        self.user_id = user_id
        for attr in PREFERENCE_FLAGS.values():
            setattr(self, attr, True)

    def allows(self, category: str) -> bool:
        """Whether notifications of ``category`` (camelCase flag name) are enabled."""
        attr = PREFERENCE_FLAGS.get(category)
        if attr is None:
            return True
        return bool(getattr(self, attr))

    def to_dict(self) -> Dict[str, Any]:
        data = {"id": self.id, "userId": self.user_id}
        for key, attr in PREFERENCE_FLAGS.items():
            data[key] = bool(getattr(self, attr))
        data["updatedAt"] = isoformat(self.updated_at)
        return data


class PushSubscription(db.Model):
    """A browser push endpoint registered by a user."""
    __tablename__ = 'push_subscriptions'

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    endpoint = Column(Text, unique=True, nullable=False)
    p256dh = Column(String(255), nullable=False)
    auth = Column(String(255), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "endpoint": self.endpoint,
            "createdAt": isoformat(self.created_at),
        }
