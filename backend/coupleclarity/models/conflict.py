"""
Conflict thread models.
"""
from typing import Dict, Any, Optional

from sqlalchemy import Column, String, Text, DateTime, Integer, Boolean, ForeignKey
from sqlalchemy.orm import relationship

from . import db, utcnow, isoformat

CONFLICT_STATUSES = ('active', 'resolved', 'abandoned')
# active is the only state with outgoing transitions; resolved and abandoned are terminal
CONFLICT_TRANSITIONS = {
    'active': ('resolved', 'abandoned'),
    'resolved': (),
    'abandoned': (),
}


class InvalidTransition(ValueError):
    """Raised when a thread is moved out of a terminal status."""


class ConflictThread(db.Model):
    """A structured conversation between partners about one disagreement."""
    __tablename__ = 'conflict_threads'

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    partner_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    topic = Column(String(300), nullable=False)
    status = Column(String(16), nullable=False, default='active')
    created_at = Column(DateTime, nullable=False, default=utcnow)
    last_activity_at = Column(DateTime, nullable=False, default=utcnow)
    resolved_at = Column(DateTime, nullable=True)
    resolution_summary = Column(Text, nullable=True)
    resolution_insights = Column(Text, nullable=True)
    needs_extra_help = Column(Boolean, nullable=False, default=False)
    stuck_reason = Column(Text, nullable=True)

    messages = relationship('ConflictMessage', backref='thread', lazy='dynamic', cascade='all, delete-orphan')

    def __init__(self, user_id: int, partner_id: int, topic: str):
        self.user_id = user_id
        self.partner_id = partner_id
        self.topic = topic
        self.status = 'active'
        self.needs_extra_help = False
        self.last_activity_at = utcnow()

    def includes(self, user_id: int) -> bool:
        return user_id in (self.user_id, self.partner_id)

    def other_participant(self, user_id: int) -> int:
        return self.partner_id if self.user_id == user_id else self.user_id

    @property
    def is_active(self) -> bool:
        return self.status == 'active'

    def transition(self, new_status: str, summary: Optional[str] = None, insights: Optional[str] = None) -> None:
        """Move the thread to a new status.

        Args:
            new_status: Target status.
            summary: Resolution summary, stored when resolving.
            insights: Optional resolution insights.

        Raises:
            InvalidTransition: If the move is not allowed from the current status.
        """
        if new_status not in CONFLICT_STATUSES:
            raise InvalidTransition(f"Unknown status '{new_status}'")
        if new_status not in CONFLICT_TRANSITIONS[self.status]:
            raise InvalidTransition(f"Cannot change status from '{self.status}' to '{new_status}'")

        now = utcnow()
        self.status = new_status
        self.last_activity_at = now
        if new_status == 'resolved':
            self.resolved_at = now
            self.resolution_summary = summary
            self.resolution_insights = insights

    def touch(self) -> None:
        self.last_activity_at = utcnow()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "partnerId": self.partner_id,
            "topic": self.topic,
            "status": self.status,
            "createdAt": isoformat(self.created_at),
            "lastActivityAt": isoformat(self.last_activity_at),
            "resolvedAt": isoformat(self.resolved_at),
            "resolutionSummary": self.resolution_summary,
            "resolutionInsights": self.resolution_insights,
            "needsExtraHelp": bool(self.needs_extra_help),
            "stuckReason": self.stuck_reason,
        }

    def __repr__(self) -> str:
        return f"<ConflictThread {self.id} {self.status}>"


class ConflictMessage(db.Model):
    __tablename__ = 'conflict_messages'

    id = Column(Integer, primary_key=True)
    thread_id = Column(Integer, ForeignKey('conflict_threads.id'), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    content = Column(Text, nullable=False)
    emotional_tone = Column(String(50), nullable=True)
    message_type = Column(String(16), nullable=False, default='user')
    created_at = Column(DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "threadId": self.thread_id,
            "userId": self.user_id,
            "content": self.content,
            "emotionalTone": self.emotional_tone,
            "messageType": self.message_type,
            "createdAt": isoformat(self.created_at),
        }
