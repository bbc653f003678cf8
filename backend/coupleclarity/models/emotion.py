"""
Emotional expression log.
"""
from typing import Dict, Any, Optional, List

from sqlalchemy import Column, String, Text, DateTime, Integer, Boolean, ForeignKey, JSON

from . import db, utcnow, isoformat


class EmotionalExpression(db.Model):
    """One emotion a user recorded, with the situation that triggered it."""
    __tablename__ = 'emotional_expressions'

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    emotion = Column(String(100), nullable=False)
    context = Column(Text, nullable=False)
    intensity = Column(Integer, nullable=False, default=5)
    related_item_id = Column(Integer, nullable=True)
    related_item_type = Column(String(50), nullable=True)
    tags = Column(JSON, nullable=False, default=list)
    ai_processed = Column(Boolean, nullable=False, default=False)
    ai_insight = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    def __init__(self, user_id: int, emotion: str, context: str, intensity: int = 5,
                 related_item_id: Optional[int] = None, related_item_type: Optional[str] = None,
                 tags: Optional[List[str]] = None):
        self.user_id = user_id
        self.emotion = emotion
        self.context = context
        self.intensity = intensity
        self.related_item_id = related_item_id
        self.related_item_type = related_item_type
        self.tags = list(tags or [])
        self.ai_processed = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "emotion": self.emotion,
            "context": self.context,
            "intensity": self.intensity,
            "relatedItemId": self.related_item_id,
            "relatedItemType": self.related_item_type,
            "tags": self.tags or [],
            "aiProcessed": bool(self.ai_processed),
            "aiInsight": self.ai_insight,
            "createdAt": isoformat(self.created_at),
        }

    def __repr__(self) -> str:
        return f"<EmotionalExpression {self.id} {self.emotion}>"
