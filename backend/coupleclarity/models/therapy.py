"""
AI-facilitated therapy session records.
"""
from typing import Dict, Any, Optional, List

from sqlalchemy import Column, String, Text, DateTime, Integer, Boolean, ForeignKey, JSON

from . import db, utcnow, isoformat


class TherapySession(db.Model):
    """A generated session transcript and summary, visible to both members of a partnership."""
    __tablename__ = 'therapy_sessions'

    id = Column(Integer, primary_key=True)
    partnership_id = Column(Integer, ForeignKey('partnerships.id'), nullable=False, index=True)
    created_by_id = Column(Integer, ForeignKey('users.id'), nullable=True)
    transcript = Column(Text, nullable=False)
    emotional_patterns = Column(JSON, nullable=False, default=list)
    core_issues = Column(JSON, nullable=False, default=list)
    recommendations = Column(JSON, nullable=False, default=list)
    audio_url = Column(String, nullable=True)
    is_reviewed = Column(Boolean, nullable=False, default=False)
    reviewed_at = Column(DateTime, nullable=True)
    user_notes = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    def __init__(self, partnership_id: int, transcript: str, emotional_patterns: Optional[List[str]] = None,
                 core_issues: Optional[List[str]] = None, recommendations: Optional[List[str]] = None,
                 created_by_id: Optional[int] = None):
        """Initialize a therapy session.

        Args:
            partnership_id: Partnership the session belongs to.
            transcript: Generated session dialogue.
            emotional_patterns: Patterns noticed across both partners' writing.
            core_issues: Underlying issues the session surfaced.
            recommendations: Suggested next steps for the couple.
            created_by_id: Partner who requested the session.
        """
        self.partnership_id = partnership_id
        self.transcript = transcript
        self.emotional_patterns = list(emotional_patterns or [])
        self.core_issues = list(core_issues or [])
        self.recommendations = list(recommendations or [])
        self.created_by_id = created_by_id
        self.is_reviewed = False

    def mark_reviewed(self, reviewed: bool) -> None:
        self.is_reviewed = reviewed
        self.reviewed_at = utcnow() if reviewed else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "partnershipId": self.partnership_id,
            "createdById": self.created_by_id,
            "transcript": self.transcript,
            "emotionalPatterns": self.emotional_patterns or [],
            "coreIssues": self.core_issues or [],
            "recommendations": self.recommendations or [],
            "audioUrl": self.audio_url,
            "isReviewed": bool(self.is_reviewed),
            "reviewedAt": isoformat(self.reviewed_at),
            "userNotes": self.user_notes,
            "createdAt": isoformat(self.created_at),
        }

    def __repr__(self) -> str:
        return f"<TherapySession {self.id} partnership={self.partnership_id}>"
