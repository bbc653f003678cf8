"""
Journal models for private reflections and entries shared with a partner.
"""
from typing import Dict, Any, Optional, List

from sqlalchemy import Column, String, Text, DateTime, Integer, Boolean, ForeignKey, JSON
from sqlalchemy.orm import relationship

from . import db, utcnow, isoformat


class JournalEntry(db.Model):
    """A journal entry, private by default and optionally shared with the partner."""
    __tablename__ = 'journal_entries'

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    content = Column(Text, nullable=False)
    raw_content = Column(Text, nullable=False)
    is_private = Column(Boolean, nullable=False, default=True)
    is_shared = Column(Boolean, nullable=False, default=False)
    partner_id = Column(Integer, ForeignKey('users.id'), nullable=True)
    has_partner_response = Column(Boolean, nullable=False, default=False)
    ai_summary = Column(Text, nullable=True)
    ai_refined_content = Column(Text, nullable=True)
    emotions = Column(JSON, nullable=True)
    emotional_insight = Column(Text, nullable=True)
    emotional_score = Column(Integer, nullable=True)
    suggested_response = Column(Text, nullable=True)
    suggested_boundary = Column(Text, nullable=True)
    reflection_prompt = Column(Text, nullable=True)
    pattern_category = Column(String(100), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    responses = relationship('JournalResponse', backref='entry', lazy=True, cascade='all, delete-orphan',
                             order_by='JournalResponse.created_at')

    ANALYSIS_FIELDS = ('ai_summary', 'ai_refined_content', 'emotional_insight', 'emotional_score',
                       'suggested_response', 'suggested_boundary', 'reflection_prompt', 'pattern_category')

    def __init__(self, user_id: int, title: str, content: str, raw_content: Optional[str] = None,
                 is_private: bool = True, is_shared: bool = False, partner_id: Optional[int] = None,
                 emotions: Optional[List[str]] = None, **analysis):
        """Initialize a journal entry.

        Args:
            user_id: Owner of the entry.
            title: Title of the entry.
            content: Entry body.
            raw_content: Unedited text, defaults to content.
            is_private: Whether the entry is private to the owner.
            is_shared: Whether the partner can read the entry.
            partner_id: The partner the entry was shared with.
            emotions: Optional list of emotion labels.
            **analysis: Optional AI analysis fields (ai_summary, emotional_insight, ...).
        """
        self.user_id = user_id
        self.title = title
        self.content = content
        self.raw_content = raw_content or content
        self.is_private = is_private
        self.is_shared = is_shared
        self.partner_id = partner_id
        self.emotions = emotions
        self.has_partner_response = False
        for key, value in analysis.items():
            if key in self.ANALYSIS_FIELDS:
                setattr(self, key, value)

    def to_dict(self) -> Dict[str, Any]:
        """Convert journal entry to dictionary representation.

        Returns:
            Dictionary representation of the entry.
        """
        return {
            "id": self.id,
            "userId": self.user_id,
            "title": self.title,
            "content": self.content,
            "rawContent": self.raw_content,
            "isPrivate": bool(self.is_private),
            "isShared": bool(self.is_shared),
            "partnerId": self.partner_id,
            "hasPartnerResponse": bool(self.has_partner_response),
            "aiSummary": self.ai_summary,
            "aiRefinedContent": self.ai_refined_content,
            "emotions": self.emotions,
            "emotionalInsight": self.emotional_insight,
            "emotionalScore": self.emotional_score,
            "suggestedResponse": self.suggested_response,
            "suggestedBoundary": self.suggested_boundary,
            "reflectionPrompt": self.reflection_prompt,
            "patternCategory": self.pattern_category,
            "createdAt": isoformat(self.created_at),
            "updatedAt": isoformat(self.updated_at),
        }

    def __repr__(self) -> str:
        return f"<JournalEntry {self.title}>"


class JournalResponse(db.Model):
    """A partner's reply to a shared journal entry."""
    __tablename__ = 'journal_responses'

    id = Column(Integer, primary_key=True)
    journal_entry_id = Column(Integer, ForeignKey('journal_entries.id'), nullable=False)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "journalEntryId": self.journal_entry_id,
            "userId": self.user_id,
            "content": self.content,
            "createdAt": isoformat(self.created_at),
        }
