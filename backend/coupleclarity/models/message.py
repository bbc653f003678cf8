"""
Message models: transformed emotional messages, partner responses, direct messages and appreciations.
"""
import json
from typing import Dict, Any, List

from sqlalchemy import Column, String, Text, DateTime, Integer, Boolean, ForeignKey

from . import db, utcnow, isoformat


def _decode_list(raw: str):
    # Older rows may hold plain text instead of a JSON list
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        return raw


class Message(db.Model):
    """An emotional statement and its AI transformation."""
    __tablename__ = 'messages'

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    emotion = Column(String(100), nullable=False)
    raw_message = Column(Text, nullable=False)
    context = Column(Text, nullable=True)
    transformed_message = Column(Text, nullable=False)
    communication_elements = Column(Text, nullable=False, default='[]')
    delivery_tips = Column(Text, nullable=False, default='[]')
    is_shared = Column(Boolean, nullable=False, default=False)
    partner_id = Column(Integer, ForeignKey('users.id'), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    def __init__(self, user_id: int, emotion: str, raw_message: str, transformed_message: str,
                 communication_elements: List[Any], delivery_tips: List[str], context: str = "",
                 is_shared: bool = False, partner_id: int = None):
        """Initialize a message.

        Args:
            user_id: Author of the raw statement.
            emotion: The emotion the author reported.
            raw_message: The statement as written.
            transformed_message: The AI rewrite.
            communication_elements: Techniques used, stored as JSON text.
            delivery_tips: Tips for delivering the message, stored as JSON text.
            context: Optional situation description.
            is_shared: Whether the partner can see the message.
            partner_id: Partner the message is shared with.
        """
        self.user_id = user_id
        self.emotion = emotion
        self.raw_message = raw_message
        self.context = context
        self.transformed_message = transformed_message
        self.communication_elements = json.dumps(communication_elements)
        self.delivery_tips = json.dumps(delivery_tips)
        self.is_shared = is_shared
        self.partner_id = partner_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "emotion": self.emotion,
            "rawMessage": self.raw_message,
            "context": self.context,
            "transformedMessage": self.transformed_message,
            "communicationElements": _decode_list(self.communication_elements),
            "deliveryTips": _decode_list(self.delivery_tips),
            "isShared": bool(self.is_shared),
            "partnerId": self.partner_id,
            "createdAt": isoformat(self.created_at),
        }

    def __repr__(self) -> str:
        return f"<Message {self.id} by {self.user_id}>"


class MessageResponse(db.Model):
    """A partner's reply to a shared message."""
    __tablename__ = 'responses'

    id = Column(Integer, primary_key=True)
    message_id = Column(Integer, ForeignKey('messages.id'), nullable=False)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    content = Column(Text, nullable=False)
    ai_summary = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "messageId": self.message_id,
            "userId": self.user_id,
            "content": self.content,
            "aiSummary": self.ai_summary,
            "createdAt": isoformat(self.created_at),
        }


class DirectMessage(db.Model):
    __tablename__ = 'direct_messages'

    id = Column(Integer, primary_key=True)
    sender_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    recipient_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    content = Column(Text, nullable=False)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "senderId": self.sender_id,
            "recipientId": self.recipient_id,
            "content": self.content,
            "isRead": bool(self.is_read),
            "createdAt": isoformat(self.created_at),
        }

    def __repr__(self) -> str:
        return f"<DirectMessage {self.sender_id}->{self.recipient_id}>"


class Appreciation(db.Model):
    __tablename__ = 'appreciations'

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    partner_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "partnerId": self.partner_id,
            "content": self.content,
            "createdAt": isoformat(self.created_at),
        }
