"""
Partnership models: the couple link, invitations, milestones and shared memories.
"""
import uuid
from typing import Dict, Any, Optional

from sqlalchemy import Column, String, Text, DateTime, Integer, Boolean, ForeignKey, JSON, or_, and_
from sqlalchemy.orm import relationship

from . import db, utcnow, isoformat

PARTNERSHIP_STATUSES = ('pending', 'active', 'inactive', 'removed')
RELATIONSHIP_TYPES = ('dating', 'engaged', 'married', 'domestic_partners', 'other')
PRIVACY_LEVELS = ('private', 'standard', 'public')
MILESTONE_TYPES = ('first_date', 'first_kiss', 'said_i_love_you', 'moved_in', 'engagement',
                   'wedding', 'anniversary', 'vacation', 'other')
MEMORY_TYPES = ('conflict_resolution', 'milestone', 'appreciation', 'check_in', 'custom')


class Partnership(db.Model):
    """A linked pair of user accounts."""
    __tablename__ = 'partnerships'

    id = Column(Integer, primary_key=True)
    user1_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    user2_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    status = Column(String(16), nullable=False, default='pending')
    start_date = Column(DateTime, nullable=True)
    relationship_type = Column(String(32), nullable=True)
    anniversary_date = Column(DateTime, nullable=True)
    meeting_story = Column(Text, nullable=True)
    couple_nickname = Column(String(100), nullable=True)
    shared_picture = Column(String, nullable=True)
    relationship_goals = Column(Text, nullable=True)
    privacy_level = Column(String(16), nullable=False, default='standard')
    created_at = Column(DateTime, nullable=False, default=utcnow)

    user1 = relationship('User', foreign_keys=[user1_id])
    user2 = relationship('User', foreign_keys=[user2_id])

    def __init__(self, user1_id: int, user2_id: int, status: str = 'pending'):
        """Initialize a partnership.

        Args:
            user1_id: The user who initiated the link.
            user2_id: The invited user.
            status: One of PARTNERSHIP_STATUSES.
        """
        self.user1_id = user1_id
        self.user2_id = user2_id
        self.status = status
        self.privacy_level = 'standard'
        if status == 'active':
            self.start_date = utcnow()

    def activate(self) -> None:
        self.status = 'active'
        if not self.start_date:
            self.start_date = utcnow()

    def includes(self, user_id: int) -> bool:
        return user_id in (self.user1_id, self.user2_id)

    def partner_of(self, user_id: int) -> int:
        """Return the id of the other member."""
        return self.user2_id if self.user1_id == user_id else self.user1_id

    @classmethod
    def between(cls, user_a: int, user_b: int) -> Optional['Partnership']:
        return cls.query.filter(or_(
            and_(cls.user1_id == user_a, cls.user2_id == user_b),
            and_(cls.user1_id == user_b, cls.user2_id == user_a),
        )).order_by(cls.created_at.desc(), cls.id.desc()).first()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user1Id": self.user1_id,
            "user2Id": self.user2_id,
            "status": self.status,
            "startDate": isoformat(self.start_date),
            "relationshipType": self.relationship_type,
            "anniversaryDate": isoformat(self.anniversary_date),
            "meetingStory": self.meeting_story,
            "coupleNickname": self.couple_nickname,
            "sharedPicture": self.shared_picture,
            "relationshipGoals": self.relationship_goals,
            "privacyLevel": self.privacy_level,
            "createdAt": isoformat(self.created_at),
        }

    def __repr__(self) -> str:
        return f"<Partnership {self.user1_id}<->{self.user2_id} {self.status}>"


class Invite(db.Model):
    """Partner invitation; the token is redeemable once."""
    __tablename__ = 'invites'

    id = Column(Integer, primary_key=True)
    from_user_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    partner_first_name = Column(String(100), nullable=False, default='')
    partner_last_name = Column(String(100), nullable=False, default='')
    # Empty for link-only invites
    partner_email = Column(String(120), nullable=False, default='')
    invite_token = Column(String(64), unique=True, nullable=False)
    accepted_at = Column(DateTime, nullable=True)
    invited_at = Column(DateTime, nullable=False, default=utcnow)

    inviter = relationship('User', foreign_keys=[from_user_id])

    def __init__(self, from_user_id: int, partner_email: str = '', partner_first_name: str = '',
                 partner_last_name: str = ''):
        self.from_user_id = from_user_id
        self.partner_email = partner_email
        self.partner_first_name = partner_first_name
        self.partner_last_name = partner_last_name
        self.invite_token = str(uuid.uuid4())

    @property
    def is_used(self) -> bool:
        return self.accepted_at is not None

    def mark_accepted(self) -> None:
        self.accepted_at = utcnow()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "fromUserId": self.from_user_id,
            "partnerFirstName": self.partner_first_name,
            "partnerLastName": self.partner_last_name,
            "partnerEmail": self.partner_email,
            "inviteToken": self.invite_token,
            "acceptedAt": isoformat(self.accepted_at),
            "invitedAt": isoformat(self.invited_at),
        }

    def __repr__(self) -> str:
        return f"<Invite from={self.from_user_id} used={self.is_used}>"


class Milestone(db.Model):
    """A dated event in the couple's shared timeline."""
    __tablename__ = 'relationship_milestones'

    id = Column(Integer, primary_key=True)
    partnership_id = Column(Integer, ForeignKey('partnerships.id'), nullable=False)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    date = Column(DateTime, nullable=False)
    type = Column(String(32), nullable=False)
    image_url = Column(String, nullable=True)
    is_private = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "partnershipId": self.partnership_id,
            "title": self.title,
            "description": self.description,
            "date": isoformat(self.date),
            "type": self.type,
            "imageUrl": self.image_url,
            "isPrivate": bool(self.is_private),
            "createdAt": isoformat(self.created_at),
        }

    def __repr__(self) -> str:
        return f"<Milestone {self.type} {self.title}>"


class Memory(db.Model):
    """An entry in the relationship history (resolved conflicts, milestones, appreciations)."""
    __tablename__ = 'memories'

    id = Column(Integer, primary_key=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False)
    type = Column(String(32), nullable=False)
    date = Column(DateTime, nullable=False, default=utcnow)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    partnership_id = Column(Integer, ForeignKey('partnerships.id'), nullable=False)
    linked_item_id = Column(Integer, nullable=True)
    linked_item_type = Column(String(32), nullable=True)
    is_significant = Column(Boolean, nullable=False, default=False)
    image_url = Column(String, nullable=True)
    tags = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "type": self.type,
            "date": isoformat(self.date),
            "userId": self.user_id,
            "partnershipId": self.partnership_id,
            "linkedItemId": self.linked_item_id,
            "linkedItemType": self.linked_item_type,
            "isSignificant": bool(self.is_significant),
            "imageUrl": self.image_url,
            "tags": self.tags or [],
            "createdAt": isoformat(self.created_at),
        }

    def __repr__(self) -> str:
        return f"<Memory {self.type} {self.title}>"
