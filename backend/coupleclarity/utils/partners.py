"""
Partnership lookups shared by the route modules.
"""
from typing import Optional

from sqlalchemy import or_

from ..models import Partnership


def get_partnership_for_user(user_id: int) -> Optional[Partnership]:
    """The user's partnership: the active one if any, else the most recent that was not removed."""
    member = or_(Partnership.user1_id == user_id, Partnership.user2_id == user_id)
    active = Partnership.query.filter(member, Partnership.status == 'active') \
        .order_by(Partnership.created_at.desc(), Partnership.id.desc()).first()
    if active:
        return active
    return Partnership.query.filter(member, Partnership.status != 'removed') \
        .order_by(Partnership.created_at.desc(), Partnership.id.desc()).first()


def get_active_partnership(user_id: int) -> Optional[Partnership]:
    partnership = get_partnership_for_user(user_id)
    if partnership and partnership.status == 'active':
        return partnership
    return None


def partner_id_for(user_id: int, active_only: bool = False) -> Optional[int]:
    partnership = get_active_partnership(user_id) if active_only else get_partnership_for_user(user_id)
    return partnership.partner_of(user_id) if partnership else None


def are_partners(user_a: int, user_b: int) -> bool:
    """Whether two users share a partnership that was not removed."""
    partnership = Partnership.between(user_a, user_b)
    return bool(partnership and partnership.status != 'removed')
