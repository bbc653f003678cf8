"""
Partner notifications.

A notification is a ``notification`` envelope pushed over the relay to the
recipient's room, gated by the recipient's preference flags. Offline
recipients miss it; clients poll as a fallback.
"""
import logging
from typing import Dict, Any, Optional

from ..models import db, NotificationPreferences
from ..ws import notify_user

logger = logging.getLogger(__name__)

# notification kind -> preference flag that controls it
CATEGORY_FOR_KIND = {
    'new_conflict_thread': 'newConflicts',
    'new_conflict_message': 'conflictUpdates',
    'conflict_status_changed': 'conflictUpdates',
    'emotion_update': 'partnerEmotions',
    'new_direct_message': 'directMessages',
    'weekly_check_in_shared': 'weeklyCheckIns',
    'new_appreciation': 'appreciations',
    'new_exercise': 'exerciseNotifications',
    'exercise_your_turn': 'exerciseNotifications',
    'exercise_completed': 'exerciseNotifications',
}


def get_or_create_preferences(user_id: int) -> NotificationPreferences:
    prefs = NotificationPreferences.query.filter_by(user_id=user_id).first()
    if prefs is None:
        prefs = NotificationPreferences(user_id=user_id)
        db.session.add(prefs)
        db.session.commit()
    return prefs


def is_enabled(user_id: int, kind: str) -> bool:
    category = CATEGORY_FOR_KIND.get(kind)
    if category is None:
        return True
    prefs = NotificationPreferences.query.filter_by(user_id=user_id).first()
    # No row yet means every flag is still at its default
    return prefs.allows(category) if prefs else True


def send_notification(user_id: Optional[int], kind: str, title: str, body: str,
                      url: Optional[str] = None, data: Optional[Dict[str, Any]] = None) -> bool:
    """Push a user-facing notification to one user.

    Args:
        user_id: Recipient; nothing is sent when None.
        kind: Notification kind, used to look up the preference flag.
        title: Short heading.
        body: Notification text.
        url: Client route to open on click.
        data: Extra payload merged into the envelope data.

    Returns:
        True if the notification was emitted.
    """
    if user_id is None:
        return False
    if not is_enabled(user_id, kind):
        logger.debug(f"Notification {kind} suppressed by preferences of user {user_id}")
        return False

    payload: Dict[str, Any] = {"kind": kind, "title": title, "body": body, "url": url}
    if data:
        payload.update(data)
    notify_user(user_id, 'notification', payload)
    return True


def notify_partner_event(user_id: Optional[int], event_type: str, data: Dict[str, Any]) -> None:
    """Relay a raw event envelope to a user; events are not preference-gated."""
    if user_id is None:
        return
    notify_user(user_id, event_type, data)


def notify(user_id: Optional[int], kind: str, data: Dict[str, Any], title: Optional[str] = None,
           body: Optional[str] = None, url: Optional[str] = None) -> None:
    """Relay the ``kind`` event and, when titled, the matching user-facing notification."""
    notify_partner_event(user_id, kind, data)
    if title:
        send_notification(user_id, kind, title, body or '', url=url)
