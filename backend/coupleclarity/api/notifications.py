"""
Notification preference and push subscription routes.
"""
import logging
from flask import Blueprint, jsonify, g
from marshmallow import fields, validate, ValidationError

from ..models import db, PushSubscription
from ..models.notification import PREFERENCE_FLAGS
from ..utils.auth_adapter import auth_required
from ..utils.notifications import get_or_create_preferences
from ..utils.validation import BaseSchema, request_data, validation_error

notifications_bp = Blueprint('notifications', __name__)
logger = logging.getLogger(__name__)


class PreferencesSchema(BaseSchema):
    new_conflicts = fields.Boolean(data_key='newConflicts')
    partner_emotions = fields.Boolean(data_key='partnerEmotions')
    direct_messages = fields.Boolean(data_key='directMessages')
    conflict_updates = fields.Boolean(data_key='conflictUpdates')
    weekly_check_ins = fields.Boolean(data_key='weeklyCheckIns')
    appreciations = fields.Boolean()
    exercise_notifications = fields.Boolean(data_key='exerciseNotifications')


class SubscriptionKeysSchema(BaseSchema):
    p256dh = fields.String(required=True, validate=validate.Length(min=1))
    auth = fields.String(required=True, validate=validate.Length(min=1))


class SubscribeSchema(BaseSchema):
    endpoint = fields.String(required=True, validate=validate.Length(min=1))
    keys = fields.Nested(SubscriptionKeysSchema, required=True)


class UnsubscribeSchema(BaseSchema):
    endpoint = fields.String(required=True, validate=validate.Length(min=1))


@notifications_bp.route('/notifications/preferences', methods=['GET'])
@auth_required
def get_preferences():
    try:
        preferences = get_or_create_preferences(g.current_user.id)
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error loading notification preferences: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to get notification preferences"}), 500
    return jsonify(preferences.to_dict())


@notifications_bp.route('/notifications/preferences', methods=['POST'])
@auth_required
def update_preferences():
    try:
        loaded = PreferencesSchema().load(request_data())
    except ValidationError as e:
        return validation_error(e)

    try:
        preferences = get_or_create_preferences(g.current_user.id)
        for attr, value in loaded.items():
            if attr in PREFERENCE_FLAGS.values():
                setattr(preferences, attr, value)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error updating notification preferences: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to update notification preferences"}), 500

    return jsonify(preferences.to_dict())


@notifications_bp.route('/notifications/subscribe', methods=['POST'])
@auth_required
def subscribe():
    """Register a browser push endpoint for the caller.

    An endpoint already held by another user is moved to the caller.
    """
    try:
        loaded = SubscribeSchema().load(request_data())
    except ValidationError as e:
        return validation_error(e)

    user_id = g.current_user.id
    existing = PushSubscription.query.filter_by(endpoint=loaded['endpoint']).first()
    if existing and existing.user_id == user_id:
        return jsonify({"message": "Subscription already exists"})

    try:
        if existing:
            db.session.delete(existing)
            db.session.flush()
        subscription = PushSubscription(user_id=user_id, endpoint=loaded['endpoint'],
                                        p256dh=loaded['keys']['p256dh'], auth=loaded['keys']['auth'])
        db.session.add(subscription)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error saving push subscription: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to save subscription"}), 500

    return jsonify(subscription.to_dict()), 201


@notifications_bp.route('/notifications/unsubscribe', methods=['DELETE'])
@auth_required
def unsubscribe():
    try:
        loaded = UnsubscribeSchema().load(request_data())
    except ValidationError as e:
        return validation_error(e)

    subscription = PushSubscription.query.filter_by(endpoint=loaded['endpoint'],
                                                    user_id=g.current_user.id).first()
    if not subscription:
        return jsonify({"error": "Subscription not found"}), 404

    try:
        db.session.delete(subscription)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error removing push subscription: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to remove subscription"}), 500

    return jsonify({"message": "Unsubscribed successfully"})
