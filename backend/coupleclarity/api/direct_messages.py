"""
Direct messages between partners.
"""
import logging
from flask import Blueprint, jsonify, g
from marshmallow import fields, validate, ValidationError
from sqlalchemy import or_, and_

from ..models import db, DirectMessage
from ..utils.auth_adapter import auth_required
from ..utils.notifications import notify
from ..utils.partners import are_partners
from ..utils.validation import BaseSchema, request_data, validation_error

direct_messages_bp = Blueprint('direct_messages', __name__)
logger = logging.getLogger(__name__)

CONVERSATION_LIMIT = 50


class DirectMessageSchema(BaseSchema):
    recipient_id = fields.Integer(required=True, data_key='recipientId')
    content = fields.String(required=True, validate=validate.Length(min=1, max=2000))


@direct_messages_bp.route('/direct-messages', methods=['POST'])
@auth_required
def send_direct_message():
    try:
        loaded = DirectMessageSchema().load(request_data())
    except ValidationError as e:
        return validation_error(e)

    user = g.current_user
    if not are_partners(user.id, loaded['recipient_id']):
        return jsonify({"error": "You can only message your partner"}), 403

    try:
        message = DirectMessage(sender_id=user.id, recipient_id=loaded['recipient_id'], content=loaded['content'])
        db.session.add(message)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error sending direct message: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to send message"}), 500

    notify(message.recipient_id, 'new_direct_message', message.to_dict(),
           title=f"Message from {user.display_name}", body=message.content[:100], url="/messages/direct")
    return jsonify(message.to_dict()), 201


@direct_messages_bp.route('/direct-messages/unread/count', methods=['GET'])
@auth_required
def unread_count():
    """Unread messages addressed to the current user; clients poll this."""
    count = DirectMessage.query.filter_by(recipient_id=g.current_user.id, is_read=False).count()
    return jsonify({"count": count})


@direct_messages_bp.route('/direct-messages/<int:partner_id>', methods=['GET'])
@auth_required
def get_conversation(partner_id):
    """The most recent messages with a partner, oldest first."""
    user_id = g.current_user.id
    if not are_partners(user_id, partner_id):
        return jsonify({"error": "Not authorized to view this conversation"}), 403

    recent = DirectMessage.query.filter(or_(
        and_(DirectMessage.sender_id == user_id, DirectMessage.recipient_id == partner_id),
        and_(DirectMessage.sender_id == partner_id, DirectMessage.recipient_id == user_id),
    )).order_by(DirectMessage.created_at.desc(), DirectMessage.id.desc()).limit(CONVERSATION_LIMIT).all()
    return jsonify([m.to_dict() for m in reversed(recent)])


@direct_messages_bp.route('/direct-messages/<int:message_id>/read', methods=['PATCH'])
@auth_required
def mark_read(message_id):
    message = db.session.get(DirectMessage, message_id)
    if not message:
        return jsonify({"error": "Message not found"}), 404
    if message.recipient_id != g.current_user.id:
        return jsonify({"error": "Only the recipient can mark a message as read"}), 403

    try:
        message.is_read = True
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error marking message read: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to update message"}), 500

    return jsonify(message.to_dict())
