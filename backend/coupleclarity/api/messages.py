"""
Emotional message transformation, history and partner responses.
"""
import logging
from flask import Blueprint, jsonify, g
from marshmallow import fields, validate, ValidationError

from ..models import db, Message, MessageResponse, UserPreferences
from ..utils.ai_service import get_ai_service
from ..utils.auth_adapter import auth_required
from ..utils.notifications import notify
from ..utils.partners import partner_id_for, are_partners
from ..utils.validation import BaseSchema, request_data, validation_error

messages_bp = Blueprint('messages', __name__)
logger = logging.getLogger(__name__)


class TransformSchema(BaseSchema):
    """Schema for an emotional message to transform."""
    emotion = fields.String(required=True, validate=validate.Length(min=1, max=100))
    raw_message = fields.String(required=True, data_key='rawMessage', validate=validate.Length(min=1, max=500))
    context = fields.String(allow_none=True, load_default="")
    save_to_history = fields.Boolean(data_key='saveToHistory', load_default=True)
    share_with_partner = fields.Boolean(data_key='shareWithPartner', load_default=False)
    partner_id = fields.Integer(data_key='partnerId', allow_none=True)


class ResponseSchema(BaseSchema):
    content = fields.String(required=True, validate=validate.Length(min=1, max=500))


def preferred_model(user_id: int) -> str:
    prefs = UserPreferences.query.filter_by(user_id=user_id).first()
    return prefs.preferred_ai_model if prefs else 'openai'


@messages_bp.route('/transform', methods=['POST'])
@auth_required
def transform_message():
    """Transform a raw emotional statement with the user's preferred AI model.

    Returns:
        JSON response with the transformation and the saved message id.
    """
    try:
        loaded = TransformSchema().load(request_data())
    except ValidationError as e:
        return validation_error(e)

    user = g.current_user
    ai = get_ai_service()
    if preferred_model(user.id) == 'anthropic':
        result = ai.transform_with_anthropic(loaded['raw_message'], [loaded['emotion']])
    else:
        result = ai.transform_emotional_message(loaded['emotion'], loaded['raw_message'], loaded.get('context'))

    partner_id = None
    if loaded['share_with_partner']:
        partner_id = loaded.get('partner_id') or partner_id_for(user.id)
        if partner_id and not are_partners(user.id, partner_id):
            return jsonify({"error": "You can only share messages with your partner"}), 403

    message_id = None
    if loaded['save_to_history']:
        try:
            message = Message(
                user_id=user.id,
                emotion=loaded['emotion'],
                raw_message=loaded['raw_message'],
                transformed_message=result['transformedMessage'],
                communication_elements=result['communicationElements'],
                delivery_tips=result['deliveryTips'],
                context=loaded.get('context') or "",
                is_shared=bool(loaded['share_with_partner'] and partner_id),
                partner_id=partner_id,
            )
            db.session.add(message)
            db.session.commit()
            message_id = message.id
        except Exception as e:
            db.session.rollback()
            logger.error(f"Error saving transformed message: {str(e)}", exc_info=True)
            return jsonify({"error": "Failed to transform message"}), 500

        if message.is_shared:
            notify(partner_id, 'new_message', {"messageId": message.id, "senderId": user.id},
                   title="New message from your partner",
                   body=f"{user.display_name} shared how they're feeling.", url=f"/messages/{message.id}")

    response = dict(result)
    response['messageId'] = message_id
    return jsonify(response)


@messages_bp.route('/messages', methods=['GET'])
@auth_required
def get_messages():
    """Message history of the current user, newest first."""
    messages = Message.query.filter_by(user_id=g.current_user.id) \
        .order_by(Message.created_at.desc(), Message.id.desc()).all()
    return jsonify([m.to_dict() for m in messages])


@messages_bp.route('/partners/<int:partner_id>/shared-messages', methods=['GET'])
@auth_required
def get_shared_messages(partner_id):
    """Messages that a partner shared with the current user."""
    user_id = g.current_user.id
    if not are_partners(user_id, partner_id):
        return jsonify({"error": "Not authorized to view these messages"}), 403
    messages = Message.query.filter_by(user_id=partner_id, partner_id=user_id, is_shared=True) \
        .order_by(Message.created_at.desc(), Message.id.desc()).all()
    return jsonify([m.to_dict() for m in messages])


def _visible_message(message_id):
    message = db.session.get(Message, message_id)
    if not message:
        return None, (jsonify({"error": "Message not found"}), 404)
    user_id = g.current_user.id
    is_recipient = message.is_shared and message.partner_id == user_id
    if message.user_id != user_id and not is_recipient:
        return None, (jsonify({"error": "Not authorized to access this message"}), 403)
    return message, None


@messages_bp.route('/messages/<int:message_id>/responses', methods=['GET'])
@auth_required
def get_message_responses(message_id):
    message, error = _visible_message(message_id)
    if error:
        return error
    responses = MessageResponse.query.filter_by(message_id=message.id) \
        .order_by(MessageResponse.created_at.asc(), MessageResponse.id.asc()).all()
    return jsonify([r.to_dict() for r in responses])


@messages_bp.route('/messages/<int:message_id>/responses', methods=['POST'])
@auth_required
def create_message_response(message_id):
    try:
        loaded = ResponseSchema().load(request_data())
    except ValidationError as e:
        return validation_error(e)

    message, error = _visible_message(message_id)
    if error:
        return error

    user = g.current_user
    summary = get_ai_service().summarize_response(message.transformed_message, loaded['content'])
    try:
        response = MessageResponse(message_id=message.id, user_id=user.id, content=loaded['content'],
                                   ai_summary=summary)
        db.session.add(response)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error saving message response: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to save response"}), 500

    other = message.partner_id if message.user_id == user.id else message.user_id
    notify(other, 'new_response', {"messageId": message.id, "responseId": response.id},
           title="New response", body=f"{user.display_name} responded to a message.",
           url=f"/messages/{message.id}")
    return jsonify(response.to_dict()), 201
