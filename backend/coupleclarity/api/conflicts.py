"""
Conflict resolution threads between partners.
"""
import logging
from flask import Blueprint, request, jsonify, g
from marshmallow import fields, validate, ValidationError
from sqlalchemy import or_

from ..models import db, ConflictThread, ConflictMessage, Memory, User, Partnership
from ..models.conflict import CONFLICT_STATUSES, InvalidTransition
from ..utils.ai_service import get_ai_service
from ..utils.auth_adapter import auth_required
from ..utils.notifications import notify
from ..utils.partners import partner_id_for, are_partners
from ..utils.validation import BaseSchema, request_data, validation_error

conflicts_bp = Blueprint('conflicts', __name__)
logger = logging.getLogger(__name__)


class ConflictThreadSchema(BaseSchema):
    topic = fields.String(required=True, validate=validate.Length(min=1, max=300))
    partner_id = fields.Integer(data_key='partnerId', allow_none=True)


class ConflictMessageSchema(BaseSchema):
    content = fields.String(required=True, validate=validate.Length(min=1, max=2000))
    emotional_tone = fields.String(data_key='emotionalTone', allow_none=True)
    message_type = fields.String(data_key='messageType', load_default='user',
                                 validate=validate.OneOf(('user', 'system', 'ai_suggestion')))


class StatusSchema(BaseSchema):
    status = fields.String(required=True, validate=validate.OneOf(CONFLICT_STATUSES))
    summary = fields.String(allow_none=True)
    insights = fields.String(allow_none=True)


class ResolveSchema(BaseSchema):
    summary = fields.String(required=True, validate=validate.Length(min=1))
    insights = fields.String(allow_none=True)


class HelpSchema(BaseSchema):
    reason = fields.String(required=True, validate=validate.Length(min=1, max=1000))


class TransformConflictSchema(BaseSchema):
    message = fields.String(required=True, validate=validate.Length(min=1, max=2000))
    topic = fields.String(allow_none=True)


def _thread_for_participant(thread_id):
    thread = db.session.get(ConflictThread, thread_id)
    if not thread:
        return None, (jsonify({"error": "Conflict thread not found"}), 404)
    if not thread.includes(g.current_user.id):
        return None, (jsonify({"error": "Not authorized to access this conflict thread"}), 403)
    return thread, None


@conflicts_bp.route('/conflict-threads', methods=['POST'])
@auth_required
def create_thread():
    """Open a conflict thread with the partner.

    Returns:
        JSON response with the created thread.
    """
    try:
        loaded = ConflictThreadSchema().load(request_data())
    except ValidationError as e:
        return validation_error(e)

    user = g.current_user
    partner_id = loaded.get('partner_id') or partner_id_for(user.id)
    if not partner_id or not are_partners(user.id, partner_id):
        return jsonify({"error": "You need a partner to start a conflict thread"}), 400

    try:
        thread = ConflictThread(user_id=user.id, partner_id=partner_id, topic=loaded['topic'])
        db.session.add(thread)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error creating conflict thread: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to create conflict thread"}), 500

    notify(partner_id, 'new_conflict_thread', {"threadId": thread.id, "topic": thread.topic},
           title="New conflict discussion",
           body=f"{user.display_name} started a conversation about: {thread.topic}",
           url=f"/conflict/{thread.id}")
    logger.info(f"Created conflict thread {thread.id}")
    return jsonify(thread.to_dict()), 201


@conflicts_bp.route('/conflict-threads', methods=['GET'])
@auth_required
def list_threads():
    user_id = g.current_user.id
    query = ConflictThread.query.filter(
        or_(ConflictThread.user_id == user_id, ConflictThread.partner_id == user_id))
    status = request.args.get('status')
    if status:
        if status not in CONFLICT_STATUSES:
            return jsonify({"error": "Invalid status"}), 400
        query = query.filter(ConflictThread.status == status)
    threads = query.order_by(ConflictThread.last_activity_at.desc(), ConflictThread.id.desc()).all()
    return jsonify([t.to_dict() for t in threads])


@conflicts_bp.route('/conflict-threads/<int:thread_id>', methods=['GET'])
@auth_required
def get_thread(thread_id):
    thread, error = _thread_for_participant(thread_id)
    if error:
        return error
    return jsonify(thread.to_dict())


@conflicts_bp.route('/conflict-threads/<int:thread_id>/messages', methods=['GET'])
@auth_required
def list_thread_messages(thread_id):
    thread, error = _thread_for_participant(thread_id)
    if error:
        return error
    messages = thread.messages.order_by(ConflictMessage.created_at.asc(), ConflictMessage.id.asc()).all()
    return jsonify([m.to_dict() for m in messages])


@conflicts_bp.route('/conflict-threads/<int:thread_id>/messages', methods=['POST'])
@auth_required
def post_thread_message(thread_id):
    try:
        loaded = ConflictMessageSchema().load(request_data())
    except ValidationError as e:
        return validation_error(e)

    thread, error = _thread_for_participant(thread_id)
    if error:
        return error
    if not thread.is_active:
        return jsonify({"error": "This conflict thread is no longer active"}), 409

    user = g.current_user
    try:
        message = ConflictMessage(
            thread_id=thread.id,
            user_id=user.id,
            content=loaded['content'],
            emotional_tone=loaded.get('emotional_tone'),
            message_type=loaded['message_type'],
        )
        db.session.add(message)
        thread.touch()
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error posting conflict message: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to post message"}), 500

    notify(thread.other_participant(user.id), 'new_conflict_message',
           {"threadId": thread.id, "messageId": message.id},
           title="New message in conflict discussion",
           body=f"{user.display_name}: {message.content[:100]}", url=f"/conflict/{thread.id}")
    return jsonify(message.to_dict()), 201


def _record_resolution_memory(thread, user_id):
    partnership = Partnership.between(thread.user_id, thread.partner_id)
    if not partnership:
        return
    db.session.add(Memory(
        user_id=user_id,
        partnership_id=partnership.id,
        type='conflict_resolution',
        title=f"Resolved: {thread.topic}",
        description=thread.resolution_summary or '',
        date=thread.resolved_at,
        linked_item_id=thread.id,
        linked_item_type='conflict_thread',
        is_significant=False,
        tags=[],
    ))


def _change_status(thread, status, summary=None, insights=None):
    """Apply a status transition and tell the other participant.

    Returns:
        Flask response tuple.
    """
    user = g.current_user
    try:
        thread.transition(status, summary=summary, insights=insights)
    except InvalidTransition as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 409

    try:
        if status == 'resolved':
            _record_resolution_memory(thread, user.id)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error updating conflict thread status: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to update conflict thread"}), 500

    notify(thread.other_participant(user.id), 'conflict_status_changed',
           {"threadId": thread.id, "status": thread.status},
           title="Conflict discussion updated",
           body=f"{user.display_name} marked \"{thread.topic}\" as {thread.status}.",
           url=f"/conflict/{thread.id}")
    return jsonify(thread.to_dict()), 200


@conflicts_bp.route('/conflict-threads/<int:thread_id>/status', methods=['PATCH'])
@auth_required
def update_thread_status(thread_id):
    try:
        loaded = StatusSchema().load(request_data())
    except ValidationError as e:
        return validation_error(e)

    thread, error = _thread_for_participant(thread_id)
    if error:
        return error
    return _change_status(thread, loaded['status'], loaded.get('summary'), loaded.get('insights'))


@conflicts_bp.route('/conflict-threads/<int:thread_id>/resolve', methods=['POST'])
@auth_required
def resolve_thread(thread_id):
    try:
        loaded = ResolveSchema().load(request_data())
    except ValidationError as e:
        return validation_error(e)

    thread, error = _thread_for_participant(thread_id)
    if error:
        return error
    return _change_status(thread, 'resolved', loaded['summary'], loaded.get('insights'))


@conflicts_bp.route('/conflict-threads/<int:thread_id>/request-help', methods=['POST'])
@auth_required
def request_help(thread_id):
    """Flag a thread as stuck."""
    try:
        loaded = HelpSchema().load(request_data())
    except ValidationError as e:
        return validation_error(e)

    thread, error = _thread_for_participant(thread_id)
    if error:
        return error

    try:
        thread.needs_extra_help = True
        thread.stuck_reason = loaded['reason']
        thread.touch()
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error requesting help for conflict thread: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to request help"}), 500

    return jsonify(thread.to_dict())


@conflicts_bp.route('/conflict-threads/<int:thread_id>/analyze', methods=['POST'])
@auth_required
def analyze_thread(thread_id):
    thread, error = _thread_for_participant(thread_id)
    if error:
        return error

    messages = thread.messages.order_by(ConflictMessage.created_at.asc(), ConflictMessage.id.asc()).all()
    authors = {u.id: u.display_name for u in User.query.filter(
        User.id.in_([thread.user_id, thread.partner_id])).all()}
    conversation = [{"author": authors.get(m.user_id, "Partner"), "text": m.content} for m in messages]
    return jsonify(get_ai_service().analyze_conflict(conversation))


@conflicts_bp.route('/transform-conflict', methods=['POST'])
@auth_required
def transform_conflict():
    try:
        loaded = TransformConflictSchema().load(request_data())
    except ValidationError as e:
        return validation_error(e)
    return jsonify(get_ai_service().transform_conflict_message(loaded['message'], loaded.get('topic')))
