"""
AI-facilitated therapy sessions generated from a couple's recent journals and conflict discussions.
"""
import datetime
import logging
from flask import Blueprint, jsonify, g
from marshmallow import fields, ValidationError
from sqlalchemy import or_

from ..models import db, JournalEntry, ConflictThread, ConflictMessage, TherapySession, utcnow, isoformat
from ..utils.ai_service import get_ai_service
from ..utils.auth_adapter import auth_required
from ..utils.notifications import notify
from ..utils.partners import get_active_partnership, get_partnership_for_user
from ..utils.validation import BaseSchema, request_data, validation_error

therapy_sessions_bp = Blueprint('therapy_sessions', __name__)
logger = logging.getLogger(__name__)

SESSION_WINDOW_DAYS = 14


class TherapySessionUpdateSchema(BaseSchema):
    user_notes = fields.String(data_key='userNotes', allow_none=True)
    is_reviewed = fields.Boolean(data_key='isReviewed')


def _entry_digest(entry):
    return {"title": entry.title, "content": entry.content, "emotions": entry.emotions or [],
            "date": isoformat(entry.created_at)}


def _session_material(user, partner_id):
    """Journal and conflict material from the last two weeks, as seen by ``user``."""
    cutoff = utcnow() - datetime.timedelta(days=SESSION_WINDOW_DAYS)

    own_entries = JournalEntry.query.filter(JournalEntry.user_id == user.id, JournalEntry.created_at >= cutoff) \
        .order_by(JournalEntry.created_at.asc()).all()
    partner_entries = JournalEntry.query.filter(
        JournalEntry.user_id == partner_id,
        JournalEntry.is_shared.is_(True),
        JournalEntry.partner_id == user.id,
        JournalEntry.created_at >= cutoff,
    ).order_by(JournalEntry.created_at.asc()).all()

    threads = ConflictThread.query.filter(
        or_(ConflictThread.user_id == user.id, ConflictThread.partner_id == user.id),
        ConflictThread.created_at >= cutoff,
    ).order_by(ConflictThread.created_at.asc()).all()
    conflicts = []
    for thread in threads:
        messages = thread.messages.order_by(ConflictMessage.created_at.asc(), ConflictMessage.id.asc()).all()
        if not messages:
            continue
        conflicts.append({
            "topic": thread.topic,
            "messages": [{
                "author": user.first_name if m.user_id == user.id else "Partner",
                "content": m.content,
                "date": isoformat(m.created_at),
            } for m in messages],
        })

    return [_entry_digest(e) for e in own_entries], [_entry_digest(e) for e in partner_entries], conflicts


def _session_for_member(session_id):
    """Load a session the caller's current partnership owns."""
    session = db.session.get(TherapySession, session_id)
    if not session:
        return None, (jsonify({"error": "Therapy session not found"}), 404)
    partnership = get_partnership_for_user(g.current_user.id)
    if not partnership or partnership.id != session.partnership_id:
        return None, (jsonify({"error": "You don't have permission to access this session"}), 403)
    return session, None


@therapy_sessions_bp.route('/therapy-sessions', methods=['POST'])
@auth_required
def create_therapy_session():
    user = g.current_user
    partnership = get_active_partnership(user.id)
    if not partnership:
        return jsonify({"error": "No active partnership found"}), 400
    partner_id = partnership.partner_of(user.id)

    own_entries, partner_entries, conflicts = _session_material(user, partner_id)
    generated = get_ai_service().generate_therapy_session(own_entries, partner_entries, conflicts)

    try:
        session = TherapySession(
            partnership_id=partnership.id,
            transcript=generated['transcript'],
            emotional_patterns=generated['summary']['emotionalPatterns'],
            core_issues=generated['summary']['coreIssues'],
            recommendations=generated['summary']['recommendations'],
            created_by_id=user.id,
        )
        db.session.add(session)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error saving therapy session: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to generate therapy session"}), 500

    notify(partner_id, 'therapy_session', {"sessionId": session.id, "createdBy": user.first_name})
    logger.info(f"Generated therapy session {session.id} for partnership {partnership.id}")
    return jsonify(session.to_dict()), 201


@therapy_sessions_bp.route('/therapy-sessions', methods=['GET'])
@auth_required
def list_therapy_sessions():
    partnership = get_partnership_for_user(g.current_user.id)
    if not partnership:
        return jsonify({"error": "No active partnership found"}), 400
    sessions = TherapySession.query.filter_by(partnership_id=partnership.id) \
        .order_by(TherapySession.created_at.desc(), TherapySession.id.desc()).all()
    return jsonify([session.to_dict() for session in sessions])


@therapy_sessions_bp.route('/therapy-sessions/<int:session_id>', methods=['GET'])
@auth_required
def get_therapy_session(session_id):
    session, error = _session_for_member(session_id)
    if error:
        return error
    return jsonify(session.to_dict())


@therapy_sessions_bp.route('/therapy-sessions/<int:session_id>', methods=['PUT'])
@auth_required
def update_therapy_session(session_id):
    """Save the caller's notes and the reviewed flag; reviewing stamps ``reviewedAt``."""
    try:
        loaded = TherapySessionUpdateSchema().load(request_data())
    except ValidationError as e:
        return validation_error(e)

    session, error = _session_for_member(session_id)
    if error:
        return error

    try:
        if 'user_notes' in loaded:
            session.user_notes = loaded['user_notes']
        if 'is_reviewed' in loaded:
            session.mark_reviewed(loaded['is_reviewed'])
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error updating therapy session: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to update therapy session"}), 500

    return jsonify(session.to_dict())
