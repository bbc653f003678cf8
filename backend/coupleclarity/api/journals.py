"""
Journal API routes for private reflections and entries shared with a partner.
"""
import datetime
import logging
from flask import Blueprint, request, jsonify, g
from marshmallow import fields, validate, ValidationError
from sqlalchemy import or_

from ..models import db, JournalEntry, JournalResponse, utcnow, isoformat
from ..utils.ai_service import get_ai_service
from ..utils.auth_adapter import auth_required
from ..utils.notifications import notify
from ..utils.partners import get_active_partnership, partner_id_for
from ..utils.validation import BaseSchema, request_data, validation_error

journals_bp = Blueprint('journals', __name__)
logger = logging.getLogger(__name__)

RECENT_DAYS = 7
RECENT_LIMIT = 5


# Validation schema for journal creation/updates
class JournalSchema(BaseSchema):
    """Schema for validating journal data."""
    title = fields.String(required=True, validate=validate.Length(min=1, max=200))
    content = fields.String(required=True, validate=validate.Length(min=1))
    raw_content = fields.String(data_key='rawContent', allow_none=True)
    is_private = fields.Boolean(data_key='isPrivate', load_default=True)
    is_shared = fields.Boolean(data_key='isShared', load_default=False)
    emotions = fields.List(fields.String(), allow_none=True)
    ai_summary = fields.String(data_key='aiSummary', allow_none=True)
    ai_refined_content = fields.String(data_key='aiRefinedContent', allow_none=True)
    emotional_insight = fields.String(data_key='emotionalInsight', allow_none=True)
    emotional_score = fields.Integer(data_key='emotionalScore', allow_none=True,
                                     validate=validate.Range(min=1, max=10))
    suggested_response = fields.String(data_key='suggestedResponse', allow_none=True)
    suggested_boundary = fields.String(data_key='suggestedBoundary', allow_none=True)
    reflection_prompt = fields.String(data_key='reflectionPrompt', allow_none=True)
    pattern_category = fields.String(data_key='patternCategory', allow_none=True)


class AnalyzeSchema(BaseSchema):
    journal_entry = fields.String(required=True, data_key='journalEntry', validate=validate.Length(min=1))
    title = fields.String(required=True, validate=validate.Length(min=1))
    entry_id = fields.Integer(data_key='entryId', allow_none=True)


class GenerateResponseSchema(BaseSchema):
    journal_content = fields.String(required=True, data_key='journalContent', validate=validate.Length(min=1))
    prompt = fields.String(required=True, validate=validate.Length(min=1))
    journal_entry_id = fields.Integer(data_key='journalEntryId', allow_none=True)


class RespondSchema(BaseSchema):
    content = fields.String(required=True, validate=validate.Length(min=1, max=2000))


def _entry_summary(entry):
    return {"id": entry.id, "title": entry.title, "date": isoformat(entry.created_at)}


def _newest_first(query):
    return query.order_by(JournalEntry.created_at.desc(), JournalEntry.id.desc())


@journals_bp.route('/journal', methods=['GET'])
@auth_required
def get_journal_entries():
    """Get the user's journal entries.

    Query params:
        isPrivate: 'true' or 'false' to filter by privacy.
        limit: Maximum number of entries.

    Returns:
        JSON list of journal entries, newest first.
    """
    query = JournalEntry.query.filter_by(user_id=g.current_user.id)
    is_private = request.args.get('isPrivate')
    if is_private is not None:
        query = query.filter_by(is_private=is_private == 'true')
    query = _newest_first(query)
    limit = request.args.get('limit', type=int)
    if limit:
        query = query.limit(limit)
    return jsonify([entry.to_dict() for entry in query.all()])


@journals_bp.route('/journal/shared', methods=['GET'])
@auth_required
def get_shared_entries():
    """Shared entries written by the user or their partner."""
    user_id = g.current_user.id
    partnership = get_active_partnership(user_id)
    if not partnership:
        return jsonify({"error": "No active partnership found"}), 404

    partner_id = partnership.partner_of(user_id)
    query = _newest_first(JournalEntry.query.filter(
        or_(JournalEntry.user_id == user_id, JournalEntry.user_id == partner_id),
        JournalEntry.is_shared.is_(True),
    ))
    limit = request.args.get('limit', type=int)
    if limit:
        query = query.limit(limit)
    return jsonify([entry.to_dict() for entry in query.all()])


@journals_bp.route('/journal/recent', methods=['GET'])
@auth_required
def get_recent_entries():
    since = utcnow() - datetime.timedelta(days=RECENT_DAYS)
    entries = _newest_first(JournalEntry.query.filter(
        JournalEntry.user_id == g.current_user.id,
        JournalEntry.created_at >= since,
    )).limit(RECENT_LIMIT).all()
    return jsonify({"count": len(entries), "entries": [_entry_summary(e) for e in entries]})


@journals_bp.route('/journal/partner-activity', methods=['GET'])
@auth_required
def get_partner_activity():
    """Shared partner entries the user has not responded to yet."""
    partner_id = partner_id_for(g.current_user.id)
    if partner_id is None:
        return jsonify({"error": "Partnership not found"}), 404

    unread = _newest_first(JournalEntry.query.filter_by(
        user_id=partner_id, is_shared=True, has_partner_response=False)).all()
    return jsonify({
        "unreadCount": len(unread),
        "latestEntry": _entry_summary(unread[0]) if unread else None,
    })


def _readable_entry(entry_id):
    entry = db.session.get(JournalEntry, entry_id)
    if not entry:
        return None, (jsonify({"error": "Journal entry not found"}), 404)
    user_id = g.current_user.id
    if entry.user_id == user_id:
        return entry, None
    if entry.is_shared and partner_id_for(user_id, active_only=True) == entry.user_id:
        return entry, None
    return None, (jsonify({"error": "You do not have permission to view this journal entry"}), 403)


def _owned_entry(entry_id):
    entry = db.session.get(JournalEntry, entry_id)
    if not entry:
        return None, (jsonify({"error": "Journal entry not found"}), 404)
    if entry.user_id != g.current_user.id:
        return None, (jsonify({"error": "You do not have permission to modify this journal entry"}), 403)
    return entry, None


@journals_bp.route('/journal/<int:entry_id>', methods=['GET'])
@auth_required
def get_journal_entry(entry_id):
    entry, error = _readable_entry(entry_id)
    if error:
        return error
    data = entry.to_dict()
    data["responses"] = [r.to_dict() for r in entry.responses]
    return jsonify(data)


@journals_bp.route('/journal', methods=['POST'])
@auth_required
def create_journal_entry():
    """Create a journal entry; a shared entry is announced to the partner."""
    try:
        loaded = JournalSchema().load(request_data())
    except ValidationError as e:
        logger.warning(f"Validation error: {e.messages}")
        return validation_error(e)

    user = g.current_user
    partner_id = partner_id_for(user.id, active_only=True) if loaded['is_shared'] else None
    try:
        entry = JournalEntry(
            user_id=user.id,
            title=loaded.pop('title'),
            content=loaded.pop('content'),
            raw_content=loaded.pop('raw_content', None),
            is_private=loaded.pop('is_private'),
            is_shared=loaded.pop('is_shared'),
            partner_id=partner_id,
            emotions=loaded.pop('emotions', None),
            **loaded
        )
        db.session.add(entry)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error creating journal entry: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to create journal entry"}), 500

    if entry.is_shared and partner_id:
        notify(partner_id, 'journal_entry', {"entryId": entry.id, "title": entry.title, "authorId": user.id},
               title="New shared journal entry", body=f"{user.display_name} shared a journal entry with you.",
               url=f"/journal?entry={entry.id}")

    logger.info(f"Created journal entry: {entry.title}")
    return jsonify(entry.to_dict()), 201


@journals_bp.route('/journal/<int:entry_id>', methods=['PUT'])
@auth_required
def update_journal_entry(entry_id):
    try:
        loaded = JournalSchema(partial=True).load(request_data())
    except ValidationError as e:
        return validation_error(e)

    entry, error = _owned_entry(entry_id)
    if error:
        return error

    user_id = g.current_user.id
    try:
        for key, value in loaded.items():
            setattr(entry, key, value)
        # raw content is never empty, a cleared value falls back to the edited text
        if entry.raw_content is None:
            entry.raw_content = entry.content
        if entry.is_shared and not entry.partner_id:
            entry.partner_id = partner_id_for(user_id, active_only=True)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error updating journal entry: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to update journal entry"}), 500

    if entry.is_shared and entry.partner_id:
        notify(entry.partner_id, 'journal_entry_update', {"entryId": entry.id, "title": entry.title})
    return jsonify(entry.to_dict())


@journals_bp.route('/journal/<int:entry_id>', methods=['DELETE'])
@auth_required
def delete_journal_entry(entry_id):
    entry, error = _owned_entry(entry_id)
    if error:
        return error

    was_shared, partner_id = entry.is_shared, entry.partner_id
    try:
        db.session.delete(entry)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error deleting journal entry: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to delete journal entry"}), 500

    if was_shared and partner_id:
        notify(partner_id, 'journal_entry_deleted', {"entryId": entry_id})
    return jsonify({"message": "Journal entry deleted successfully"})


@journals_bp.route('/journal/<int:entry_id>/mark-resolved', methods=['POST'])
@auth_required
def mark_resolved(entry_id):
    entry, error = _owned_entry(entry_id)
    if error:
        return error

    user = g.current_user
    try:
        entry.has_partner_response = True
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error marking journal entry resolved: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to mark journal entry as resolved"}), 500

    notify(partner_id_for(user.id, active_only=True), 'journal_entry_update',
           {"entryId": entry.id, "resolved": True},
           title="Journal Entry Updated", body=f"{user.display_name} has marked a journal entry as resolved",
           url=f"/journal?entry={entry.id}")
    return jsonify(entry.to_dict())


@journals_bp.route('/journal/<int:entry_id>/respond', methods=['POST'])
@auth_required
def respond_to_entry(entry_id):
    """Partner reply to a shared entry."""
    try:
        loaded = RespondSchema().load(request_data())
    except ValidationError as e:
        return validation_error(e)

    entry, error = _readable_entry(entry_id)
    if error:
        return error
    user = g.current_user
    if entry.user_id == user.id:
        return jsonify({"error": "You cannot respond to your own journal entry"}), 400
    if not entry.is_shared:
        return jsonify({"error": "This journal entry is not shared"}), 400

    try:
        response = JournalResponse(journal_entry_id=entry.id, user_id=user.id, content=loaded['content'])
        db.session.add(response)
        entry.has_partner_response = True
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error responding to journal entry: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to respond to journal entry"}), 500

    notify(entry.user_id, 'journal_response', {"entryId": entry.id, "responseId": response.id},
           title="Your partner responded", body=f"{user.display_name} responded to your journal entry.",
           url=f"/journal?entry={entry.id}")
    return jsonify(response.to_dict()), 201


@journals_bp.route('/journal/analyze', methods=['POST'])
@auth_required
def analyze_entry():
    try:
        loaded = AnalyzeSchema().load(request_data())
    except ValidationError as e:
        return validation_error(e)

    previous = []
    if loaded.get('entry_id'):
        recent = _newest_first(JournalEntry.query.filter(
            JournalEntry.user_id == g.current_user.id,
            JournalEntry.id != loaded['entry_id'],
        )).limit(3).all()
        previous = [{"title": e.title, "content": e.content, "date": isoformat(e.created_at)} for e in recent]

    return jsonify(get_ai_service().analyze_journal_entry(loaded['journal_entry'], loaded['title'], previous))


@journals_bp.route('/journal/generate-response', methods=['POST'])
@auth_required
def generate_response():
    try:
        loaded = GenerateResponseSchema().load(request_data())
    except ValidationError as e:
        return validation_error(e)

    return jsonify(get_ai_service().generate_journal_response(loaded['journal_content'], loaded['prompt']))
