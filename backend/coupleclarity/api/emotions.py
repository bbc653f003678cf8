"""
Emotion routes: the current emotion shared between partners, the emotional
expression log, and trend and pattern summaries built from journals and the log.
"""
import datetime
import logging
from flask import Blueprint, jsonify, g, request
from marshmallow import fields, validate, ValidationError

from ..models import db, CurrentEmotion, EmotionalExpression, JournalEntry, utcnow, isoformat
from ..utils.ai_service import get_ai_service, EMOTION_PATTERNS_NO_DATA
from ..utils.auth_adapter import auth_required
from ..utils.notifications import notify
from ..utils.partners import get_active_partnership, partner_id_for
from ..utils.validation import BaseSchema, request_data, validation_error

emotions_bp = Blueprint('emotions', __name__)
logger = logging.getLogger(__name__)

TREND_DAYS = 14
PATTERN_DAYS = 30
# average score change between the older and newer half that counts as a trend
TREND_THRESHOLD = 0.5
DEFAULT_SCORE = 5


class CurrentEmotionSchema(BaseSchema):
    emotion = fields.String(required=True, validate=validate.Length(min=1, max=100))
    intensity = fields.Integer(load_default=5, validate=validate.Range(min=1, max=10))
    note = fields.String(allow_none=True)


class EmotionalExpressionSchema(BaseSchema):
    emotion = fields.String(required=True, validate=validate.Length(min=1, max=100))
    context = fields.String(required=True, validate=validate.Length(min=1))
    intensity = fields.Integer(load_default=5, validate=validate.Range(min=1, max=10))
    related_item_id = fields.Integer(data_key='relatedItemId', allow_none=True)
    related_item_type = fields.String(data_key='relatedItemType', allow_none=True,
                                      validate=validate.Length(max=50))
    tags = fields.List(fields.String(), load_default=list)


class EmotionalExpressionUpdateSchema(BaseSchema):
    emotion = fields.String(validate=validate.Length(min=1, max=100))
    context = fields.String(validate=validate.Length(min=1))
    intensity = fields.Integer(validate=validate.Range(min=1, max=10))
    tags = fields.List(fields.String())
    ai_processed = fields.Boolean(data_key='aiProcessed')
    ai_insight = fields.String(data_key='aiInsight', allow_none=True)


@emotions_bp.route('/current-emotion', methods=['GET'])
@auth_required
def get_current_emotion():
    emotion = CurrentEmotion.query.filter_by(user_id=g.current_user.id).first()
    if not emotion:
        return jsonify({"error": "No current emotion set"}), 404
    return jsonify(emotion.to_dict())


@emotions_bp.route('/current-emotion', methods=['POST'])
@auth_required
def set_current_emotion():
    """Create or replace the caller's current emotion."""
    try:
        loaded = CurrentEmotionSchema().load(request_data())
    except ValidationError as e:
        return validation_error(e)

    user = g.current_user
    try:
        emotion = CurrentEmotion.query.filter_by(user_id=user.id).first()
        if emotion is None:
            emotion = CurrentEmotion(user_id=user.id)
            db.session.add(emotion)
        emotion.emotion = loaded['emotion']
        emotion.intensity = loaded['intensity']
        emotion.note = loaded.get('note')
        emotion.updated_at = utcnow()
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error saving current emotion: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to update emotion"}), 500

    notify(partner_id_for(user.id, active_only=True), 'emotion_update', emotion.to_dict(),
           title="Partner emotion update",
           body=f"{user.display_name} is feeling {emotion.emotion}.", url="/dashboard")
    return jsonify(emotion.to_dict())


@emotions_bp.route('/partner/current-emotion', methods=['GET'])
@auth_required
def get_partner_emotion():
    user_id = g.current_user.id
    partnership = get_active_partnership(user_id)
    if not partnership:
        return jsonify({"error": "No active partnership found"}), 404
    emotion = CurrentEmotion.query.filter_by(user_id=partnership.partner_of(user_id)).first()
    if not emotion:
        return jsonify({"error": "Partner has not shared an emotion"}), 404
    return jsonify(emotion.to_dict())


# --- Emotional expressions ---

def _owned_expression(expression_id):
    expression = db.session.get(EmotionalExpression, expression_id)
    if not expression:
        return None, (jsonify({"error": "Emotional expression not found"}), 404)
    if expression.user_id != g.current_user.id:
        return None, (jsonify({"error": "Not authorized to access this emotional expression"}), 403)
    return expression, None


@emotions_bp.route('/emotional-expressions', methods=['POST'])
@auth_required
def create_emotional_expression():
    try:
        loaded = EmotionalExpressionSchema().load(request_data())
    except ValidationError as e:
        return validation_error(e)

    try:
        expression = EmotionalExpression(user_id=g.current_user.id, **loaded)
        db.session.add(expression)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error creating emotional expression: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to create emotional expression"}), 500

    return jsonify(expression.to_dict()), 201


@emotions_bp.route('/emotional-expressions', methods=['GET'])
@auth_required
def list_emotional_expressions():
    """The caller's expressions, newest first; ``?limit=`` caps the count."""
    query = EmotionalExpression.query.filter_by(user_id=g.current_user.id) \
        .order_by(EmotionalExpression.created_at.desc(), EmotionalExpression.id.desc())
    limit = request.args.get('limit', type=int)
    if limit:
        query = query.limit(limit)
    return jsonify([expression.to_dict() for expression in query.all()])


@emotions_bp.route('/emotional-expressions/<int:expression_id>', methods=['GET'])
@auth_required
def get_emotional_expression(expression_id):
    expression, error = _owned_expression(expression_id)
    if error:
        return error
    return jsonify(expression.to_dict())


@emotions_bp.route('/emotional-expressions/<int:expression_id>', methods=['PUT'])
@auth_required
def update_emotional_expression(expression_id):
    try:
        loaded = EmotionalExpressionUpdateSchema().load(request_data())
    except ValidationError as e:
        return validation_error(e)

    expression, error = _owned_expression(expression_id)
    if error:
        return error

    try:
        for key, value in loaded.items():
            setattr(expression, key, value)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error updating emotional expression: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to update emotional expression"}), 500

    return jsonify(expression.to_dict())


@emotions_bp.route('/emotional-expressions/<int:expression_id>', methods=['DELETE'])
@auth_required
def delete_emotional_expression(expression_id):
    expression, error = _owned_expression(expression_id)
    if error:
        return error

    try:
        db.session.delete(expression)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error deleting emotional expression: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to delete emotional expression"}), 500

    return '', 204


# --- Trends and patterns ---

def _journal_entries_since(user_id, days):
    cutoff = utcnow() - datetime.timedelta(days=days)
    return JournalEntry.query.filter(JournalEntry.user_id == user_id, JournalEntry.created_at >= cutoff) \
        .order_by(JournalEntry.created_at.asc(), JournalEntry.id.asc()).all()


def _average_score(entries):
    if not entries:
        return DEFAULT_SCORE
    return sum(entry.emotional_score or DEFAULT_SCORE for entry in entries) / len(entries)


@emotions_bp.route('/emotions/trends', methods=['GET'])
@auth_required
def get_emotion_trends():
    """Dominant journal emotion and score direction over the last two weeks.

    Entries are split into an older and a newer half; the trend is ``improving``
    or ``declining`` when the average emotional score moved by more than
    TREND_THRESHOLD between them, else ``stable``.
    """
    entries = _journal_entries_since(g.current_user.id, TREND_DAYS)
    if not entries:
        return jsonify({"dominant": None, "trend": "neutral",
                        "insight": "Start journaling to receive emotional insights"})

    counts = {}
    for entry in entries:
        for emotion in entry.emotions or []:
            counts[emotion] = counts.get(emotion, 0) + 1
    dominant = 'neutral'
    max_count = 0
    for emotion, count in counts.items():
        if count > max_count:
            dominant, max_count = emotion, count

    midpoint = len(entries) // 2
    older_avg = _average_score(entries[:midpoint])
    newer_avg = _average_score(entries[midpoint:])
    if newer_avg - older_avg > TREND_THRESHOLD:
        trend = 'improving'
        insight = (f"Your emotional well-being seems to be improving. "
                   f"You've been expressing {dominant} more frequently.")
    elif older_avg - newer_avg > TREND_THRESHOLD:
        trend = 'declining'
        insight = (f"You've been experiencing more {dominant} lately. "
                   f"Consider exploring what might be contributing to this.")
    else:
        trend = 'stable'
        insight = (f"Your emotional patterns have been consistent, "
                   f"with {dominant} being your most expressed emotion.")

    return jsonify({"dominant": dominant, "trend": trend, "insight": insight})


def _partner_emotion_summary(partner_id):
    expressions = EmotionalExpression.query.filter_by(user_id=partner_id) \
        .order_by(EmotionalExpression.created_at.desc()).all()
    counts = {}
    for expression in expressions:
        counts[expression.emotion] = counts.get(expression.emotion, 0) + 1
    dominant = [emotion for emotion, _ in sorted(counts.items(), key=lambda item: item[1], reverse=True)[:3]]

    cutoff = utcnow() - datetime.timedelta(days=TREND_DAYS)
    recent = [{"emotion": e.emotion, "date": isoformat(e.created_at)}
              for e in expressions if e.created_at >= cutoff]
    return {"dominantEmotions": dominant, "recentExpressions": recent}


@emotions_bp.route('/emotions/patterns', methods=['GET'])
@auth_required
def get_emotion_patterns():
    """AI summary of the caller's emotional patterns over the last month."""
    user_id = g.current_user.id
    journal_entries = [{
        "title": entry.title,
        "content": entry.content,
        "emotions": entry.emotions or [],
        "emotionalScore": entry.emotional_score or DEFAULT_SCORE,
        "date": isoformat(entry.created_at),
    } for entry in _journal_entries_since(user_id, PATTERN_DAYS)]

    expressions = [{
        "emotion": expression.emotion,
        "context": expression.context,
        "intensity": expression.intensity,
        "date": isoformat(expression.created_at),
    } for expression in EmotionalExpression.query.filter_by(user_id=user_id)
        .order_by(EmotionalExpression.created_at.desc()).all()]

    if not journal_entries and not expressions:
        return jsonify(EMOTION_PATTERNS_NO_DATA)

    partner_id = partner_id_for(user_id, active_only=True)
    partner_data = _partner_emotion_summary(partner_id) if partner_id else None
    return jsonify(get_ai_service().analyze_emotion_patterns(journal_entries, expressions, partner_data))
