"""
Weekly check-in routes.
"""
import logging
from flask import Blueprint, request, jsonify, g
from marshmallow import fields, validate, ValidationError

from ..models import db, CheckInPrompt, CheckInResponse, isoformat
from ..models.check_in import week_start
from ..utils.auth_adapter import auth_required
from ..utils.notifications import notify
from ..utils.partners import are_partners, partner_id_for
from ..utils.validation import BaseSchema, request_data, validation_error

check_ins_bp = Blueprint('check_ins', __name__)
logger = logging.getLogger(__name__)

PROMPTS_PER_CHECK_IN = 3


class PromptAnswerSchema(BaseSchema):
    prompt_id = fields.Integer(required=True, data_key='promptId')
    response = fields.String(required=True, validate=validate.Length(min=1))


class CheckInSchema(BaseSchema):
    responses = fields.List(fields.Nested(PromptAnswerSchema), required=True, validate=validate.Length(min=1))
    is_shared = fields.Boolean(data_key='isShared', load_default=False)


@check_ins_bp.route('/check-in/prompts', methods=['GET'])
@auth_required
def get_prompts():
    prompts = CheckInPrompt.query.filter_by(active=True).order_by(CheckInPrompt.id.asc()) \
        .limit(PROMPTS_PER_CHECK_IN).all()
    return jsonify([p.to_dict() for p in prompts])


@check_ins_bp.route('/check-in/latest', methods=['GET'])
@auth_required
def get_latest():
    """This week's check-in for the caller, or for the partner given by ``userId``.

    Returns:
        JSON with ``needsNewCheckIn``, ``currentWeek`` and the week's responses.
    """
    user_id = g.current_user.id
    target_id = request.args.get('userId', type=int) or user_id
    if target_id != user_id and not are_partners(user_id, target_id):
        return jsonify({"error": "Not authorized to view these check-ins"}), 403

    current_week = week_start()
    query = CheckInResponse.query.filter_by(user_id=target_id, week_of=current_week)
    if target_id != user_id:
        query = query.filter_by(is_shared=True)
    responses = query.order_by(CheckInResponse.id.asc()).all()
    return jsonify({
        "needsNewCheckIn": not responses,
        "currentWeek": isoformat(current_week),
        "responses": [r.to_dict() for r in responses],
    })


@check_ins_bp.route('/check-in/responses', methods=['POST'])
@auth_required
def submit_responses():
    try:
        loaded = CheckInSchema().load(request_data())
    except ValidationError as e:
        return validation_error(e)

    answers = loaded['responses']
    prompt_ids = {a['prompt_id'] for a in answers}
    known = {p.id for p in CheckInPrompt.query.filter(CheckInPrompt.id.in_(prompt_ids)).all()}
    missing = sorted(prompt_ids - known)
    if missing:
        return jsonify({"error": "Unknown check-in prompt", "details": {"promptId": missing}}), 400
    if any(not a['response'].strip() for a in answers):
        return jsonify({"error": "Responses cannot be empty"}), 400

    user = g.current_user
    current_week = week_start()
    try:
        saved = []
        for answer in answers:
            row = CheckInResponse(user_id=user.id, prompt_id=answer['prompt_id'], response=answer['response'],
                                  week_of=current_week, is_shared=loaded['is_shared'])
            db.session.add(row)
            saved.append(row)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error saving check-in responses: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to save check-in"}), 500

    if loaded['is_shared']:
        notify(partner_id_for(user.id), 'weekly_check_in_shared',
               {"userId": user.id, "weekOf": isoformat(current_week)},
               title="Weekly check-in shared", body=f"{user.display_name} shared their weekly check-in.",
               url="/check-in")
    return jsonify([r.to_dict() for r in saved]), 201
