"""
Guided communication exercise routes.

Partners take turns answering the steps of an exercise. The exercise's
``current_user_id`` holds the turn and moves as responses come in.
"""
import json
import logging
from flask import Blueprint, request, jsonify, g
from marshmallow import fields, validate, validates_schema, ValidationError
from sqlalchemy import or_

from ..models import db, ExerciseTemplate, CommunicationExercise, ExerciseStep, ExerciseResponse
from ..models.exercise import EXERCISE_TYPES, EXERCISE_STATUSES, DIFFICULTY_LEVELS, STEP_ROLES
from ..utils.auth_adapter import auth_required
from ..utils.notifications import notify
from ..utils.partners import get_partnership_for_user
from ..utils.validation import BaseSchema, request_data, validation_error

exercises_bp = Blueprint('exercises', __name__)
logger = logging.getLogger(__name__)


class StepDefinitionSchema(BaseSchema):
    title = fields.String(required=True, validate=validate.Length(min=1, max=200))
    prompt_text = fields.String(required=True, data_key='promptText')
    instructions = fields.String(allow_none=True)
    expected_response_type = fields.String(data_key='expectedResponseType', load_default='text')
    options = fields.List(fields.String(), allow_none=True)
    required_for_completion = fields.Boolean(data_key='requiredForCompletion', load_default=True)
    user_role = fields.String(data_key='userRole', load_default='both', validate=validate.OneOf(STEP_ROLES))
    time_estimate = fields.Integer(data_key='timeEstimate', allow_none=True)


class TemplateSchema(BaseSchema):
    title = fields.String(required=True, validate=validate.Length(min=1, max=200))
    description = fields.String(required=True)
    type = fields.String(required=True, validate=validate.OneOf(EXERCISE_TYPES))
    difficulty_level = fields.String(data_key='difficultyLevel', load_default='beginner',
                                     validate=validate.OneOf(DIFFICULTY_LEVELS))
    estimated_time_minutes = fields.Integer(data_key='estimatedTimeMinutes', load_default=15,
                                            validate=validate.Range(min=1))
    steps = fields.List(fields.Nested(StepDefinitionSchema), required=True, validate=validate.Length(min=1))
    template_data = fields.Dict(data_key='templateData', allow_none=True)


class ExerciseSchema(BaseSchema):
    """An exercise built from a template, or from explicit fields."""
    template_id = fields.Integer(data_key='templateId', allow_none=True)
    title = fields.String(validate=validate.Length(min=1, max=200))
    description = fields.String(allow_none=True)
    type = fields.String(validate=validate.OneOf(EXERCISE_TYPES))
    scheduled_for = fields.DateTime(data_key='scheduledFor', allow_none=True)
    steps = fields.List(fields.Nested(StepDefinitionSchema), load_default=list)

    @validates_schema
    def validate_source(self, data, **kwargs):
        if not data.get('template_id') and not (data.get('title') and data.get('type')):
            raise ValidationError("Either templateId or title and type are required", '_schema')
        if not data.get('template_id') and not data.get('steps'):
            raise ValidationError("An exercise without a template needs at least one step", 'steps')


class StatusSchema(BaseSchema):
    status = fields.String(required=True, validate=validate.OneOf(EXERCISE_STATUSES))


class StepNumberSchema(BaseSchema):
    step_number = fields.Integer(required=True, data_key='stepNumber', validate=validate.Range(min=1))


class ExerciseResponseSchema(BaseSchema):
    step_id = fields.Integer(required=True, data_key='stepId')
    response_text = fields.String(data_key='responseText', allow_none=True)
    response_option = fields.String(data_key='responseOption', allow_none=True)
    audio_url = fields.String(data_key='audioUrl', allow_none=True)


def _definition_to_json(step):
    return {
        "title": step['title'],
        "promptText": step['prompt_text'],
        "instructions": step.get('instructions'),
        "expectedResponseType": step['expected_response_type'],
        "options": step.get('options'),
        "requiredForCompletion": step['required_for_completion'],
        "userRole": step['user_role'],
        "timeEstimate": step.get('time_estimate'),
    }


def _exercise_for_participant(exercise_id):
    exercise = db.session.get(CommunicationExercise, exercise_id)
    if not exercise:
        return None, (jsonify({"error": "Exercise not found"}), 404)
    if not exercise.includes(g.current_user.id):
        return None, (jsonify({"error": "You do not have access to this exercise"}), 403)
    return exercise, None


def _your_turn(exercise, user_id):
    notify(user_id, 'exercise_your_turn',
           {"exerciseId": exercise.id, "stepNumber": exercise.current_step_number, "exerciseName": exercise.title},
           title="Your Turn in Exercise", body=f"It's your turn to respond in the \"{exercise.title}\" exercise",
           url=f"/exercises/{exercise.id}")


def _completed(exercise, user_id):
    notify(user_id, 'exercise_completed', {"exerciseId": exercise.id, "exerciseName": exercise.title},
           title="Exercise Completed", body=f"The \"{exercise.title}\" exercise has been completed",
           url=f"/exercises/{exercise.id}/summary")


@exercises_bp.route('/exercises/templates', methods=['GET'])
@auth_required
def list_templates():
    query = ExerciseTemplate.query.filter_by(is_active=True)
    if request.args.get('type'):
        query = query.filter_by(type=request.args['type'])
    if request.args.get('difficulty'):
        query = query.filter_by(difficulty_level=request.args['difficulty'])
    return jsonify([t.to_dict() for t in query.order_by(ExerciseTemplate.id.asc()).all()])


@exercises_bp.route('/exercises/templates/<int:template_id>', methods=['GET'])
@auth_required
def get_template(template_id):
    template = db.session.get(ExerciseTemplate, template_id)
    if not template:
        return jsonify({"error": "Template not found"}), 404
    return jsonify(template.to_dict())


@exercises_bp.route('/exercises/templates', methods=['POST'])
@auth_required
def create_template():
    try:
        loaded = TemplateSchema().load(request_data())
    except ValidationError as e:
        return validation_error(e)

    try:
        template = ExerciseTemplate(
            title=loaded['title'],
            description=loaded['description'],
            type=loaded['type'],
            difficulty_level=loaded['difficulty_level'],
            estimated_time_minutes=loaded['estimated_time_minutes'],
            total_steps=len(loaded['steps']),
            steps=json.dumps([_definition_to_json(s) for s in loaded['steps']]),
            template_data=loaded.get('template_data'),
            is_active=True,
        )
        db.session.add(template)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error creating exercise template: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to create exercise template"}), 500

    return jsonify(template.to_dict()), 201


@exercises_bp.route('/exercises', methods=['POST'])
@auth_required
def create_exercise():
    """Start an exercise with the partner.

    Template steps, or explicitly supplied steps, become the exercise's step
    rows. The initiator holds the first turn.

    Returns:
        JSON response with the created exercise.
    """
    try:
        loaded = ExerciseSchema().load(request_data())
    except ValidationError as e:
        return validation_error(e)

    user = g.current_user
    partnership = get_partnership_for_user(user.id)
    if not partnership:
        return jsonify({"error": "No active partnership found"}), 404

    template = None
    if loaded.get('template_id'):
        template = db.session.get(ExerciseTemplate, loaded['template_id'])
        if not template:
            return jsonify({"error": "Template not found"}), 404
    definitions = template.step_definitions() if template else \
        [_definition_to_json(s) for s in loaded['steps']]

    scheduled_for = loaded.get('scheduled_for')
    try:
        exercise = CommunicationExercise(
            partnership_id=partnership.id,
            initiator_id=user.id,
            partner_id=partnership.partner_of(user.id),
            template_id=template.id if template else None,
            title=loaded.get('title') or template.title,
            description=loaded.get('description') or (template.description if template else None),
            type=loaded.get('type') or template.type,
            status='not_started',
            current_step_number=1,
            total_steps=max(len(definitions), 1),
            current_user_id=user.id,
            scheduled_for=scheduled_for.replace(tzinfo=None) if scheduled_for else None,
        )
        db.session.add(exercise)
        db.session.flush()
        for number, definition in enumerate(definitions, start=1):
            db.session.add(ExerciseStep.from_definition(exercise.id, number, definition))
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error creating exercise: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to create exercise"}), 500

    notify(exercise.partner_id, 'new_exercise',
           {"exerciseId": exercise.id, "initiatorId": user.id, "exerciseName": exercise.title},
           title="New Communication Exercise",
           body=f"{user.first_name} has started a new communication exercise: {exercise.title}",
           url=f"/exercises/{exercise.id}")
    logger.info(f"Created exercise {exercise.id} with {len(definitions)} steps")
    return jsonify(exercise.to_dict()), 201


@exercises_bp.route('/exercises', methods=['GET'])
@auth_required
def list_exercises():
    user_id = g.current_user.id
    query = CommunicationExercise.query.filter(
        or_(CommunicationExercise.initiator_id == user_id, CommunicationExercise.partner_id == user_id))
    status = request.args.get('status')
    if status:
        query = query.filter(CommunicationExercise.status == status)
    exercises = query.order_by(CommunicationExercise.created_at.desc(), CommunicationExercise.id.desc()).all()
    return jsonify([e.to_dict() for e in exercises])


@exercises_bp.route('/exercises/<int:exercise_id>', methods=['GET'])
@auth_required
def get_exercise(exercise_id):
    exercise, error = _exercise_for_participant(exercise_id)
    if error:
        return error
    return jsonify(exercise.to_dict())


@exercises_bp.route('/exercises/<int:exercise_id>/steps', methods=['GET'])
@auth_required
def list_steps(exercise_id):
    exercise, error = _exercise_for_participant(exercise_id)
    if error:
        return error
    return jsonify([s.to_dict() for s in exercise.steps.all()])


@exercises_bp.route('/exercises/<int:exercise_id>/status', methods=['PATCH'])
@auth_required
def update_status(exercise_id):
    try:
        loaded = StatusSchema().load(request_data())
    except ValidationError as e:
        return validation_error(e)

    exercise, error = _exercise_for_participant(exercise_id)
    if error:
        return error

    user_id = g.current_user.id
    try:
        if loaded['status'] == 'completed':
            exercise.complete()
        else:
            exercise.status = loaded['status']
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error updating exercise status: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to update exercise status"}), 500

    if exercise.status == 'completed':
        _completed(exercise, exercise.other_participant(user_id))
    return jsonify(exercise.to_dict())


@exercises_bp.route('/exercises/<int:exercise_id>/step', methods=['PATCH'])
@auth_required
def update_step(exercise_id):
    """Jump to a step; the turn follows the step's role."""
    try:
        loaded = StepNumberSchema().load(request_data())
    except ValidationError as e:
        return validation_error(e)

    exercise, error = _exercise_for_participant(exercise_id)
    if error:
        return error
    step = exercise.step(loaded['step_number'])
    if not step:
        return jsonify({"error": "Step not found"}), 404

    user_id = g.current_user.id
    try:
        exercise.current_step_number = step.step_number
        if step.user_role != 'both':
            exercise.current_user_id = exercise.user_for_role(step.user_role)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error updating exercise step: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to update exercise step"}), 500

    if exercise.current_user_id != user_id:
        _your_turn(exercise, exercise.current_user_id)
    return jsonify(exercise.to_dict())


def _advance(exercise, step, user_id):
    """Move the turn after ``user_id`` answered ``step``.

    Returns:
        Tuple of (event, recipient) to notify, or None.
    """
    other = exercise.other_participant(user_id)
    answered = {r.user_id for r in ExerciseResponse.query.filter_by(step_id=step.id).all()}
    both_answered = exercise.initiator_id in answered and exercise.partner_id in answered

    if step.user_role != 'both' or both_answered:
        next_step = exercise.step(exercise.current_step_number + 1)
        if next_step is None:
            exercise.complete()
            return 'completed', other
        exercise.current_step_number = next_step.step_number
        exercise.current_user_id = exercise.user_for_role(next_step.user_role, current=user_id)
        exercise.status = 'in_progress'
    else:
        exercise.current_user_id = other
        exercise.status = 'partner_turn'

    if exercise.current_user_id != user_id:
        return 'your_turn', exercise.current_user_id
    return None


@exercises_bp.route('/exercises/<int:exercise_id>/responses', methods=['POST'])
@auth_required
def submit_response(exercise_id):
    try:
        loaded = ExerciseResponseSchema().load(request_data())
    except ValidationError as e:
        return validation_error(e)

    exercise, error = _exercise_for_participant(exercise_id)
    if error:
        return error
    user_id = g.current_user.id
    if exercise.status == 'completed':
        return jsonify({"error": "This exercise is already completed"}), 400
    if exercise.current_user_id != user_id:
        return jsonify({"error": "It is not your turn to respond"}), 403

    step = db.session.get(ExerciseStep, loaded['step_id'])
    if not step or step.exercise_id != exercise.id:
        return jsonify({"error": "Step not found"}), 404
    if step.step_number != exercise.current_step_number:
        return jsonify({"error": "This step is not the current step"}), 409
    if ExerciseResponse.query.filter_by(step_id=step.id, user_id=user_id).first():
        return jsonify({"error": "You have already responded to this step"}), 400

    try:
        response = ExerciseResponse(
            exercise_id=exercise.id,
            step_id=step.id,
            user_id=user_id,
            response_text=loaded.get('response_text'),
            response_option=loaded.get('response_option'),
            audio_url=loaded.get('audio_url'),
        )
        db.session.add(response)
        db.session.flush()
        outcome = _advance(exercise, step, user_id)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error submitting exercise response: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to submit exercise response"}), 500

    if outcome:
        event, recipient = outcome
        if event == 'completed':
            _completed(exercise, recipient)
        else:
            _your_turn(exercise, recipient)
    return jsonify(response.to_dict()), 201


@exercises_bp.route('/exercises/<int:exercise_id>/responses', methods=['GET'])
@auth_required
def list_responses(exercise_id):
    exercise, error = _exercise_for_participant(exercise_id)
    if error:
        return error
    responses = exercise.responses.order_by(ExerciseResponse.created_at.asc(), ExerciseResponse.id.asc()).all()
    return jsonify([r.to_dict() for r in responses])
