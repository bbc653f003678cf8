"""
Relationship milestone routes.
"""
import logging
from flask import Blueprint, jsonify, g
from marshmallow import fields, validate, ValidationError

from ..models import db, Milestone, Memory
from ..models.partnership import MILESTONE_TYPES
from ..utils.auth_adapter import auth_required
from ..utils.partners import get_partnership_for_user
from ..utils.validation import BaseSchema, request_data, validation_error

milestones_bp = Blueprint('milestones', __name__)
logger = logging.getLogger(__name__)


class MilestoneSchema(BaseSchema):
    """Schema for validating milestone data."""
    type = fields.String(required=True, validate=validate.OneOf(MILESTONE_TYPES))
    title = fields.String(required=True, validate=validate.Length(min=1, max=200))
    description = fields.String(allow_none=True)
    date = fields.DateTime(required=True)
    image_url = fields.String(data_key='imageUrl', allow_none=True)
    is_private = fields.Boolean(data_key='isPrivate', load_default=False)


def _partnership_or_404():
    partnership = get_partnership_for_user(g.current_user.id)
    if not partnership:
        return None, (jsonify({"error": "No partnership found"}), 404)
    return partnership, None


def _to_naive(value):
    return value.replace(tzinfo=None) if value is not None and value.tzinfo else value


@milestones_bp.route('/partnership/milestones', methods=['GET'])
@auth_required
def list_milestones():
    partnership, error = _partnership_or_404()
    if error:
        return error
    milestones = Milestone.query.filter_by(partnership_id=partnership.id) \
        .order_by(Milestone.date.desc(), Milestone.id.desc()).all()
    return jsonify([m.to_dict() for m in milestones])


@milestones_bp.route('/partnership/milestones/<milestone_type>', methods=['GET'])
@auth_required
def list_milestones_by_type(milestone_type):
    if milestone_type not in MILESTONE_TYPES:
        return jsonify({"error": "Invalid milestone type"}), 400
    partnership, error = _partnership_or_404()
    if error:
        return error
    milestones = Milestone.query.filter_by(partnership_id=partnership.id, type=milestone_type) \
        .order_by(Milestone.date.desc(), Milestone.id.desc()).all()
    return jsonify([m.to_dict() for m in milestones])


@milestones_bp.route('/partnership/milestones', methods=['POST'])
@auth_required
def create_milestone():
    """Create a milestone and record it as a significant memory."""
    try:
        loaded = MilestoneSchema().load(request_data())
    except ValidationError as e:
        return validation_error(e)

    partnership, error = _partnership_or_404()
    if error:
        return error

    try:
        milestone = Milestone(
            partnership_id=partnership.id,
            type=loaded['type'],
            title=loaded['title'],
            description=loaded.get('description'),
            date=_to_naive(loaded['date']),
            image_url=loaded.get('image_url'),
            is_private=loaded['is_private'],
        )
        db.session.add(milestone)
        db.session.flush()

        db.session.add(Memory(
            user_id=g.current_user.id,
            partnership_id=partnership.id,
            type='milestone',
            title=milestone.title,
            description=milestone.description or '',
            date=milestone.date,
            image_url=milestone.image_url,
            linked_item_id=milestone.id,
            linked_item_type='milestone',
            is_significant=True,
            tags=[],
        ))
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error creating milestone: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to create milestone"}), 500

    return jsonify(milestone.to_dict()), 201


def _owned_milestone(milestone_id):
    partnership, error = _partnership_or_404()
    if error:
        return None, error
    milestone = db.session.get(Milestone, milestone_id)
    if not milestone:
        return None, (jsonify({"error": "Milestone not found"}), 404)
    if milestone.partnership_id != partnership.id:
        return None, (jsonify({"error": "Not authorized to modify this milestone"}), 403)
    return milestone, None


@milestones_bp.route('/partnership/milestones/<int:milestone_id>', methods=['PUT'])
@auth_required
def update_milestone(milestone_id):
    try:
        loaded = MilestoneSchema(partial=True).load(request_data())
    except ValidationError as e:
        return validation_error(e)

    milestone, error = _owned_milestone(milestone_id)
    if error:
        return error

    try:
        for key, value in loaded.items():
            setattr(milestone, key, _to_naive(value) if key == 'date' else value)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error updating milestone: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to update milestone"}), 500

    return jsonify(milestone.to_dict())


@milestones_bp.route('/partnership/milestones/<int:milestone_id>', methods=['DELETE'])
@auth_required
def delete_milestone(milestone_id):
    milestone, error = _owned_milestone(milestone_id)
    if error:
        return error

    try:
        db.session.delete(milestone)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error deleting milestone: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to delete milestone"}), 500

    return jsonify({"message": "Milestone deleted successfully"})
