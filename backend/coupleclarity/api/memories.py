"""
Shared relationship memories.
"""
import logging
from flask import Blueprint, request, jsonify, g
from marshmallow import fields, validate, ValidationError
from sqlalchemy import or_

from ..models import db, Memory, Partnership
from ..models.partnership import MEMORY_TYPES
from ..utils.auth_adapter import auth_required
from ..utils.validation import BaseSchema, request_data, validation_error

memories_bp = Blueprint('memories', __name__)
logger = logging.getLogger(__name__)


class MemorySchema(BaseSchema):
    title = fields.String(required=True, validate=validate.Length(min=1, max=200))
    description = fields.String(required=True)
    type = fields.String(required=True, validate=validate.OneOf(MEMORY_TYPES))
    date = fields.DateTime(allow_none=True)
    is_significant = fields.Boolean(data_key='isSignificant', load_default=False)
    image_url = fields.String(data_key='imageUrl', allow_none=True)
    tags = fields.List(fields.String(), load_default=list)


def _member_partnership(partnership_id):
    partnership = db.session.get(Partnership, partnership_id)
    if not partnership:
        return None, (jsonify({"error": "Partnership not found"}), 404)
    if not partnership.includes(g.current_user.id):
        return None, (jsonify({"error": "Not authorized to view these memories"}), 403)
    return partnership, None


def _ordered(query):
    return query.order_by(Memory.date.desc(), Memory.id.desc())


@memories_bp.route('/partnerships/<int:partnership_id>/memories', methods=['GET'])
@auth_required
def list_memories(partnership_id):
    partnership, error = _member_partnership(partnership_id)
    if error:
        return error
    query = _ordered(Memory.query.filter_by(partnership_id=partnership.id))
    limit = request.args.get('limit', type=int)
    if limit:
        query = query.limit(limit)
    return jsonify([m.to_dict() for m in query.all()])


@memories_bp.route('/partnerships/<int:partnership_id>/memories/significant', methods=['GET'])
@auth_required
def list_significant_memories(partnership_id):
    partnership, error = _member_partnership(partnership_id)
    if error:
        return error
    memories = _ordered(Memory.query.filter_by(partnership_id=partnership.id, is_significant=True)).all()
    return jsonify([m.to_dict() for m in memories])


@memories_bp.route('/partnerships/<int:partnership_id>/memories/type/<memory_type>', methods=['GET'])
@auth_required
def list_memories_by_type(partnership_id, memory_type):
    if memory_type not in MEMORY_TYPES:
        return jsonify({"error": "Invalid memory type"}), 400
    partnership, error = _member_partnership(partnership_id)
    if error:
        return error
    memories = _ordered(Memory.query.filter_by(partnership_id=partnership.id, type=memory_type)).all()
    return jsonify([m.to_dict() for m in memories])


@memories_bp.route('/partnerships/<int:partnership_id>/memories/search', methods=['GET'])
@auth_required
def search_memories(partnership_id):
    partnership, error = _member_partnership(partnership_id)
    if error:
        return error
    term = (request.args.get('q') or '').strip()
    if not term:
        return jsonify({"error": "Search query is required"}), 400

    pattern = f"%{term}%"
    memories = _ordered(Memory.query.filter(
        Memory.partnership_id == partnership.id,
        or_(Memory.title.ilike(pattern), Memory.description.ilike(pattern)),
    )).all()
    return jsonify([m.to_dict() for m in memories])


@memories_bp.route('/partnerships/<int:partnership_id>/memories', methods=['POST'])
@auth_required
def create_memory(partnership_id):
    try:
        loaded = MemorySchema().load(request_data())
    except ValidationError as e:
        return validation_error(e)

    partnership, error = _member_partnership(partnership_id)
    if error:
        return error

    try:
        memory = Memory(
            user_id=g.current_user.id,
            partnership_id=partnership.id,
            title=loaded['title'],
            description=loaded['description'],
            type=loaded['type'],
            is_significant=loaded['is_significant'],
            image_url=loaded.get('image_url'),
            tags=loaded['tags'],
        )
        if loaded.get('date'):
            memory.date = loaded['date'].replace(tzinfo=None)
        db.session.add(memory)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error creating memory: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to create memory"}), 500

    return jsonify(memory.to_dict()), 201
