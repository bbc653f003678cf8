"""
Appreciation notes sent to a partner.
"""
import logging
from flask import Blueprint, request, jsonify, g
from marshmallow import fields, validate, ValidationError
from sqlalchemy import or_

from ..models import db, Appreciation, Memory
from ..utils.auth_adapter import auth_required
from ..utils.notifications import notify
from ..utils.partners import get_partnership_for_user
from ..utils.validation import BaseSchema, request_data, validation_error

appreciations_bp = Blueprint('appreciations', __name__)
logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 5


class AppreciationSchema(BaseSchema):
    content = fields.String(required=True, validate=validate.Length(min=1, max=500))


@appreciations_bp.route('/appreciations', methods=['POST'])
@auth_required
def create_appreciation():
    """Send an appreciation to the partner and keep it as a memory."""
    try:
        loaded = AppreciationSchema().load(request_data())
    except ValidationError as e:
        return validation_error(e)

    user = g.current_user
    partnership = get_partnership_for_user(user.id)
    if not partnership:
        return jsonify({"error": "You need a partner to send appreciations"}), 400
    partner_id = partnership.partner_of(user.id)

    try:
        appreciation = Appreciation(user_id=user.id, partner_id=partner_id, content=loaded['content'])
        db.session.add(appreciation)
        db.session.flush()
        db.session.add(Memory(
            user_id=user.id,
            partnership_id=partnership.id,
            type='appreciation',
            title="Appreciation",
            description=appreciation.content,
            linked_item_id=appreciation.id,
            linked_item_type='appreciation',
            is_significant=False,
            tags=[],
        ))
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error creating appreciation: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to send appreciation"}), 500

    notify(partner_id, 'new_appreciation', appreciation.to_dict(),
           title="You received an appreciation", body=f"{user.display_name}: {appreciation.content[:100]}",
           url="/appreciations")
    return jsonify(appreciation.to_dict()), 201


@appreciations_bp.route('/appreciations', methods=['GET'])
@auth_required
def list_appreciations():
    user_id = g.current_user.id
    limit = request.args.get('limit', DEFAULT_LIMIT, type=int)
    appreciations = Appreciation.query.filter(
        or_(Appreciation.user_id == user_id, Appreciation.partner_id == user_id)
    ).order_by(Appreciation.created_at.desc(), Appreciation.id.desc()).limit(limit).all()
    return jsonify([a.to_dict() for a in appreciations])
