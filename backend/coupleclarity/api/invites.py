"""
Partner invitation routes.
"""
import logging
from flask import Blueprint, jsonify, g
from marshmallow import fields, validate, ValidationError

from ..models import db, Invite, User
from ..utils.auth_adapter import auth_required
from ..utils.email_service import get_email_service
from ..utils.validation import BaseSchema, request_data, validation_error

invites_bp = Blueprint('invites', __name__)
logger = logging.getLogger(__name__)


class InviteSchema(BaseSchema):
    partner_first_name = fields.String(required=True, data_key='partnerFirstName',
                                       validate=validate.Length(min=1, max=100))
    partner_last_name = fields.String(required=True, data_key='partnerLastName',
                                      validate=validate.Length(min=1, max=100))
    partner_email = fields.Email(required=True, data_key='partnerEmail')


@invites_bp.route('/invites', methods=['POST'])
@auth_required
def create_invite():
    """Invite a partner by email."""
    try:
        loaded = InviteSchema().load(request_data())
    except ValidationError as e:
        return validation_error(e)

    user = g.current_user
    if loaded['partner_email'].lower() == user.email.lower():
        return jsonify({"error": "You cannot invite yourself"}), 400

    try:
        invite = Invite(
            from_user_id=user.id,
            partner_email=loaded['partner_email'],
            partner_first_name=loaded['partner_first_name'],
            partner_last_name=loaded['partner_last_name'],
        )
        db.session.add(invite)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error creating invite: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to create invitation"}), 500

    get_email_service().send_partner_invite_email(user, invite.partner_email, invite.invite_token)
    logger.info(f"User {user.id} invited {invite.partner_email}")
    return jsonify({
        "id": invite.id,
        "inviteToken": invite.invite_token,
        "partnerEmail": invite.partner_email,
    }), 201


@invites_bp.route('/invites/<token>', methods=['GET'])
def get_invite(token):
    """Public lookup used by the registration page."""
    invite = Invite.query.filter_by(invite_token=token).first()
    if not invite:
        return jsonify({"error": "Invitation not found"}), 404
    if invite.is_used:
        return jsonify({
            "error": "This invitation has already been used",
            "showConnectOption": True,
        }), 400

    inviter = db.session.get(User, invite.from_user_id)
    return jsonify({
        "inviterName": inviter.full_name if inviter else None,
        "inviterFirstName": inviter.first_name if inviter else None,
        "partnerFirstName": invite.partner_first_name,
        "partnerLastName": invite.partner_last_name,
        "partnerEmail": invite.partner_email,
    })


@invites_bp.route('/invites/generate-link', methods=['POST'])
@auth_required
def generate_invite_link():
    """Create an invite that is shared as a link instead of by email."""
    user = g.current_user
    try:
        invite = Invite(from_user_id=user.id)
        db.session.add(invite)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error generating invite link: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to generate invitation link"}), 500

    return jsonify({
        "id": invite.id,
        "token": invite.invite_token,
        "inviterName": user.full_name,
    }), 201
