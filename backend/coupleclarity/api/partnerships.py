"""
Partnership routes: connecting accounts, removing a partner and the couple profile.
"""
import logging
from flask import Blueprint, jsonify, g
from marshmallow import fields, validate, ValidationError

from ..models import db, User, Invite, Partnership
from ..models.partnership import RELATIONSHIP_TYPES, PRIVACY_LEVELS
from ..utils.auth_adapter import auth_required
from ..utils.notifications import notify
from ..utils.partners import get_partnership_for_user
from ..utils.validation import BaseSchema, request_data, validation_error

partnerships_bp = Blueprint('partnerships', __name__)
logger = logging.getLogger(__name__)


class ConnectSchema(BaseSchema):
    partner_email = fields.Email(required=True, data_key='partnerEmail')


class ConnectByTokenSchema(BaseSchema):
    invite_token = fields.String(required=True, data_key='inviteToken', validate=validate.Length(min=1))


class CoupleProfileSchema(BaseSchema):
    relationship_type = fields.String(data_key='relationshipType', allow_none=True,
                                      validate=validate.OneOf(RELATIONSHIP_TYPES))
    privacy_level = fields.String(data_key='privacyLevel', validate=validate.OneOf(PRIVACY_LEVELS))
    anniversary_date = fields.DateTime(data_key='anniversaryDate', allow_none=True)
    meeting_story = fields.String(data_key='meetingStory', allow_none=True, validate=validate.Length(max=2000))
    relationship_goals = fields.String(data_key='relationshipGoals', allow_none=True,
                                       validate=validate.Length(max=2000))
    couple_nickname = fields.String(data_key='coupleNickname', allow_none=True, validate=validate.Length(max=100))
    shared_picture = fields.String(data_key='sharedPicture', allow_none=True)


def _connect(user: User, partner: User):
    """Link two users; an earlier non-active partnership between them is reactivated.

    Returns:
        Tuple of (partnership, created) where created is False when an existing row was reused.
    """
    partnership = Partnership.between(user.id, partner.id)
    if partnership:
        partnership.activate()
        return partnership, False

    partnership = Partnership(user.id, partner.id, status='pending')
    db.session.add(partnership)
    return partnership, True


@partnerships_bp.route('/partnerships/connect', methods=['POST'])
@auth_required
def connect_by_email():
    """Send a connection request to an existing user."""
    try:
        loaded = ConnectSchema().load(request_data())
    except ValidationError as e:
        return validation_error(e)

    user = g.current_user
    partner = User.query.filter(db.func.lower(User.email) == loaded['partner_email'].lower()).first()
    if not partner:
        return jsonify({"error": "No user found with that email"}), 404
    if partner.id == user.id:
        return jsonify({"error": "You cannot connect with yourself"}), 400

    existing = Partnership.between(user.id, partner.id)
    if existing and existing.status == 'active':
        return jsonify({"message": "You are already connected", "partnership": existing.to_dict()})

    try:
        partnership, created = _connect(user, partner)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error connecting partners: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to connect with partner"}), 500

    if partnership.status == 'active':
        notify(partner.id, 'connection_accepted', {"partnershipId": partnership.id, "partner": user.to_summary()},
               title="You're connected", body=f"{user.display_name} connected with you.", url="/partner")
    else:
        notify(partner.id, 'partner_request', {"partnershipId": partnership.id, "from": user.to_summary()},
               title="New partner request", body=f"{user.display_name} wants to connect with you.",
               url="/partner")

    return jsonify({
        "message": "Partnership request sent" if partnership.status == 'pending' else "Partnership reactivated",
        "partnership": partnership.to_dict(),
    }), 201 if created else 200


@partnerships_bp.route('/partnerships/connect-by-token', methods=['POST'])
@auth_required
def connect_by_token():
    """Logged-in redemption of an invite token."""
    try:
        loaded = ConnectByTokenSchema().load(request_data())
    except ValidationError as e:
        return validation_error(e)

    user = g.current_user
    invite = Invite.query.filter_by(invite_token=loaded['invite_token']).first()
    if not invite:
        return jsonify({"error": "Invitation not found"}), 404
    if invite.from_user_id == user.id:
        return jsonify({"error": "You cannot accept your own invitation"}), 400

    inviter = db.session.get(User, invite.from_user_id)
    existing = Partnership.between(user.id, invite.from_user_id)

    if existing:
        if existing.status == 'active':
            return jsonify({"message": "You are already connected", "partnership": existing.to_dict()})
        try:
            existing.activate()
            if not invite.is_used:
                invite.mark_accepted()
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            logger.error(f"Error reactivating partnership: {str(e)}", exc_info=True)
            return jsonify({"error": "Failed to connect with partner"}), 500
        notify(invite.from_user_id, 'connection_accepted',
               {"partnershipId": existing.id, "partner": user.to_summary()},
               title="Invitation accepted", body=f"{user.display_name} reconnected with you.", url="/partner")
        return jsonify({"message": "Partnership reactivated", "partnership": existing.to_dict()})

    if invite.is_used:
        return jsonify({"error": "This invitation has already been used"}), 400

    try:
        invite.mark_accepted()
        partnership = Partnership(invite.from_user_id, user.id, status='active')
        db.session.add(partnership)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error redeeming invite: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to connect with partner"}), 500

    notify(invite.from_user_id, 'connection_accepted',
           {"partnershipId": partnership.id, "partner": user.to_summary()},
           title="Invitation accepted", body=f"{user.display_name} accepted your invitation.", url="/partner")
    logger.info(f"User {user.id} connected with {invite.from_user_id} by token")
    return jsonify({
        "message": "Connected with partner",
        "partnership": partnership.to_dict(),
        "partner": inviter.to_summary() if inviter else None,
    }), 201


def _member_partnership(partnership_id: int):
    partnership = db.session.get(Partnership, partnership_id)
    if not partnership:
        return None, (jsonify({"error": "Partnership not found"}), 404)
    if not partnership.includes(g.current_user.id):
        return None, (jsonify({"error": "Not authorized to modify this partnership"}), 403)
    return partnership, None


@partnerships_bp.route('/partnerships/<int:partnership_id>', methods=['DELETE'])
@auth_required
def remove_partnership(partnership_id):
    partnership, error = _member_partnership(partnership_id)
    if error:
        return error

    user_id = g.current_user.id
    try:
        partnership.status = 'removed'
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error removing partnership: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to remove partnership"}), 500

    notify(partnership.partner_of(user_id), 'partnership_removed', {"partnershipId": partnership.id},
           title="Partnership ended", body=f"{g.current_user.display_name} removed the partnership.")
    logger.info(f"User {user_id} removed partnership {partnership.id}")
    return jsonify({"message": "Partnership removed successfully"})


@partnerships_bp.route('/partnerships/<int:partnership_id>/regenerate-invite', methods=['POST'])
@auth_required
def regenerate_invite(partnership_id):
    partnership, error = _member_partnership(partnership_id)
    if error:
        return error
    if partnership.status != 'pending':
        return jsonify({"error": "Only pending partnerships can regenerate an invitation"}), 400

    try:
        invite = Invite(from_user_id=g.current_user.id)
        db.session.add(invite)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error regenerating invite: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to regenerate invitation"}), 500

    return jsonify({"token": invite.invite_token, "inviterName": g.current_user.full_name})


@partnerships_bp.route('/partnership/profile', methods=['GET'])
@auth_required
def get_couple_profile():
    user = g.current_user
    partnership = get_partnership_for_user(user.id)
    if not partnership:
        return jsonify({"error": "No partnership found"}), 404

    partner = db.session.get(User, partnership.partner_of(user.id))
    return jsonify({
        "partnership": partnership.to_dict(),
        "partner": partner.to_summary() if partner else None,
    })


@partnerships_bp.route('/partnership/profile', methods=['PUT'])
@auth_required
def update_couple_profile():
    try:
        loaded = CoupleProfileSchema().load(request_data())
    except ValidationError as e:
        return validation_error(e)

    partnership = get_partnership_for_user(g.current_user.id)
    if not partnership:
        return jsonify({"error": "No partnership found"}), 404

    try:
        for key, value in loaded.items():
            if isinstance(value, str):
                value = value.strip() or None
            if value is None and key == 'privacy_level':
                continue
            setattr(partnership, key, value)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error updating couple profile: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to update couple profile"}), 500

    return jsonify(partnership.to_dict())


@partnerships_bp.route('/users/check-email/<path:email>', methods=['GET'])
@auth_required
def check_email(email):
    existing = User.query.filter(db.func.lower(User.email) == email.lower()).first()
    return jsonify({
        "exists": existing is not None,
        "userId": existing.id if existing else None,
        "name": existing.full_name if existing else None,
    })


@partnerships_bp.route('/relationship', methods=['GET'])
@auth_required
def get_relationship():
    """Summary of the caller's relationship status."""
    partnership = get_partnership_for_user(g.current_user.id)
    if not partnership:
        return jsonify({"hasPartner": False, "startDate": None, "status": None, "partnershipId": None})
    return jsonify({
        "hasPartner": partnership.status == 'active',
        "startDate": partnership.to_dict()["startDate"],
        "status": partnership.status,
        "partnershipId": partnership.id,
    })
