"""
Authentication routes: registration (plain and by invitation), login, logout
and password reset.
"""
import logging
from flask import Blueprint, jsonify, g
from marshmallow import fields, validate, ValidationError
from email_validator import validate_email, EmailNotValidError

from ..models import db, User, Invite, Partnership, PasswordResetToken
from ..utils.auth_adapter import auth_required, login_user, login_response, logout_response
from ..utils.email_service import get_email_service
from ..utils.notifications import notify
from ..utils.partners import are_partners
from ..utils.rate_limit import auth_limit, password_reset_limit
from ..utils.validation import BaseSchema, request_data, validation_error

auth_bp = Blueprint('auth', __name__)
logger = logging.getLogger(__name__)

USED_INVITE_MESSAGE = ("This invitation has already been used. If you already have an account, "
                       "log in and connect with your partner instead.")


# Input validation schemas
class RegisterSchema(BaseSchema):
    """Registration request schema validation."""
    username = fields.String(required=True, validate=validate.Length(min=3, max=80))
    password = fields.String(required=True, validate=validate.Length(min=6))
    first_name = fields.String(required=True, data_key='firstName', validate=validate.Length(min=1, max=100))
    last_name = fields.String(required=True, data_key='lastName', validate=validate.Length(min=1, max=100))
    email = fields.Email(required=True)
    display_name = fields.String(data_key='displayName', allow_none=True, validate=validate.Length(max=200))
    partner_first_name = fields.String(data_key='partnerFirstName', allow_none=True)
    partner_last_name = fields.String(data_key='partnerLastName', allow_none=True)
    partner_email = fields.String(data_key='partnerEmail', allow_none=True)


class InviteRegisterSchema(RegisterSchema):
    invite_token = fields.String(required=True, data_key='inviteToken', validate=validate.Length(min=1))


class LoginSchema(BaseSchema):
    """Login request schema validation."""
    username = fields.String(required=True, validate=validate.Length(min=1))
    password = fields.String(required=True, validate=validate.Length(min=1))


class ForgotPasswordSchema(BaseSchema):
    email = fields.Email(required=True)


class ResetPasswordSchema(BaseSchema):
    token = fields.String(required=True)
    new_password = fields.String(required=True, data_key='newPassword', validate=validate.Length(min=6))


def load_registration(schema, data):
    """Validate registration input data.

    Args:
        schema: Schema instance to load with.
        data: Dictionary containing registration data.

    Returns:
        The loaded data.

    Raises:
        ValidationError: If the schema or the email check fails.
    """
    loaded = schema.load(data)
    try:
        validate_email(loaded['email'], check_deliverability=False)
    except EmailNotValidError as e:
        raise ValidationError({"email": [str(e)]})
    partner_email = loaded.get('partner_email')
    if partner_email:
        try:
            validate_email(partner_email, check_deliverability=False)
        except EmailNotValidError as e:
            raise ValidationError({"partnerEmail": [str(e)]})
    return loaded


def find_user_by_email(email: str):
    return User.query.filter(db.func.lower(User.email) == email.lower()).first()


def duplicate_error(loaded):
    if User.query.filter_by(username=loaded['username']).first():
        return "Username already exists"
    if find_user_by_email(loaded['email']):
        return "Email already exists"
    return None


def build_user(loaded) -> User:
    return User(
        username=loaded['username'],
        email=loaded['email'],
        password=loaded['password'],
        first_name=loaded['first_name'],
        last_name=loaded['last_name'],
        display_name=loaded.get('display_name'),
    )


@auth_bp.route('/register', methods=['POST'])
@auth_limit
def register():
    """Register a new user, optionally inviting their partner.

    Returns:
        JSON response with user data and access token.
    """
    try:
        loaded = load_registration(RegisterSchema(), request_data())
    except ValidationError as e:
        logger.warning(f"Registration validation failed: {e.messages}")
        return validation_error(e)

    error = duplicate_error(loaded)
    if error:
        return jsonify({"error": error}), 400

    try:
        user = build_user(loaded)
        db.session.add(user)
        db.session.flush()

        invite = None
        if loaded.get('partner_email') and loaded.get('partner_first_name'):
            invite = Invite(
                from_user_id=user.id,
                partner_email=loaded['partner_email'],
                partner_first_name=loaded['partner_first_name'],
                partner_last_name=loaded.get('partner_last_name') or '',
            )
            db.session.add(invite)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Registration error: {str(e)}", exc_info=True)
        return jsonify({"error": "An error occurred during registration"}), 500

    email_service = get_email_service()
    email_service.send_welcome_email(user)
    if invite:
        email_service.send_partner_invite_email(user, invite.partner_email, invite.invite_token)

    logger.info(f"User {user.username} registered successfully with ID: {user.id}")
    return login_response(user, 201, message="User registered successfully")


@auth_bp.route('/register/invite', methods=['POST'])
@auth_limit
def register_with_invite():
    """Register (or reconnect) through a partner invitation."""
    try:
        loaded = load_registration(InviteRegisterSchema(), request_data())
    except ValidationError as e:
        return validation_error(e)

    invite = Invite.query.filter_by(invite_token=loaded['invite_token']).first()
    if not invite:
        return jsonify({"error": "Invalid invitation token"}), 400

    if invite.is_used:
        existing = find_user_by_email(loaded['email'])
        invited_email = (invite.partner_email or '').lower()
        if existing and (existing.email.lower() == invited_email or are_partners(existing.id, invite.from_user_id)):
            if not existing.verify_password(loaded['password']):
                return jsonify({"error": "Invalid username or password"}), 401
            try:
                partnership = Partnership.between(existing.id, invite.from_user_id)
                if partnership:
                    partnership.activate()
                else:
                    partnership = Partnership(invite.from_user_id, existing.id, status='active')
                    db.session.add(partnership)
                db.session.commit()
            except Exception as e:
                db.session.rollback()
                logger.error(f"Error reconnecting via used invite: {str(e)}", exc_info=True)
                return jsonify({"error": "Failed to connect accounts"}), 500
            logger.info(f"User {existing.id} reconnected with inviter {invite.from_user_id}")
            return login_response(existing, 200, message="Connected to your partner",
                                  partnership=partnership.to_dict())

        return jsonify({"error": USED_INVITE_MESSAGE, "showConnectOption": True}), 400

    error = duplicate_error(loaded)
    if error:
        return jsonify({"error": error}), 400

    try:
        user = build_user(loaded)
        db.session.add(user)
        db.session.flush()
        invite.mark_accepted()
        partnership = Partnership(invite.from_user_id, user.id, status='active')
        db.session.add(partnership)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Invite registration error: {str(e)}", exc_info=True)
        return jsonify({"error": "An error occurred during registration"}), 500

    notify(invite.from_user_id, 'connection_accepted',
           {"partnershipId": partnership.id, "partner": user.to_summary()},
           title="Invitation accepted", body=f"{user.display_name} joined CoupleClarity and connected with you.",
           url="/partner")
    get_email_service().send_welcome_email(user)

    logger.info(f"User {user.username} registered through invite from {invite.from_user_id}")
    return login_response(user, 201, message="User registered successfully", partnership=partnership.to_dict())


@auth_bp.route('/login', methods=['POST'])
@auth_limit
def login():
    """Log in with a username or email.

    Returns:
        JSON response with user data and access token.
    """
    try:
        loaded = LoginSchema().load(request_data())
    except ValidationError as e:
        return validation_error(e)

    try:
        user = login_user(loaded['username'], loaded['password'])
    except ValueError as e:
        logger.info(f"Failed login for {loaded['username']}")
        return jsonify({"error": str(e)}), 401

    logger.info(f"User {user.username} logged in successfully")
    return login_response(user, 200, message="Login successful")


@auth_bp.route('/logout', methods=['POST'])
def logout():
    return logout_response()


@auth_bp.route('/user', methods=['GET'])
@auth_required
def get_user():
    """Get current user information."""
    return jsonify(g.current_user.to_dict())


@auth_bp.route('/forgot-password', methods=['POST'])
@password_reset_limit
def forgot_password():
    try:
        loaded = ForgotPasswordSchema().load(request_data())
    except ValidationError as e:
        return validation_error(e)

    generic = {"message": "If an account exists with that email, a password reset link has been sent."}
    user = find_user_by_email(loaded['email'])
    if not user:
        return jsonify(generic)

    try:
        PasswordResetToken.query.filter_by(user_id=user.id).delete()
        token = PasswordResetToken(user.id)
        db.session.add(token)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error creating reset token: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to process password reset request"}), 500

    get_email_service().send_password_reset_email(user, token.token)
    return jsonify(generic)


def find_valid_reset_token(token_value: str):
    token = PasswordResetToken.query.filter_by(token=token_value).first()
    if not token or token.is_expired:
        return None
    return token


@auth_bp.route('/reset-password/<token>', methods=['GET'])
def check_reset_token(token):
    if not find_valid_reset_token(token):
        return jsonify({"valid": False, "error": "Invalid or expired reset token"}), 400
    return jsonify({"valid": True})


@auth_bp.route('/reset-password', methods=['POST'])
def reset_password():
    try:
        loaded = ResetPasswordSchema().load(request_data())
    except ValidationError as e:
        return validation_error(e)

    token = find_valid_reset_token(loaded['token'])
    if not token:
        return jsonify({"error": "Invalid or expired reset token"}), 400

    user_id = token.user_id
    try:
        user = db.session.get(User, user_id)
        user.set_password(loaded['new_password'])
        db.session.delete(token)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Password reset failed: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to reset password"}), 500

    logger.info(f"Password reset for user {user_id}")
    return jsonify({"message": "Password has been reset successfully"})
