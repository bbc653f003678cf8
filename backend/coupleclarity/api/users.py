"""
User profile, preferences and onboarding routes.
"""
import logging
from flask import Blueprint, jsonify, g
from marshmallow import fields, validate, ValidationError

from ..models import db, User, UserPreferences
from ..models.user import (LOVE_LANGUAGES, CONFLICT_STYLES, COMMUNICATION_STYLES, REPAIR_STYLES,
                           COMMUNICATION_FREQUENCIES, AI_MODELS)
from ..utils.auth_adapter import auth_required
from ..utils.partners import get_partnership_for_user
from ..utils.validation import BaseSchema, request_data, validation_error
from .auth import find_user_by_email

users_bp = Blueprint('users', __name__)
logger = logging.getLogger(__name__)


class AIModelSchema(BaseSchema):
    model = fields.String(required=True, validate=validate.OneOf(AI_MODELS))


class ProfileSchema(BaseSchema):
    username = fields.String(validate=validate.Length(min=3, max=80))
    first_name = fields.String(data_key='firstName', validate=validate.Length(min=1, max=100))
    last_name = fields.String(data_key='lastName', validate=validate.Length(min=1, max=100))
    email = fields.Email()
    display_name = fields.String(data_key='displayName', validate=validate.Length(min=1, max=200))


class UsernameSchema(BaseSchema):
    username = fields.String(required=True, validate=validate.Length(min=3, max=80))


class ChangePasswordSchema(BaseSchema):
    current_password = fields.String(required=True, data_key='currentPassword', validate=validate.Length(min=1))
    new_password = fields.String(required=True, data_key='newPassword', validate=validate.Length(min=6))


class OnboardingSchema(BaseSchema):
    """Questionnaire answers stored in the user's preferences."""
    love_language = fields.String(required=True, data_key='loveLanguage', validate=validate.OneOf(LOVE_LANGUAGES))
    conflict_style = fields.String(required=True, data_key='conflictStyle', validate=validate.OneOf(CONFLICT_STYLES))
    communication_style = fields.String(required=True, data_key='communicationStyle',
                                        validate=validate.OneOf(COMMUNICATION_STYLES))
    repair_style = fields.String(required=True, data_key='repairStyle', validate=validate.OneOf(REPAIR_STYLES))


class EnhancedOnboardingSchema(OnboardingSchema):
    relationship_goals = fields.String(required=True, data_key='relationshipGoals',
                                       validate=validate.Length(min=5))
    challenge_areas = fields.String(required=True, data_key='challengeAreas', validate=validate.Length(min=5))
    communication_frequency = fields.String(required=True, data_key='communicationFrequency',
                                            validate=validate.OneOf(COMMUNICATION_FREQUENCIES))


PREFERENCE_KEYS = ('love_language', 'conflict_style', 'communication_style', 'repair_style')


def _save_preferences(user_id, loaded):
    preferences = UserPreferences.query.filter_by(user_id=user_id).first()
    if preferences is None:
        preferences = UserPreferences(user_id=user_id)
        db.session.add(preferences)
    for key in PREFERENCE_KEYS:
        if key in loaded:
            setattr(preferences, key, loaded[key])
    return preferences


@users_bp.route('/user/ai-model-preference', methods=['GET'])
@auth_required
def get_ai_model_preference():
    preferences = UserPreferences.query.filter_by(user_id=g.current_user.id).first()
    return jsonify({"model": preferences.preferred_ai_model if preferences else 'openai'})


@users_bp.route('/user/ai-model-preference', methods=['POST'])
@auth_required
def set_ai_model_preference():
    try:
        loaded = AIModelSchema().load(request_data())
    except ValidationError as e:
        return validation_error(e)

    try:
        preferences = _save_preferences(g.current_user.id, {})
        preferences.preferred_ai_model = loaded['model']
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error saving AI model preference: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to update AI model preference"}), 500

    return jsonify({"model": preferences.preferred_ai_model})


@users_bp.route('/user/partner', methods=['GET'])
@auth_required
def get_partner():
    """The partner's public profile, their preferences and the relationship start date."""
    partnership = get_partnership_for_user(g.current_user.id)
    if not partnership:
        return jsonify(None)

    partner = db.session.get(User, partnership.partner_of(g.current_user.id))
    if not partner:
        return jsonify({"error": "Partner not found"}), 404

    data = partner.to_summary()
    data["preferences"] = partner.preferences.to_dict() if partner.preferences else None
    start = partnership.start_date or partnership.created_at
    data["startDate"] = start.isoformat() if start else None
    return jsonify(data)


@users_bp.route('/user/profile', methods=['PATCH'])
@auth_required
def update_profile():
    try:
        loaded = ProfileSchema().load(request_data())
    except ValidationError as e:
        return validation_error(e)

    user = g.current_user
    if 'username' in loaded and loaded['username'] != user.username:
        if User.query.filter_by(username=loaded['username']).first():
            return jsonify({"error": "Username already exists"}), 400
    if 'email' in loaded and loaded['email'].lower() != user.email.lower():
        if find_user_by_email(loaded['email']):
            return jsonify({"error": "Email already exists"}), 400

    try:
        for key, value in loaded.items():
            setattr(user, key, value)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error updating user profile: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to update user profile"}), 500

    return jsonify(user.to_dict())


@users_bp.route('/user/username', methods=['PATCH'])
@auth_required
def change_username():
    try:
        loaded = UsernameSchema().load(request_data())
    except ValidationError as e:
        return validation_error(e)

    user = g.current_user
    if loaded['username'] != user.username and User.query.filter_by(username=loaded['username']).first():
        return jsonify({"error": "Username already exists"}), 400

    try:
        user.username = loaded['username']
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error changing username: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to change username"}), 500

    return jsonify(user.to_dict())


@users_bp.route('/user/change-password', methods=['POST'])
@auth_required
def change_password():
    try:
        loaded = ChangePasswordSchema().load(request_data())
    except ValidationError as e:
        return validation_error(e)

    user = g.current_user
    if not user.verify_password(loaded['current_password']):
        return jsonify({"error": "Current password is incorrect"}), 400

    try:
        user.set_password(loaded['new_password'])
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error changing password: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to change password"}), 500

    logger.info(f"Password changed for user {user.id}")
    return jsonify({"message": "Password updated successfully"})


@users_bp.route('/user/preferences', methods=['POST'])
@auth_required
def save_preferences():
    try:
        loaded = OnboardingSchema().load(request_data())
    except ValidationError as e:
        return validation_error(e)

    try:
        preferences = _save_preferences(g.current_user.id, loaded)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error saving user preferences: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to save preferences"}), 500

    return jsonify(preferences.to_dict())


@users_bp.route('/user/enhanced-onboarding', methods=['POST'])
@auth_required
def enhanced_onboarding():
    """Save the full onboarding questionnaire and mark onboarding complete.

    Returns:
        JSON with the updated ``user`` and ``preferences``.
    """
    try:
        loaded = EnhancedOnboardingSchema().load(request_data())
    except ValidationError as e:
        return validation_error(e)

    user = g.current_user
    try:
        user.relationship_goals = loaded['relationship_goals']
        user.challenge_areas = loaded['challenge_areas']
        user.communication_frequency = loaded['communication_frequency']
        user.onboarding_completed = True
        preferences = _save_preferences(user.id, loaded)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error saving onboarding data: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to save onboarding data"}), 500

    return jsonify({"user": user.to_dict(), "preferences": preferences.to_dict()})
