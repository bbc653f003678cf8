"""
Profile avatar routes: AI generation, uploads and restyling.
"""
import base64
import logging
import os
import uuid
from flask import Blueprint, request, jsonify, g, current_app
from marshmallow import fields, validate, ValidationError
from werkzeug.security import safe_join
from werkzeug.utils import secure_filename

from ..models import db
from ..utils.ai_service import get_ai_service
from ..utils.auth_adapter import auth_required
from ..utils.validation import BaseSchema, request_data, validation_error

avatars_bp = Blueprint('avatars', __name__)
logger = logging.getLogger(__name__)

UPLOADS_PREFIX = '/uploads/'


def _is_avatar_url(value):
    if value.startswith(UPLOADS_PREFIX) or value.startswith(('http://', 'https://')):
        return
    raise ValidationError("Must be a URL or an uploaded file path")


class AvatarPromptSchema(BaseSchema):
    prompt = fields.String(required=True, validate=validate.Length(min=10, max=1000))


class AvatarUrlSchema(BaseSchema):
    avatar_url = fields.String(required=True, data_key='avatarUrl', validate=_is_avatar_url)


class TransformSchema(AvatarUrlSchema):
    style = fields.String(allow_none=True)


def _set_avatar(url):
    user = g.current_user
    user.avatar_url = url
    db.session.commit()
    logger.info(f"Avatar updated for user {user.id}")


def _avatars_dir():
    return os.path.join(current_app.config['UPLOAD_FOLDER'], 'avatars')


@avatars_bp.route('/avatar/generate', methods=['POST'])
@auth_required
def generate_avatar():
    try:
        loaded = AvatarPromptSchema().load(request_data())
    except ValidationError as e:
        return validation_error(e)

    result = get_ai_service().generate_avatar(loaded['prompt'])
    if result.get('error'):
        return jsonify({"error": "Avatar generation failed", "details": result['error']}), 400

    try:
        _set_avatar(result['url'])
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error saving generated avatar: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to generate avatar"}), 500

    return jsonify({"avatarUrl": result['url'], "message": "Avatar generated successfully"})


@avatars_bp.route('/avatar/update', methods=['POST'])
@auth_required
def update_avatar():
    try:
        loaded = AvatarUrlSchema().load(request_data())
    except ValidationError as e:
        return validation_error(e)

    try:
        _set_avatar(loaded['avatar_url'])
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error updating avatar: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to update avatar"}), 500

    return jsonify({"avatarUrl": loaded['avatar_url'], "message": "Avatar updated successfully"})


@avatars_bp.route('/avatar/upload', methods=['POST'])
@auth_required
def upload_avatar():
    """Store an uploaded image and make it the caller's avatar.

    Expects a multipart ``avatar`` file field.

    Returns:
        JSON with the served ``avatarUrl``.
    """
    upload = request.files.get('avatar')
    if upload is None or not upload.filename:
        return jsonify({"error": "No file uploaded"}), 400
    if not (upload.mimetype or '').startswith('image/'):
        return jsonify({"error": "Only image files are allowed"}), 400

    content = upload.read()
    if len(content) > current_app.config['MAX_AVATAR_BYTES']:
        return jsonify({"error": "File too large"}), 413

    _, ext = os.path.splitext(secure_filename(upload.filename))
    filename = f"avatar-{g.current_user.id}-{uuid.uuid4().hex}{ext.lower()}"
    os.makedirs(_avatars_dir(), exist_ok=True)
    with open(os.path.join(_avatars_dir(), filename), 'wb') as f:
        f.write(content)

    avatar_url = f"{UPLOADS_PREFIX}avatars/{filename}"
    try:
        _set_avatar(avatar_url)
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error saving uploaded avatar: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to upload avatar"}), 500

    return jsonify({"avatarUrl": avatar_url, "message": "Avatar uploaded successfully"})


@avatars_bp.route('/avatar/transform-uploaded', methods=['POST'])
@auth_required
def transform_uploaded():
    try:
        loaded = TransformSchema().load(request_data())
    except ValidationError as e:
        return validation_error(e)

    avatar_url = loaded['avatar_url']
    if not avatar_url.startswith(UPLOADS_PREFIX):
        return jsonify({"error": "Only uploaded images can be transformed"}), 400
    image_path = safe_join(current_app.config['UPLOAD_FOLDER'], avatar_url[len(UPLOADS_PREFIX):])
    own_dir = os.path.abspath(_avatars_dir())
    if (image_path is None or os.path.dirname(os.path.abspath(image_path)) != own_dir
            or not os.path.basename(image_path).startswith(f"avatar-{g.current_user.id}-")):
        return jsonify({"error": "You can only transform your own uploaded avatar"}), 403
    if not os.path.isfile(image_path):
        return jsonify({"error": "Uploaded image not found"}), 404

    result = get_ai_service().restyle_avatar(image_path, loaded.get('style'))
    if result.get('error'):
        return jsonify({"error": "Avatar transformation failed", "details": result['error']}), 400

    new_url = result.get('url')
    if new_url is None:
        # Image edits may return inline data instead of a hosted URL
        filename = f"avatar-{g.current_user.id}-{uuid.uuid4().hex}.png"
        os.makedirs(_avatars_dir(), exist_ok=True)
        with open(os.path.join(_avatars_dir(), filename), 'wb') as f:
            f.write(base64.b64decode(result['b64_json']))
        new_url = f"{UPLOADS_PREFIX}avatars/{filename}"

    try:
        _set_avatar(new_url)
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error saving transformed avatar: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to transform avatar"}), 500

    return jsonify({"avatarUrl": new_url, "message": "Image transformed successfully"})
