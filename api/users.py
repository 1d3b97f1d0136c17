"""
Current-user blueprint:
- GET   /users/me
- PATCH /users/me
- POST  /users/me/password
- PATCH /users/me/avatar
- PATCH /users/me/cover-image
"""
from __future__ import annotations

from flask import Blueprint, request, jsonify, g, current_app

from models.schemas.user import ChangePasswordSchema, UserUpdateSchema
from utils.decorators import jwt_required, session_manager
from utils.media import stash_upload, discard

from .errors import error_response, failure_response

bp = Blueprint("users", __name__)

change_password_schema = ChangePasswordSchema()
user_update_schema = UserUpdateSchema()


@bp.get("/users/me")
@jwt_required()
def me():
    """
    Get current user info.
    ---
    tags:
      - Users
    security:
      - Bearer: []
    responses:
      200:
        description: OK
      401:
        description: Unauthorized
    """
    result = session_manager().current_profile(g.current_user_id)
    if not result.ok:
        return failure_response(result)
    return jsonify({"data": result.value}), 200


@bp.patch("/users/me")
@jwt_required()
def update_account():
    """
    Update account details (full_name, email).
    ---
    tags:
      - Users
    security:
      - Bearer: []
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             full_name: { type: string }
             email: { type: string }
    responses:
      200: { description: OK }
      400: { description: Missing field }
      409: { description: Email already exists }
    """
    data = user_update_schema.load(request.get_json(silent=True) or {})
    if not data:
        return error_response("VALIDATION_ERROR", "full_name or email is required", 400)

    result = session_manager().update_profile(g.current_user_id, data)
    if not result.ok:
        return failure_response(result)
    return jsonify({"data": result.value}), 200


@bp.post("/users/me/password")
@jwt_required()
def change_password():
    """
    Change the current user's password. Existing sessions stay valid.
    ---
    tags:
      - Users
    security:
      - Bearer: []
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             old_password: { type: string }
             new_password: { type: string }
    responses:
      200: { description: Password changed }
      401: { description: Invalid old password }
    """
    data = change_password_schema.load(request.get_json(silent=True) or {})
    result = session_manager().change_secret(
        g.current_user_id, data.get("old_password"), data.get("new_password")
    )
    if not result.ok:
        return failure_response(result)
    return jsonify({"data": {}, "message": "Password changed successfully"}), 200


def _replace_asset(field: str, operation):
    path = stash_upload(request.files.get(field), current_app.config["UPLOAD_TMP_DIR"])
    try:
        result = operation(g.current_user_id, path)
    finally:
        discard(path)
    if not result.ok:
        return failure_response(result)
    return jsonify({"data": result.value}), 200


@bp.patch("/users/me/avatar")
@jwt_required()
def update_avatar():
    """
    Replace the avatar image.
    ---
    tags:
      - Users
    security:
      - Bearer: []
    consumes:
      - multipart/form-data
    parameters:
      - { in: formData, name: avatar, type: file, required: true }
    responses:
      200: { description: OK }
      400: { description: Avatar file is missing }
    """
    return _replace_asset("avatar", session_manager().update_avatar)


@bp.patch("/users/me/cover-image")
@jwt_required()
def update_cover_image():
    """
    Replace the cover image.
    ---
    tags:
      - Users
    security:
      - Bearer: []
    consumes:
      - multipart/form-data
    parameters:
      - { in: formData, name: cover_image, type: file, required: true }
    responses:
      200: { description: OK }
      400: { description: Cover image file is missing }
    """
    return _replace_asset("cover_image", session_manager().update_cover_image)
