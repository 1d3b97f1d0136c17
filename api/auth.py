"""
Authentication blueprint:
- POST /auth/register
- POST /auth/login
- POST /auth/logout
- POST /auth/refresh-token

The implementation:
- Delegates every decision to the SessionManager (services.session_manager)
- Places the access/refresh pair in HttpOnly cookies and in the response body
- Accepts the refresh token from its cookie or from the JSON body
"""
from __future__ import annotations

from flask import Blueprint, request, jsonify, g, current_app

from models.schemas.user import UserRegisterSchema, UserLoginSchema, RefreshSchema
from utils.decorators import jwt_required, session_manager, ACCESS_COOKIE
from utils.media import stash_upload, discard
from utils.tokens import SessionPair

from .errors import failure_response

REFRESH_COOKIE = "refresh_token"

bp = Blueprint("auth", __name__)

user_register_schema = UserRegisterSchema()
user_login_schema = UserLoginSchema()
refresh_schema = RefreshSchema()


def _cookie_options() -> dict:
    return {
        "httponly": True,
        "secure": current_app.config.get("COOKIE_SECURE", True),
        "samesite": current_app.config.get("COOKIE_SAMESITE", "Lax"),
    }


def _with_session_cookies(response, tokens: SessionPair):
    options = _cookie_options()
    response.set_cookie(
        ACCESS_COOKIE,
        tokens.access_token,
        max_age=int(current_app.config["ACCESS_TOKEN_EXPIRES"].total_seconds()),
        **options,
    )
    response.set_cookie(
        REFRESH_COOKIE,
        tokens.refresh_token,
        max_age=int(current_app.config["REFRESH_TOKEN_EXPIRES"].total_seconds()),
        **options,
    )
    return response


@bp.post("/register")
def register():
    """
    register a new user.
    ---
    tags:
      - Auth
    consumes:
      - multipart/form-data
    parameters:
      - { in: formData, name: username, type: string, required: true }
      - { in: formData, name: email, type: string, required: true }
      - { in: formData, name: full_name, type: string, required: true }
      - { in: formData, name: password, type: string, required: true }
      - { in: formData, name: avatar, type: file, required: true }
      - { in: formData, name: cover_image, type: file }
    responses:
      201:
        description: Created
      400:
        description: Missing field or avatar
      409:
        description: Username or email already exists
    """
    data = user_register_schema.load(request.form.to_dict())

    upload_dir = current_app.config["UPLOAD_TMP_DIR"]
    avatar_path = stash_upload(request.files.get("avatar"), upload_dir)
    cover_path = stash_upload(request.files.get("cover_image"), upload_dir)
    try:
        result = session_manager().register(
            data["username"],
            data["email"],
            data["full_name"],
            data["password"],
            avatar_path=avatar_path,
            cover_image_path=cover_path,
        )
    finally:
        # uploads remove their file; anything left was never sent
        discard(avatar_path)
        discard(cover_path)

    if not result.ok:
        return failure_response(result)
    return jsonify({"data": result.value}), 201


@bp.post("/login")
def login():
    """
    Login: return access_token and refresh_token
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             username: { type: string }
             email: { type: string }
             password: { type: string }
    responses:
      200:
        description: OK (returns tokens, also set as cookies)
      401:
        description: Unauthorized
      404:
        description: User does not exist
    """
    payload = user_login_schema.load(request.get_json(silent=True) or {})
    identifier = payload.get("username") or payload.get("email")

    result = session_manager().login(identifier, payload.get("password"))
    if not result.ok:
        return failure_response(result)

    login_result = result.value
    response = jsonify(
        {
            "data": {
                "user": login_result.profile,
                "access_token": login_result.tokens.access_token,
                "refresh_token": login_result.tokens.refresh_token,
                "token_type": "bearer",
            }
        }
    )
    return _with_session_cookies(response, login_result.tokens), 200


@bp.post("/logout")
@jwt_required()
def logout():
    """
    logout: clears the stored refresh token and both cookies
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    responses:
      200:
        description: Logged out
      401:
        description: Unauthorized
    """
    result = session_manager().logout(g.current_user_id)
    if not result.ok:
        return failure_response(result)

    response = jsonify({"data": {}, "message": "User logged out"})
    options = _cookie_options()
    response.delete_cookie(ACCESS_COOKIE, **options)
    response.delete_cookie(REFRESH_COOKIE, **options)
    return response, 200


@bp.post("/refresh-token")
def refresh():
    """
    Use refresh token to obtain new access and refresh tokens (rotation)
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             refresh_token: { type: string }
    responses:
      200:
        description: OK (returns a new token pair)
      400:
        description: Missing refresh token
      401:
        description: Refresh token is expired or used
    """
    payload = refresh_schema.load(request.get_json(silent=True) or {})
    # an explicit body token wins over the ambient cookie
    token = payload.get("refresh_token") or request.cookies.get(REFRESH_COOKIE)

    result = session_manager().refresh(token)
    if not result.ok:
        return failure_response(result)

    tokens = result.value
    response = jsonify(
        {
            "data": {
                "access_token": tokens.access_token,
                "refresh_token": tokens.refresh_token,
                "token_type": "bearer",
            }
        }
    )
    return _with_session_cookies(response, tokens), 200
