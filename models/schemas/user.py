import re

from marshmallow import EXCLUDE, Schema, ValidationError, fields, pre_load, validates

_EMAIL = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _norm_email(v):
    return v.strip().lower() if isinstance(v, str) else v


class _LooseSchema(Schema):
    class Meta:
        unknown = EXCLUDE


class UserRegisterSchema(_LooseSchema):
    # Emptiness is checked by the session manager so all missing fields are reported together
    username = fields.String(load_default="")
    email = fields.String(load_default="")
    full_name = fields.String(load_default="")
    password = fields.String(load_default="", load_only=True)

    @pre_load
    def normalize(self, data, **kwargs):
        data = dict(data)
        if "email" in data:
            data["email"] = _norm_email(data["email"])
        return data

    @validates("email")
    def validate_email(self, value, **kwargs):
        # blank is reported as a missing field by the session manager
        if value and not _EMAIL.match(value):
            raise ValidationError("Not a valid email address.")


class UserLoginSchema(_LooseSchema):
    username = fields.String(load_default=None)
    email = fields.String(load_default=None)
    password = fields.String(load_default=None, load_only=True)


class RefreshSchema(_LooseSchema):
    refresh_token = fields.String(load_default=None)


class ChangePasswordSchema(_LooseSchema):
    old_password = fields.String(load_default=None, load_only=True)
    new_password = fields.String(load_default=None, load_only=True)


class UserUpdateSchema(_LooseSchema):
    full_name = fields.String()
    email = fields.String()

    @pre_load
    def normalize(self, data, **kwargs):
        if isinstance(data, dict) and "email" in data:
            data = dict(data, email=_norm_email(data["email"]))
        return data

    @validates("email")
    def validate_email(self, value, **kwargs):
        # blank is reported as a missing field by the session manager
        if value and not _EMAIL.match(value):
            raise ValidationError("Not a valid email address.")


class UserOutSchema(Schema):
    id = fields.String()
    username = fields.String()
    email = fields.String()
    full_name = fields.String()
    avatar = fields.String()
    cover_image = fields.String(allow_none=True)
    created_at = fields.DateTime()
    updated_at = fields.DateTime()
