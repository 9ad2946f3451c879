from marshmallow import Schema, fields, pre_load, validate


def _norm_email(v):
    return v.strip().lower() if isinstance(v, str) else v


class _NormalizeEmailMixin:
    @pre_load
    def normalize(self, data, **kwargs):
        if isinstance(data, dict) and "email" in data:
            data = dict(data, email=_norm_email(data["email"]))
        return data


class RegisterSchema(_NormalizeEmailMixin, Schema):
    email = fields.Email(required=True)
    password = fields.String(required=True, load_only=True)
    name = fields.String(required=True)


class LoginSchema(_NormalizeEmailMixin, Schema):
    email = fields.String(required=True)
    password = fields.String(required=True, load_only=True)


class ProfileUpdateSchema(_NormalizeEmailMixin, Schema):
    name = fields.String()
    email = fields.Email()


class PasswordChangeSchema(Schema):
    currentPassword = fields.String(required=True, load_only=True)
    newPassword = fields.String(required=True, load_only=True)
    confirmPassword = fields.String(load_only=True)


class RoleUpdateSchema(Schema):
    role = fields.String(required=True, validate=validate.Length(min=1))


class UserOutSchema(Schema):
    id = fields.String(allow_none=False)
    email = fields.String()
    name = fields.String()
    role = fields.String()
    createdAt = fields.DateTime(attribute="created_at")
