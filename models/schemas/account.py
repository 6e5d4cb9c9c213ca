from marshmallow import EXCLUDE, Schema, fields, pre_load, validate, validates, ValidationError

from models.account import ROLES

MIN_PASSWORD_LENGTH = 6


def _norm_email(v):
    return v.strip().lower() if isinstance(v, str) else v


class _NormalizedEmailMixin:
    @pre_load
    def normalize(self, data, **kwargs):
        if isinstance(data, dict) and "email" in data:
            data = dict(data)
            data["email"] = _norm_email(data["email"])
        return data


class ProfileInSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    full_name = fields.String(allow_none=True)
    phone = fields.String(allow_none=True)
    gender = fields.String(allow_none=True)
    avatar_url = fields.String(allow_none=True)
    student_id = fields.String(allow_none=True)
    department = fields.String(allow_none=True)
    batch = fields.String(allow_none=True)
    program = fields.String(allow_none=True)
    current_trimester = fields.String(allow_none=True)


class RegisterSchema(_NormalizedEmailMixin, Schema):
    class Meta:
        unknown = EXCLUDE

    email = fields.Email(required=True)
    password = fields.String(required=True, load_only=True)
    full_name = fields.String(required=True, validate=validate.Length(min=1))
    student_id = fields.String(allow_none=True)
    department = fields.String(allow_none=True)
    batch = fields.String(allow_none=True)
    program = fields.String(allow_none=True)

    @validates("password")
    def validate_password(self, value, **kwargs):
        if len(value) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long.")


class AccountCreateSchema(_NormalizedEmailMixin, Schema):
    class Meta:
        unknown = EXCLUDE

    email = fields.Email(required=True)
    password = fields.String(required=True, load_only=True)
    role = fields.String(load_default="user", validate=validate.OneOf(ROLES))
    profile = fields.Nested(ProfileInSchema, load_default=None, allow_none=True)

    @validates("password")
    def validate_password(self, value, **kwargs):
        if len(value) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long.")


class LoginSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    email = fields.String(required=True)
    password = fields.String(required=True, load_only=True)


class RefreshSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    refresh_token = fields.String(load_default=None, allow_none=True)


class PasswordChangeSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    current_password = fields.String(required=True, load_only=True)
    new_password = fields.String(required=True, load_only=True)

    @validates("new_password")
    def validate_new_password(self, value, **kwargs):
        if len(value) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long.")


class RoleUpdateSchema(Schema):
    role = fields.String(required=True, validate=validate.OneOf(ROLES))


class ProfileOutSchema(Schema):
    id = fields.String()
    email = fields.String(allow_none=True)
    full_name = fields.String(allow_none=True)
    phone = fields.String(allow_none=True)
    gender = fields.String(allow_none=True)
    avatar_url = fields.String(allow_none=True)
    role = fields.String()
    student_id = fields.String(allow_none=True)
    department = fields.String(allow_none=True)
    batch = fields.String(allow_none=True)
    program = fields.String(allow_none=True)
    current_trimester = fields.String(allow_none=True)
    completed_credits = fields.Integer(allow_none=True)
    cgpa = fields.Float(allow_none=True)
    trimester_credits = fields.Integer(allow_none=True)
    created_at = fields.DateTime()


class IdentityOutSchema(Schema):
    """Serialized Identity: what the client learns about the signed-in principal."""

    id = fields.String(attribute="account_id")
    email = fields.String()
    role = fields.String()
    is_authenticated = fields.Constant(True)
    profile = fields.Nested(ProfileOutSchema, allow_none=True)


class AccountOutSchema(Schema):
    id = fields.String()
    email = fields.String()
    role = fields.String()
    created_at = fields.DateTime()
    updated_at = fields.DateTime()
    profile = fields.Nested(ProfileOutSchema, allow_none=True)
