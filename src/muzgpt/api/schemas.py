"""Request bodies for the auth and billing endpoints."""

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SendVerificationRequest(CamelModel):
    email: str = ""
    username: str | None = None
    password: str = ""


class VerifyCodeRequest(CamelModel):
    email: str = ""
    code: str = ""


class LoginRequest(CamelModel):
    email: str = ""
    password: str = ""


class GoogleAuthRequest(CamelModel):
    access_token: str = ""


class UpdateUserRequest(CamelModel):
    user_id: str
    updates: dict[str, Any]


class CheckoutRequest(CamelModel):
    user_id: str = ""


class UpgradeRequest(CamelModel):
    user_id: str
    session_id: str | None = None
