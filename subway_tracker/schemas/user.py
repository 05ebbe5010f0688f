"""User-facing auth request and response schemas."""

from __future__ import annotations

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class RegisterRequest(BaseModel):
    """Handle/PIN registration payload."""

    model_config = ConfigDict(str_strip_whitespace=True)

    handle: str = Field(
        min_length=3, max_length=20, validation_alias=AliasChoices("handle", "username")
    )
    credential: str = Field(
        pattern=r"^[0-9]{4,6}$", validation_alias=AliasChoices("credential", "pin")
    )


class LoginRequest(BaseModel):
    """Handle/PIN login payload."""

    model_config = ConfigDict(str_strip_whitespace=True)

    handle: str = Field(
        min_length=1, max_length=320, validation_alias=AliasChoices("handle", "username")
    )
    credential: str = Field(
        min_length=1, max_length=64, validation_alias=AliasChoices("credential", "pin")
    )


class PublicUser(BaseModel):
    """Public identity of an account; never carries the credential."""

    id: int
    handle: str


class CurrentUserResponse(BaseModel):
    """Identity check response."""

    user: PublicUser


class AuthSuccessResponse(BaseModel):
    """Login/registration success response."""

    success: bool = True
    user: PublicUser


class HandleCheckResponse(BaseModel):
    """Handle availability response."""

    exists: bool


class SuccessResponse(BaseModel):
    """Bare acknowledgement."""

    success: bool = True
