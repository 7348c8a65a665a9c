from pydantic import BaseModel, Field

from camcast.services.integrations.identity_provider import Identity


class SignInIn(BaseModel):
    uid: str = Field(..., min_length=1, max_length=128)
    display_name: str | None = Field(None, max_length=100)


class IdentityOut(BaseModel):
    uid: str
    display_name: str | None = None
    name: str

    @classmethod
    def from_identity(cls, identity: Identity) -> "IdentityOut":
        return cls(uid=identity.uid, display_name=identity.display_name, name=identity.name)
