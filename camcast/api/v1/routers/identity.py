from fastapi import APIRouter

from camcast.api.v1.dependency import CurrentIdentity, Runtime
from camcast.api.v1.schemas.base import ApiOut
from camcast.api.v1.schemas.identity import IdentityOut, SignInIn

router = APIRouter(prefix="/identity")


@router.get("")
async def get_identity(identity: CurrentIdentity) -> ApiOut[IdentityOut | None]:
    return ApiOut[IdentityOut | None](results=IdentityOut.from_identity(identity) if identity else None)


@router.post("/sign_in")
async def sign_in(body: SignInIn, runtime: Runtime) -> ApiOut[IdentityOut]:
    """Sign in. Switching to another uid tears down the previous identity's broadcast."""
    identity = await runtime.identity_provider.sign_in(body.uid, body.display_name)
    return ApiOut[IdentityOut](results=IdentityOut.from_identity(identity))


@router.post("/sign_out")
async def sign_out(runtime: Runtime) -> ApiOut[str]:
    """Sign out. An active broadcast of this identity is ended."""
    await runtime.identity_provider.sign_out()
    return ApiOut[str](results="OK")
