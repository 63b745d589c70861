from typing import Annotated

from fastapi import Depends, HTTPException, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.security.identity import IdentityProvider, Principal
from app.tickets.errors import AuthenticationError

bearer_scheme = HTTPBearer(auto_error=False)


async def get_identity_provider(request: Request) -> IdentityProvider:
    provider = getattr(request.app.state, "identity_provider", None)
    if provider is None:
        raise HTTPException(status_code=503, detail="Identity provider is not configured")
    return provider


async def get_current_principal(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Security(bearer_scheme)],
    request: Request,
) -> Principal:
    """Resolve the bearer session token into the calling principal.

    The result is cached on ``request.state`` for the rest of the request. The
    role is not part of the principal; it is resolved separately on each use.
    """

    cached = getattr(request.state, "principal", None)
    if isinstance(cached, Principal):
        return cached

    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=401, detail="Not authenticated")

    provider = await get_identity_provider(request)
    try:
        principal = await provider.resolve_token(credentials.credentials)
    except AuthenticationError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc

    request.state.principal = principal
    return principal


CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]
IdentityProviderDep = Annotated[IdentityProvider, Depends(get_identity_provider)]
