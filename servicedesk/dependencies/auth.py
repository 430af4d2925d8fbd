from collections.abc import Callable
from enum import Enum
from typing import Annotated

from fastapi import Depends, HTTPException, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer


class Role(str, Enum):
    """Staff roles."""

    ADMIN = "admin"
    COUNTER = "counter"
    TECH = "tech"


class User:
    """Authenticated staff member, or the anonymous caller."""

    def __init__(self, username: str, roles: tuple[Role, ...]):
        self.username = username
        self.roles = roles

    @property
    def is_authenticated(self) -> bool:
        return bool(self.roles)

    def has_role(self, role: Role) -> bool:
        return role in self.roles


ANONYMOUS = User(username="anonymous", roles=())

TOKEN_USER_MAP: dict[str, tuple[str, tuple[Role, ...]]] = {
    "admin-token": ("admin", (Role.ADMIN,)),
    "counter-token": ("counter", (Role.COUNTER,)),
    "tech-token": ("tech", (Role.TECH,)),
}

bearer_scheme = HTTPBearer(auto_error=False)


def resolve_user_from_token(token: str | None) -> User:
    """Return the staff user associated with the provided bearer token."""

    if token is None:
        return ANONYMOUS

    if token not in TOKEN_USER_MAP:
        raise HTTPException(status_code=401, detail="Invalid authentication credentials")

    username, roles = TOKEN_USER_MAP[token]
    return User(username=username, roles=roles)


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Security(bearer_scheme)],
    request: Request,
) -> User:
    """Static token lookup standing in for the real staff session store."""

    cached = getattr(request.state, "user", None)
    if isinstance(cached, User):
        return cached

    token = credentials.credentials if credentials is not None else None
    user = resolve_user_from_token(token)
    request.state.user = user
    return user


def role_required(*roles: Role) -> Callable[[User], User]:
    """Dependency factory ensuring the current user holds one of ``roles``."""

    async def dependency(user: Annotated[User, Depends(get_current_user)]) -> User:
        if not user.is_authenticated:
            raise HTTPException(status_code=401, detail="Authentication required")
        if not any(user.has_role(role) for role in roles):
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return user

    return dependency


CurrentUser = Annotated[User, Depends(get_current_user)]
StaffUser = Annotated[User, Depends(role_required(Role.ADMIN, Role.COUNTER, Role.TECH))]
DeskUser = Annotated[User, Depends(role_required(Role.ADMIN, Role.COUNTER))]
