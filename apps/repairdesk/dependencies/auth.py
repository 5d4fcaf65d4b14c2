from collections.abc import Callable
from enum import Enum
from typing import Annotated, Mapping

from fastapi import Depends, HTTPException, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from apps.repairdesk.orders.access import Capability


class Role(str, Enum):
    """Supported roles."""

    ADMIN = "admin"
    LAB = "lab"
    SUPPORT = "support"
    VIEWER = "viewer"


ROLE_CAPABILITIES: Mapping[Role, frozenset[Capability]] = {
    Role.ADMIN: frozenset(Capability),
    Role.LAB: frozenset(
        {
            Capability.TRANSITION_ORDER,
            Capability.UPDATE_ORDER,
            Capability.CREATE_ORDER,
            Capability.VIEW_DASHBOARD,
        }
    ),
    Role.SUPPORT: frozenset(
        {
            Capability.TRANSITION_ORDER,
            Capability.CREATE_ORDER,
            Capability.MANAGE_CLIENTS,
            Capability.VIEW_DASHBOARD,
        }
    ),
    Role.VIEWER: frozenset(),
}


class User:
    """Authenticated user, usable as an order ``Actor``."""

    def __init__(self, username: str, roles: tuple[Role, ...]):
        self.username = username
        self.roles = roles

    def has_role(self, role: Role) -> bool:
        return role in self.roles

    def can(self, capability: Capability) -> bool:
        return any(capability in ROLE_CAPABILITIES.get(role, frozenset()) for role in self.roles)


TOKEN_USER_MAP: dict[str, tuple[str, tuple[Role, ...]]] = {
    "admin-token": ("admin", (Role.ADMIN,)),
    "lab-token": ("lab", (Role.LAB,)),
    "support-token": ("support", (Role.SUPPORT,)),
}

bearer_scheme = HTTPBearer(auto_error=False)


def resolve_user_from_token(token: str | None) -> User:
    """Return a user instance associated with the provided bearer token."""

    if token is None:
        return User(username="anonymous", roles=(Role.VIEWER,))

    if token not in TOKEN_USER_MAP:
        raise HTTPException(status_code=401, detail="Invalid authentication credentials")

    username, roles = TOKEN_USER_MAP[token]
    return User(username=username, roles=roles)


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Security(bearer_scheme)],
    request: Request,
) -> User:
    """Static token lookup standing in for the external identity provider."""

    cached = getattr(request.state, "user", None)
    if isinstance(cached, User):
        return cached

    token = credentials.credentials if credentials is not None else None
    user = resolve_user_from_token(token)
    request.state.user = user
    return user


def role_required(role: Role) -> Callable[[User], User]:
    """Dependency factory ensuring the current user has the requested role."""

    async def dependency(user: Annotated[User, Depends(get_current_user)]) -> User:
        if not user.has_role(role):
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return user

    return dependency


def capability_required(capability: Capability) -> Callable[[User], User]:
    """Dependency factory ensuring the current user holds ``capability``."""

    async def dependency(user: Annotated[User, Depends(get_current_user)]) -> User:
        if not user.can(capability):
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return user

    return dependency


require_create_order = capability_required(Capability.CREATE_ORDER)
require_manage_statuses = capability_required(Capability.MANAGE_STATUSES)
require_manage_clients = capability_required(Capability.MANAGE_CLIENTS)
require_view_dashboard = capability_required(Capability.VIEW_DASHBOARD)

CurrentUser = Annotated[User, Depends(get_current_user)]
StatusAdmin = Annotated[User, Depends(require_manage_statuses)]
ClientManager = Annotated[User, Depends(require_manage_clients)]
DashboardViewer = Annotated[User, Depends(require_view_dashboard)]
