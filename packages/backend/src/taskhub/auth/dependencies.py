"""FastAPI auth dependencies.

Learn: These are used as Depends() in route handlers to extract
and validate the current user identity from the request.

Token sources, first hit wins:
1. `Authorization: Bearer <jwt>` header
2. `accessToken` cookie (browser clients)

The verifier and membership oracle live on app.state (built in
create_app), so tests swap them with dependency_overrides instead of
patching modules.
"""

import uuid
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request

from taskhub.auth.verifier import CredentialVerifier, Identity, extract_bearer
from taskhub.errors import AuthorizationError, NotFoundError
from taskhub.services.membership import MembershipOracle


def get_credential_verifier(request: Request) -> CredentialVerifier:
    return request.app.state.credential_verifier


def get_membership_oracle(request: Request) -> MembershipOracle:
    return request.app.state.membership_oracle


def token_from_request(request: Request) -> Optional[str]:
    return extract_bearer(request.headers.get("authorization")) or request.cookies.get(
        "accessToken"
    )


async def get_current_user(
    request: Request,
    verifier: CredentialVerifier = Depends(get_credential_verifier),
) -> Identity:
    """Extract current identity (required — 401 if missing or invalid)."""
    identity = await verifier.verify(token_from_request(request))
    request.state.user_id = identity.user_id
    return identity


@dataclass(frozen=True)
class ProjectAccess:
    """The caller's membership in the project named by the route."""

    project_id: uuid.UUID
    user_id: uuid.UUID
    role: str


def require_project_role(*roles: str):
    """Dependency factory: caller must be a member, optionally with one of `roles`.

    Learn: Non-members get a 404 rather than a 403 so project ids can't be
    probed. Members with the wrong role get a 403.

        @router.delete("/projects/{project_id}")
        async def delete(access: ProjectAccess = Depends(require_project_role("admin"))):
    """

    async def dependency(
        project_id: uuid.UUID,
        identity: Identity = Depends(get_current_user),
        oracle: MembershipOracle = Depends(get_membership_oracle),
    ) -> ProjectAccess:
        role = await oracle.role_of(identity.user_id, project_id)
        if role is None:
            raise NotFoundError("Project not found")
        if roles and role not in roles:
            raise AuthorizationError("You do not have permission to perform this action")
        return ProjectAccess(
            project_id=project_id, user_id=uuid.UUID(identity.user_id), role=role
        )

    return dependency
