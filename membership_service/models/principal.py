from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID


@dataclass(frozen=True, slots=True)
class Principal:
    """Verified caller identity, carried through FastAPI's dependency system.

    Always set (from the credential verifier):
        user_id: subject id of the verified credential
        email: verified email, lower-cased ("" when the token has none)
        super_admin: explicit platform-operator claim

    Set by the org-scoped dependencies once membership is resolved:
        org_id: organization addressed by the request path
        org_role: caller's role in that organization (org_admin|specialist)
    """

    user_id: str
    email: str = ""
    super_admin: bool = False
    org_id: UUID | None = None
    org_role: str | None = None

    def has_org_role(self, role: str) -> bool:
        return self.org_role == role

    @property
    def is_org_admin(self) -> bool:
        return self.org_role == "org_admin"
