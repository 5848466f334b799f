"""
Admin Routes - Provisioning, Roles and Operator Views

Everything under /admin/* requires an administrator, except the one-time
provisioning endpoint, which requires the provisioning token instead.

Routes:
- POST /admin/provision                  - Redeem the one-time admin grant
- POST /admin/actors/{id}/role           - Change another actor's role
- GET  /admin/audit                      - Recent audit entries
- GET  /admin/audit/verify               - Verify the audit hash chain
- GET  /admin/health                     - Audit gaps, parked notifications
- POST /admin/notifications/redeliver    - Retry parked notifications
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from core.actors import Actor, Role
from core.service import LandRegistryService
from web.dependencies import current_actor, get_service
from web.schemas import ChangeRoleRequest, ProvisionAdminRequest


router = APIRouter(prefix="/admin", tags=["admin"])


# =============================================================================
# Authentication Dependency
# =============================================================================


def require_admin(actor: Actor = Depends(current_actor)) -> Actor:
    """
    Dependency that requires an administrator.

    Raises HTTPException(403) otherwise.
    """
    if actor.role != Role.ADMIN:
        raise HTTPException(status_code=403, detail="Administrator access required")
    return actor


# =============================================================================
# Provisioning and roles
# =============================================================================


@router.post("/provision", status_code=201)
async def provision_admin(
    body: ProvisionAdminRequest,
    service: LandRegistryService = Depends(get_service),
):
    actor = service.provisioning.redeem(
        body.token, body.actor_id, full_name=body.full_name, email=body.email
    )
    return actor.to_dict()


@router.post("/actors/{actor_id}/role")
async def change_role(
    actor_id: str,
    body: ChangeRoleRequest,
    admin: Actor = Depends(require_admin),
    service: LandRegistryService = Depends(get_service),
):
    return service.change_role(admin, actor_id, body.role).to_dict()


# =============================================================================
# Operator views
# =============================================================================


@router.get("/audit")
async def recent_audit_entries(
    limit: int = 50,
    admin: Actor = Depends(require_admin),
    service: LandRegistryService = Depends(get_service),
):
    entries = service.audit.recent(limit=max(1, min(limit, 500)))
    return {"entries": [e.to_dict() for e in entries], "count": len(entries)}


@router.get("/audit/verify")
async def verify_audit_chain(
    admin: Actor = Depends(require_admin),
    service: LandRegistryService = Depends(get_service),
):
    return service.audit.verify_chain()


@router.get("/health")
async def operator_health(
    admin: Actor = Depends(require_admin),
    service: LandRegistryService = Depends(get_service),
):
    return service.health()


@router.post("/notifications/redeliver")
async def redeliver_notifications(
    admin: Actor = Depends(require_admin),
    service: LandRegistryService = Depends(get_service),
):
    delivered = service.dispatcher.redeliver()
    return {"delivered": delivered, "remaining": len(service.dispatcher.dead_letters)}
