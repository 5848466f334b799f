"""
Actor Routes

Routes:
- POST /actors       - Register as a citizen
- GET  /actors/me    - The calling actor
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from core.actors import Actor
from core.service import LandRegistryService
from web.dependencies import current_actor, get_service
from web.schemas import RegisterActorRequest


router = APIRouter(prefix="/actors", tags=["actors"])


@router.post("", status_code=201)
async def register_actor(
    body: RegisterActorRequest,
    service: LandRegistryService = Depends(get_service),
):
    actor = service.register_actor(body.actor_id, full_name=body.full_name, email=body.email)
    return actor.to_dict()


@router.get("/me")
async def whoami(actor: Actor = Depends(current_actor)):
    return actor.to_dict()
