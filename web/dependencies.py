"""
Request dependencies: the registry service, the calling actor, and payment
callback signatures.

The caller is identified by the X-Actor-Id header, resolved through the
Actor Directory. Token issuance happens upstream of this service.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request

from core.actors import Actor
from core.service import LandRegistryService, get_registry_service
from utils.config import Config


logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Signature"


def get_config() -> Config:
    return Config.load()


def get_service() -> LandRegistryService:
    return get_registry_service()


def current_actor(
    x_actor_id: Optional[str] = Header(default=None),
    service: LandRegistryService = Depends(get_service),
) -> Actor:
    """
    Resolve the caller.

    Raises HTTPException(401) if the header is missing or the actor unknown.
    """
    if not x_actor_id:
        raise HTTPException(status_code=401, detail="X-Actor-Id header required")
    actor = service.directory.get(x_actor_id)
    if actor is None:
        raise HTTPException(status_code=401, detail="Unknown actor")
    return actor


def sign_payload(body: bytes, secret: str) -> str:
    """Hex HMAC-SHA256 of a callback body."""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


async def verify_payment_signature(
    request: Request,
    config: Config = Depends(get_config),
) -> None:
    """
    Require a valid X-Signature on payment rail callbacks.

    Raises HTTPException(403) if callbacks are not configured or the
    signature does not match.
    """
    if not config.payment_webhook_secret:
        raise HTTPException(status_code=403, detail="Payment callbacks are not configured")
    signature = request.headers.get(SIGNATURE_HEADER, "")
    expected = sign_payload(await request.body(), config.payment_webhook_secret)
    if not hmac.compare_digest(signature, expected):
        logger.warning("Rejected payment callback with bad signature")
        raise HTTPException(status_code=403, detail="Invalid signature")
