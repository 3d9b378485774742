"""FastAPI router for the webhook management API."""

from __future__ import annotations

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from fastapi.security import HTTPAuthorizationCredentials

from beacon import __version__
from beacon.models import ALL_EVENT_TYPES, CATEGORY_DESCRIPTIONS, EVENT_CATEGORIES
from beacon.service import WebhookService
from beacon.webhooks import verification_instructions

from .auth import resolve_user_id, security
from .schemas import (
    CreatedWebhookResponse,
    CreateWebhookRequest,
    DeleteResponse,
    DeliveryLogEntry,
    DeliveryLogResponse,
    DeliveryResultResponse,
    EventCatalogResponse,
    HealthResponse,
    SecretRotationResponse,
    SignatureInfoResponse,
    UpdateWebhookRequest,
    WebhookListResponse,
    WebhookResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()

# Service instance (set by app lifespan)
_service: WebhookService | None = None


def set_service(service: WebhookService | None) -> None:
    """Set the global service instance."""
    global _service
    _service = service


async def get_service() -> WebhookService:
    """Dependency to get the WebhookService instance."""
    if _service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service not initialized",
        )
    return _service


ServiceDep = Annotated[WebhookService, Depends(get_service)]


async def get_current_user(
    service: ServiceDep,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    x_user_id: Annotated[str | None, Header()] = None,
) -> str:
    """Dependency resolving the requesting owner's user ID."""
    return resolve_user_id(service.settings, credentials, x_user_id)


UserDep = Annotated[str, Depends(get_current_user)]


# Routes without a path parameter are registered first so "/health" and
# "/info/..." are never captured by "/{webhook_id}".


@router.get("/health", response_model=HealthResponse, tags=["system"])
async def health_check() -> HealthResponse:
    """Check service health."""
    if _service is None:
        return HealthResponse(status="unhealthy", version=__version__, storage_connected=False)
    return HealthResponse(
        status="healthy",
        version=__version__,
        storage_connected=True,
        scheduler_running=_service.scheduler.running,
    )


@router.get("/info/events", response_model=EventCatalogResponse, tags=["info"])
async def list_event_types() -> EventCatalogResponse:
    """List every event type that can be subscribed to, grouped by category."""
    return EventCatalogResponse(
        events=list(ALL_EVENT_TYPES),
        categories=EVENT_CATEGORIES,
        descriptions=CATEGORY_DESCRIPTIONS,
    )


@router.get("/info/signature", response_model=SignatureInfoResponse, tags=["info"])
async def signature_info() -> SignatureInfoResponse:
    """Describe how receivers verify delivery signatures."""
    return SignatureInfoResponse(**verification_instructions())


@router.get("", response_model=WebhookListResponse, tags=["webhooks"])
async def list_webhooks(service: ServiceDep, user_id: UserDep) -> WebhookListResponse:
    """List the caller's webhooks, newest first. Secrets are never included."""
    webhooks = await service.list_webhooks(user_id)
    return WebhookListResponse(webhooks=[WebhookResponse.from_model(w) for w in webhooks])


@router.post(
    "",
    response_model=CreatedWebhookResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["webhooks"],
)
async def create_webhook(
    request: CreateWebhookRequest,
    service: ServiceDep,
    user_id: UserDep,
) -> CreatedWebhookResponse:
    """Register a webhook.

    The response carries the signing secret; it is not retrievable later,
    only replaceable through regenerate-secret.
    """
    created = await service.create_webhook(
        user_id=user_id,
        url=request.url,
        events=request.events,
        description=request.description,
    )
    return CreatedWebhookResponse(
        webhook=WebhookResponse.from_model(created.webhook),
        secret=created.secret,
    )


@router.get("/{webhook_id}", response_model=WebhookResponse, tags=["webhooks"])
async def get_webhook(webhook_id: str, service: ServiceDep, user_id: UserDep) -> WebhookResponse:
    """Get one of the caller's webhooks."""
    return WebhookResponse.from_model(await service.get_webhook(webhook_id, user_id))


@router.patch("/{webhook_id}", response_model=WebhookResponse, tags=["webhooks"])
async def update_webhook(
    webhook_id: str,
    request: UpdateWebhookRequest,
    service: ServiceDep,
    user_id: UserDep,
) -> WebhookResponse:
    """Update the supplied fields of a webhook.

    Fields absent from the body are left unchanged; an explicit null
    description clears it.
    """
    changes: dict[str, Any] = {name: getattr(request, name) for name in request.model_fields_set}
    updated = await service.update_webhook(webhook_id, user_id, **changes)
    return WebhookResponse.from_model(updated)


@router.delete("/{webhook_id}", response_model=DeleteResponse, tags=["webhooks"])
async def delete_webhook(webhook_id: str, service: ServiceDep, user_id: UserDep) -> DeleteResponse:
    """Delete a webhook and its delivery log."""
    await service.delete_webhook(webhook_id, user_id)
    return DeleteResponse(deleted=True, webhook_id=webhook_id)


@router.post("/{webhook_id}/test", response_model=DeliveryResultResponse, tags=["webhooks"])
async def send_test_event(
    webhook_id: str,
    service: ServiceDep,
    user_id: UserDep,
) -> DeliveryResultResponse:
    """Send a webhook.test delivery and report its outcome."""
    result = await service.send_test_event(webhook_id, user_id)
    return DeliveryResultResponse(
        success=result.success,
        status_code=result.status_code,
        error=result.error,
    )


@router.post(
    "/{webhook_id}/regenerate-secret",
    response_model=SecretRotationResponse,
    tags=["webhooks"],
)
async def regenerate_secret(
    webhook_id: str,
    service: ServiceDep,
    user_id: UserDep,
) -> SecretRotationResponse:
    """Replace the signing secret. The previous secret stops working immediately."""
    rotation = await service.regenerate_secret(webhook_id, user_id)
    return SecretRotationResponse(webhook_id=rotation.webhook_id, secret=rotation.secret)


@router.post("/{webhook_id}/toggle", response_model=WebhookResponse, tags=["webhooks"])
async def toggle_webhook(webhook_id: str, service: ServiceDep, user_id: UserDep) -> WebhookResponse:
    """Enable or disable a webhook."""
    return WebhookResponse.from_model(await service.toggle_webhook(webhook_id, user_id))


@router.get("/{webhook_id}/logs", response_model=DeliveryLogResponse, tags=["webhooks"])
async def get_delivery_logs(
    webhook_id: str,
    service: ServiceDep,
    user_id: UserDep,
    limit: Annotated[int | None, Query(description="Maximum entries (capped at 100)")] = None,
) -> DeliveryLogResponse:
    """Recent delivery attempts, newest first."""
    attempts = await service.get_delivery_logs(webhook_id, user_id, limit=limit)
    return DeliveryLogResponse(
        webhook_id=webhook_id,
        logs=[DeliveryLogEntry.from_model(a) for a in attempts],
    )
