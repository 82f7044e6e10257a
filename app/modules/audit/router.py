"""Admin endpoints for the audit trail and outbox health."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query

from app.core.security import Actor, get_current_actor
from app.modules.audit.schemas import AuditLogRead, OutboxEventRead, OutboxSummaryRead
from app.modules.audit.service import AuditService, get_audit_service
from app.shared.pagination import Page, build_page, get_pagination_params

router = APIRouter(prefix="/audit", tags=["audit"])


@router.get("/logs", response_model=Page[AuditLogRead])
async def list_logs(
    entity_type: str | None = Query(default=None),
    entity_id: str | None = Query(default=None),
    actor_id: UUID | None = Query(default=None),
    action: str | None = Query(default=None, description="Action prefix, e.g. 'session.'"),
    pagination=Depends(get_pagination_params),
    service: AuditService = Depends(get_audit_service),
    actor: Actor = Depends(get_current_actor),
) -> Page[AuditLogRead]:
    items, total = await service.list_logs(
        actor,
        pagination.limit,
        pagination.offset,
        entity_type=entity_type,
        entity_id=entity_id,
        actor_id=actor_id,
        action_prefix=action,
    )
    return build_page([AuditLogRead.model_validate(item) for item in items], total, pagination)


@router.get("/outbox/pending", response_model=list[OutboxEventRead])
async def list_pending_outbox(
    limit: int = Query(default=100, ge=1, le=500),
    service: AuditService = Depends(get_audit_service),
    actor: Actor = Depends(get_current_actor),
) -> list[OutboxEventRead]:
    return [OutboxEventRead.model_validate(item) for item in await service.list_pending_outbox(actor, limit)]


@router.get("/outbox/dead-letter", response_model=list[OutboxEventRead])
async def list_dead_letter_outbox(
    limit: int = Query(default=100, ge=1, le=500),
    event_type: str | None = Query(default=None),
    service: AuditService = Depends(get_audit_service),
    actor: Actor = Depends(get_current_actor),
) -> list[OutboxEventRead]:
    items = await service.list_dead_letters(actor, limit, event_type=event_type)
    return [OutboxEventRead.model_validate(item) for item in items]


@router.post("/outbox/{event_id}/replay", response_model=OutboxEventRead)
async def replay_outbox_event(
    event_id: UUID,
    service: AuditService = Depends(get_audit_service),
    actor: Actor = Depends(get_current_actor),
) -> OutboxEventRead:
    return OutboxEventRead.model_validate(await service.replay_dead_letter(event_id, actor))


@router.get("/outbox/summary", response_model=OutboxSummaryRead)
async def outbox_summary(
    service: AuditService = Depends(get_audit_service),
    actor: Actor = Depends(get_current_actor),
) -> OutboxSummaryRead:
    return await service.outbox_summary(actor)
