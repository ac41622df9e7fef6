"""Customer-facing web chat: sessions and queue joining.

Customers are anonymous; the tenant comes from the header, subdomain or
domain the widget is served under.
"""

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from app.api.deps import SecurityLog, Session, TenantId
from app.core.errors import AlreadyInQueueError
from app.models.queue import QueueEntryRead
from app.models.webchat_session import WebChatJoin, WebChatStatus
from app.services.webchat_service import WebChatService

router = APIRouter(prefix="/webchat", tags=["webchat"])


class WebChatSessionCreate(BaseModel):
    session_id: str = Field(min_length=8, max_length=128)
    merchant_id: str
    customer_name: str = Field(default="", max_length=255)


class WebChatSessionRead(BaseModel):
    session_id: str
    merchant_id: str
    customer_name: str
    in_queue: bool


@router.post("/sessions", response_model=WebChatSessionRead, status_code=status.HTTP_201_CREATED)
async def create_session(
    body: WebChatSessionCreate,
    tenant_id: TenantId,
    session: Session,
    security_log: SecurityLog,
) -> WebChatSessionRead:
    chat = await WebChatService(session, security_log).create_session(
        body.session_id, body.merchant_id, body.customer_name, tenant_id
    )
    return WebChatSessionRead(
        session_id=chat.session_id,
        merchant_id=chat.merchant_id,
        customer_name=chat.customer_name,
        in_queue=chat.queue_entry_id is not None,
    )


@router.post(
    "/sessions/{session_id}/join",
    response_model=QueueEntryRead,
    status_code=status.HTTP_201_CREATED,
)
async def join_queue(
    session_id: str,
    body: WebChatJoin,
    tenant_id: TenantId,
    session: Session,
    security_log: SecurityLog,
) -> QueueEntryRead:
    try:
        entry = await WebChatService(session, security_log).join_queue(session_id, body, tenant_id)
    except AlreadyInQueueError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="This chat session is already in a queue",
        ) from exc
    return QueueEntryRead.model_validate(entry)


@router.get("/sessions/{session_id}/status", response_model=WebChatStatus)
async def get_status(
    session_id: str,
    tenant_id: TenantId,
    session: Session,
    security_log: SecurityLog,
) -> WebChatStatus:
    return await WebChatService(session, security_log).get_queue_status(session_id, tenant_id)


@router.post("/sessions/{session_id}/cancel", response_model=QueueEntryRead)
async def cancel(
    session_id: str,
    tenant_id: TenantId,
    session: Session,
    security_log: SecurityLog,
) -> QueueEntryRead:
    entry = await WebChatService(session, security_log).cancel_queue_entry(session_id, tenant_id)
    return QueueEntryRead.model_validate(entry)
