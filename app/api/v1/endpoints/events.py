"""Domain event ingress endpoints.

Each event is validated, mapped to a notification and queued. The response
means "durably queued", never "delivered".
"""

from fastapi import APIRouter, status

from app.dependencies import PushQueue
from app.schemas.events import MessageEvent, SocialEvent
from app.schemas.notifications import OkResponse
from app.services.event_service import EventService

router = APIRouter(prefix="/events", tags=["Events"])


@router.post(
    "/like",
    response_model=OkResponse,
    status_code=status.HTTP_200_OK,
    summary="Queue a new-like notification",
)
async def like_event(event: SocialEvent, queue: PushQueue) -> OkResponse:
    await queue.enqueue(EventService.like_job(event))
    return OkResponse()


@router.post(
    "/match",
    response_model=OkResponse,
    status_code=status.HTTP_200_OK,
    summary="Queue a match notification",
)
async def match_event(event: SocialEvent, queue: PushQueue) -> OkResponse:
    await queue.enqueue(EventService.match_job(event))
    return OkResponse()


@router.post(
    "/message",
    response_model=OkResponse,
    status_code=status.HTTP_200_OK,
    summary="Queue a new-message notification",
)
async def message_event(event: MessageEvent, queue: PushQueue) -> OkResponse:
    await queue.enqueue(EventService.message_job(event))
    return OkResponse()
