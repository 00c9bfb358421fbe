"""Maps domain events to push jobs."""

from urllib.parse import quote

from app.schemas.events import MessageEvent, SocialEvent
from app.schemas.push import PushJob, PushPayload

MATCHES_DEEP_LINK = "/(tabs)/matches"


def thread_deep_link(thread_id: str) -> str:
    """Deep link to a chat thread in the mobile app."""
    return f"/(tabs)/chat/[id]?id={quote(thread_id, safe='')}"


class EventService:
    """Builds the notification for each supported event type."""

    @staticmethod
    def like_job(event: SocialEvent) -> PushJob:
        """Someone liked the recipient's profile."""
        return PushJob(
            user_id=event.recipient_user_id,
            payload=PushPayload(
                title="New like",
                body=f"{event.sender_name} liked your profile",
                data={
                    "type": "like",
                    "senderUserId": event.sender_user_id,
                    "deepLink": MATCHES_DEEP_LINK,
                },
            ),
        )

    @staticmethod
    def match_job(event: SocialEvent) -> PushJob:
        """Two users liked each other."""
        return PushJob(
            user_id=event.recipient_user_id,
            payload=PushPayload(
                title="It's a match",
                body=f"You and {event.sender_name} matched",
                data={
                    "type": "match",
                    "senderUserId": event.sender_user_id,
                    "deepLink": MATCHES_DEEP_LINK,
                },
            ),
        )

    @staticmethod
    def message_job(event: MessageEvent) -> PushJob:
        """New chat message; titled by the sender, body is the preview."""
        return PushJob(
            user_id=event.recipient_user_id,
            payload=PushPayload(
                title=event.sender_name,
                body=event.message_preview,
                data={
                    "type": "message",
                    "threadId": event.thread_id,
                    "senderUserId": event.sender_user_id,
                    "deepLink": thread_deep_link(event.thread_id),
                },
            ),
        )
