"""Messaging service - family/staff conversations, class announcements and push subscriptions"""

import logging
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...email_service import send_new_message_notification
from ...models import Class, Profile
from ...models_messaging import Conversation, ConversationParticipant, Message, PushSubscription
from ...push_service import send_push_to_profile
from ...shared.dates import utcnow
from .repository import MessagingRepository

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 140


def message_to_dict(message: Message) -> dict:
    return {
        "id": message.id,
        "conversation_id": message.conversation_id,
        "sender_id": message.sender_id,
        "sender_name": message.sender.full_name if message.sender else None,
        "content": message.content,
        "created_at": message.created_at,
    }


def preview(content: str) -> str:
    if len(content) <= PREVIEW_LENGTH:
        return content
    return content[: PREVIEW_LENGTH - 3].rstrip() + "..."


class MessagingService:
    """Service layer for conversations and push subscriptions"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = MessagingRepository()

    def _require_participant(self, conversation_id: int, profile: Profile) -> ConversationParticipant:
        if not self.repo.get_conversation(self.db, conversation_id):
            raise HTTPException(status_code=404, detail="Conversation not found")
        participant = self.repo.get_participant(self.db, conversation_id, profile.id)
        if not participant:
            raise HTTPException(status_code=403, detail="You are not a participant in this conversation")
        return participant

    def _conversation_to_dict(self, conversation: Conversation, participant: ConversationParticipant) -> dict:
        last = self.repo.last_message(self.db, conversation.id)
        return {
            "id": conversation.id,
            "subject": conversation.subject,
            "conversation_type": conversation.conversation_type,
            "class_id": conversation.class_id,
            "created_by": conversation.created_by,
            "last_message_at": conversation.last_message_at,
            "participant_ids": [p.profile_id for p in conversation.participants],
            "unread_count": self.repo.count_unread(
                self.db, conversation.id, participant.profile_id, participant.last_read_at
            ),
            "last_message": preview(last.content) if last else None,
        }

    def _open_conversation(
        self,
        sender: Profile,
        subject: Optional[str],
        profile_ids: set[int],
        content: str,
        conversation_type: str = "direct",
        class_id: Optional[int] = None,
    ) -> tuple[Conversation, Message]:
        now = utcnow()
        conversation = Conversation(
            subject=subject,
            conversation_type=conversation_type,
            class_id=class_id,
            created_by=sender.id,
            created_at=now,
            last_message_at=now,
        )
        self.db.add(conversation)
        self.db.flush()

        for profile_id in profile_ids | {sender.id}:
            self.db.add(
                ConversationParticipant(
                    conversation_id=conversation.id,
                    profile_id=profile_id,
                    last_read_at=now if profile_id == sender.id else None,
                )
            )
        message = Message(conversation_id=conversation.id, sender_id=sender.id, content=content, created_at=now)
        self.db.add(message)
        self.db.commit()
        self.db.refresh(conversation)
        return conversation, message

    # ------------------------------------------------------------------
    # Conversations
    # ------------------------------------------------------------------

    async def create_conversation(
        self, sender: Profile, subject: Optional[str], participant_profile_ids: list[int], message: str
    ) -> dict:
        if not message or not message.strip():
            raise HTTPException(status_code=400, detail="Message content cannot be empty")

        requested = set(participant_profile_ids) - {sender.id}
        if not requested:
            raise HTTPException(status_code=400, detail="A conversation needs at least one other participant")
        missing = requested - self.repo.existing_profile_ids(self.db, list(requested))
        if missing:
            raise HTTPException(status_code=404, detail=f"Profiles not found: {sorted(missing)}")

        conversation, first = self._open_conversation(sender, subject, requested, message.strip())
        logger.info(f"💬 Conversation {conversation.id} opened by profile {sender.id} with {len(requested)} participant(s)")

        await self.notify_participants(conversation, first, sender)
        return self._conversation_to_dict(conversation, self.repo.get_participant(self.db, conversation.id, sender.id))

    async def send_message(self, conversation_id: int, sender: Profile, content: str) -> dict:
        participant = self._require_participant(conversation_id, sender)
        if not content or not content.strip():
            raise HTTPException(status_code=400, detail="Message content cannot be empty")

        now = utcnow()
        message = Message(conversation_id=conversation_id, sender_id=sender.id, content=content.strip(), created_at=now)
        self.db.add(message)
        conversation = participant.conversation
        conversation.last_message_at = now
        participant.last_read_at = now
        self.db.commit()
        self.db.refresh(message)

        await self.notify_participants(conversation, message, sender)
        return message_to_dict(message)

    async def send_class_announcement(self, class_id: int, sender: Profile, subject: str, content: str) -> dict:
        class_ = self.db.query(Class).filter(Class.id == class_id).first()
        if not class_:
            raise HTTPException(status_code=404, detail="Class not found")
        if not content or not content.strip():
            raise HTTPException(status_code=400, detail="Message content cannot be empty")

        recipients = {profile.id for profile in self.repo.class_family_profiles(self.db, class_id)}
        conversation, message = self._open_conversation(
            sender, subject, recipients, content.strip(), conversation_type="class_announcement", class_id=class_id
        )
        logger.info(f"📣 Announcement for class {class_.name} sent to {len(recipients)} profile(s)")

        await self.notify_participants(conversation, message, sender)
        return self._conversation_to_dict(conversation, self.repo.get_participant(self.db, conversation.id, sender.id))

    async def notify_participants(self, conversation: Conversation, message: Message, sender: Profile) -> None:
        """Push and email every other participant; delivery failures are logged only"""
        subject = conversation.subject or "New message"
        for participant in conversation.participants:
            if participant.profile_id == sender.id:
                continue
            recipient = participant.profile
            try:
                send_push_to_profile(
                    self.db,
                    participant.profile_id,
                    title=f"{sender.full_name}: {subject}",
                    body=preview(message.content),
                    url=f"/messages/{conversation.id}",
                    tag=f"conversation-{conversation.id}",
                )
            except Exception as e:
                logger.error(f"❌ Push for message {message.id} to profile {participant.profile_id} failed: {e}")

            if recipient and recipient.email:
                try:
                    await send_new_message_notification(
                        to=recipient.email,
                        recipient_name=recipient.full_name,
                        sender_name=sender.full_name,
                        subject=subject,
                        preview=preview(message.content),
                    )
                except Exception as e:
                    logger.error(f"❌ Message email to profile {participant.profile_id} failed: {e}")

    def list_conversations(self, profile: Profile) -> list[dict]:
        return [
            self._conversation_to_dict(participant.conversation, participant)
            for participant in self.repo.participations(self.db, profile.id)
        ]

    def get_conversation_messages(self, conversation_id: int, profile: Profile) -> list[dict]:
        self._require_participant(conversation_id, profile)
        return [message_to_dict(m) for m in self.repo.get_messages(self.db, conversation_id)]

    def mark_conversation_read(self, conversation_id: int, profile: Profile) -> dict:
        participant = self._require_participant(conversation_id, profile)
        participant.last_read_at = utcnow()
        self.db.commit()
        return {"conversation_id": conversation_id, "last_read_at": participant.last_read_at}

    def get_unread_summary(self, profile: Profile) -> dict:
        counts = [
            self.repo.count_unread(self.db, p.conversation_id, profile.id, p.last_read_at)
            for p in self.repo.participations(self.db, profile.id)
        ]
        return {
            "total_unread": sum(counts),
            "conversations_with_unread": sum(1 for count in counts if count > 0),
        }

    # ------------------------------------------------------------------
    # Push subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, profile: Profile, endpoint: str, keys: dict) -> PushSubscription:
        """Register a browser endpoint; an endpoint already on file moves to this profile"""
        subscription = self.repo.get_push_subscription(self.db, endpoint)
        if subscription:
            subscription.profile_id = profile.id
            subscription.p256dh = keys["p256dh"]
            subscription.auth = keys["auth"]
        else:
            subscription = PushSubscription(
                profile_id=profile.id, endpoint=endpoint, p256dh=keys["p256dh"], auth=keys["auth"]
            )
            self.db.add(subscription)
        self.db.commit()
        self.db.refresh(subscription)
        logger.info(f"🔔 Push subscription saved for profile {profile.id}")
        return subscription

    def unsubscribe(self, profile: Profile, endpoint: str) -> bool:
        """Remove the caller's own subscription; other profiles' endpoints are left alone"""
        subscription = self.repo.get_push_subscription(self.db, endpoint)
        if not subscription or subscription.profile_id != profile.id:
            return False
        self.db.delete(subscription)
        self.db.commit()
        return True
