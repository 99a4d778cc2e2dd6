"""Messaging repository - conversations, messages and push subscriptions"""

from datetime import datetime
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload

from ...models import Enrollment, Profile, Student
from ...models_messaging import Conversation, ConversationParticipant, Message, PushSubscription


class MessagingRepository:
    """Repository for messaging database operations"""

    @staticmethod
    def get_conversation(db: Session, conversation_id: int) -> Optional[Conversation]:
        return (
            db.query(Conversation)
            .options(joinedload(Conversation.participants))
            .filter(Conversation.id == conversation_id)
            .first()
        )

    @staticmethod
    def get_participant(db: Session, conversation_id: int, profile_id: int) -> Optional[ConversationParticipant]:
        return (
            db.query(ConversationParticipant)
            .filter(
                ConversationParticipant.conversation_id == conversation_id,
                ConversationParticipant.profile_id == profile_id,
            )
            .first()
        )

    @staticmethod
    def participations(db: Session, profile_id: int) -> list[ConversationParticipant]:
        return (
            db.query(ConversationParticipant)
            .join(Conversation)
            .options(joinedload(ConversationParticipant.conversation))
            .filter(ConversationParticipant.profile_id == profile_id)
            .order_by(Conversation.last_message_at.desc())
            .all()
        )

    @staticmethod
    def count_unread(db: Session, conversation_id: int, profile_id: int, last_read_at: Optional[datetime]) -> int:
        query = db.query(Message).filter(Message.conversation_id == conversation_id, Message.sender_id != profile_id)
        if last_read_at is not None:
            query = query.filter(Message.created_at > last_read_at)
        return query.count()

    @staticmethod
    def last_message(db: Session, conversation_id: int) -> Optional[Message]:
        return (
            db.query(Message)
            .filter(Message.conversation_id == conversation_id)
            .order_by(Message.created_at.desc(), Message.id.desc())
            .first()
        )

    @staticmethod
    def get_messages(db: Session, conversation_id: int) -> list[Message]:
        return (
            db.query(Message)
            .options(joinedload(Message.sender))
            .filter(Message.conversation_id == conversation_id)
            .order_by(Message.created_at, Message.id)
            .all()
        )

    @staticmethod
    def existing_profile_ids(db: Session, profile_ids: list[int]) -> set[int]:
        rows = db.query(Profile.id).filter(Profile.id.in_(profile_ids)).all()
        return {row[0] for row in rows}

    @staticmethod
    def class_family_profiles(db: Session, class_id: int) -> list[Profile]:
        """Login profiles of families with an active or trial enrollment in the class"""
        family_ids = (
            db.query(Student.family_id)
            .join(Enrollment, Enrollment.student_id == Student.id)
            .filter(Enrollment.class_id == class_id, or_(Enrollment.status == "active", Enrollment.status == "trial"))
            .distinct()
        )
        return db.query(Profile).filter(Profile.family_id.in_(family_ids)).all()

    @staticmethod
    def get_push_subscription(db: Session, endpoint: str) -> Optional[PushSubscription]:
        return db.query(PushSubscription).filter(PushSubscription.endpoint == endpoint).first()
