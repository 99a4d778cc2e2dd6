import asyncio
from types import SimpleNamespace

import pytest
from fastapi import HTTPException
from pywebpush import WebPushException

from dojo import push_service
from dojo.domain.messaging import service as messaging_service
from dojo.domain.messaging.service import MessagingService, preview
from dojo.models import Enrollment
from dojo.models_messaging import PushSubscription


@pytest.fixture
def pushes(monkeypatch):
    sent = []

    def fake_push(db, profile_id, title, body, url=None, tag=None):
        sent.append({"profile_id": profile_id, "title": title, "url": url})
        return 1

    monkeypatch.setattr(messaging_service, "send_push_to_profile", fake_push)
    return sent


def open_conversation(db, sender, recipient, text="Is class on tomorrow?"):
    return asyncio.run(MessagingService(db).create_conversation(sender, "Holiday schedule", [recipient.id], text))


class TestConversations:
    def test_create_notifies_other_participants(self, db, parent, instructor, pushes, outbox):
        conversation = open_conversation(db, parent, instructor)

        assert sorted(conversation["participant_ids"]) == sorted([parent.id, instructor.id])
        assert conversation["unread_count"] == 0
        assert conversation["last_message"] == "Is class on tomorrow?"
        assert pushes == [
            {
                "profile_id": instructor.id,
                "title": "Yuki Tanaka: Holiday schedule",
                "url": f"/messages/{conversation['id']}",
            }
        ]
        assert outbox[0]["to"] == "coach@dojo.example"
        assert outbox[0]["subject"] == "New message from Yuki Tanaka"

    def test_needs_someone_else(self, db, parent, pushes):
        with pytest.raises(HTTPException) as exc_info:
            asyncio.run(MessagingService(db).create_conversation(parent, "Me", [parent.id], "hello"))
        assert exc_info.value.status_code == 400

    def test_unknown_participant(self, db, parent, pushes):
        with pytest.raises(HTTPException) as exc_info:
            asyncio.run(MessagingService(db).create_conversation(parent, "Hi", [9999], "hello"))
        assert exc_info.value.status_code == 404

    def test_unread_counts_and_mark_read(self, db, parent, instructor, pushes):
        service = MessagingService(db)
        conversation = open_conversation(db, parent, instructor)
        asyncio.run(service.send_message(conversation["id"], parent, "Also, is sparring gear needed?"))

        summary = service.get_unread_summary(instructor)
        assert summary == {"total_unread": 2, "conversations_with_unread": 1}
        assert service.get_unread_summary(parent)["total_unread"] == 0

        service.mark_conversation_read(conversation["id"], instructor)
        assert service.get_unread_summary(instructor)["total_unread"] == 0

        asyncio.run(service.send_message(conversation["id"], instructor, "Yes to both"))
        assert service.get_unread_summary(parent)["total_unread"] == 1
        assert service.get_unread_summary(instructor)["total_unread"] == 0

    def test_outsiders_cannot_read_or_post(self, db, parent, instructor, outsider, pushes):
        service = MessagingService(db)
        conversation = open_conversation(db, parent, instructor)

        with pytest.raises(HTTPException) as exc_info:
            service.get_conversation_messages(conversation["id"], outsider)
        assert exc_info.value.status_code == 403

        with pytest.raises(HTTPException) as exc_info:
            asyncio.run(service.send_message(conversation["id"], outsider, "let me in"))
        assert exc_info.value.status_code == 403

        with pytest.raises(HTTPException) as exc_info:
            service.get_conversation_messages(12345, parent)
        assert exc_info.value.status_code == 404

    def test_messages_in_order(self, db, parent, instructor, pushes):
        service = MessagingService(db)
        conversation = open_conversation(db, parent, instructor)
        asyncio.run(service.send_message(conversation["id"], instructor, "Yes, usual time"))

        messages = service.get_conversation_messages(conversation["id"], parent)

        assert [m["content"] for m in messages] == ["Is class on tomorrow?", "Yes, usual time"]
        assert messages[1]["sender_name"] == "Kenji Coach"

    def test_list_conversations(self, db, parent, instructor, admin, pushes):
        open_conversation(db, parent, instructor)
        open_conversation(db, admin, parent, text="Welcome to the dojo")

        listed = MessagingService(db).list_conversations(parent)

        assert len(listed) == 2
        assert {c["last_message"] for c in listed} == {"Is class on tomorrow?", "Welcome to the dojo"}

    def test_push_failure_does_not_block_message(self, db, parent, instructor, monkeypatch):
        def broken_push(*args, **kwargs):
            raise RuntimeError("push service down")

        monkeypatch.setattr(messaging_service, "send_push_to_profile", broken_push)

        conversation = open_conversation(db, parent, instructor)

        assert conversation["id"] is not None


class TestAnnouncements:
    def test_reaches_enrolled_families_only(self, db, instructor, parent, outsider, karate_class, student, pushes):
        db.add(Enrollment(class_id=karate_class.id, student_id=student.id, program_id=karate_class.program_id, status="active"))
        db.commit()

        announcement = asyncio.run(
            MessagingService(db).send_class_announcement(
                karate_class.id, instructor, "Belt test", "Belt testing is next Monday."
            )
        )

        assert announcement["conversation_type"] == "class_announcement"
        assert announcement["class_id"] == karate_class.id
        assert sorted(announcement["participant_ids"]) == sorted([instructor.id, parent.id])
        assert [p["profile_id"] for p in pushes] == [parent.id]

    def test_unknown_class(self, db, instructor, pushes):
        with pytest.raises(HTTPException) as exc_info:
            asyncio.run(MessagingService(db).send_class_announcement(999, instructor, "x", "y"))
        assert exc_info.value.status_code == 404


class TestPushSubscriptions:
    KEYS = {"p256dh": "BNcRdreALRFXTkOOUHK1EtK2wtaz5Ry4YfYCA", "auth": "tBHItJI5svbpez7KI4CCXg"}

    def test_endpoint_moves_between_profiles(self, db, parent, instructor):
        service = MessagingService(db)
        endpoint = "https://push.example/sub/1"

        service.subscribe(parent, endpoint, self.KEYS)
        moved = service.subscribe(instructor, endpoint, self.KEYS)

        assert moved.profile_id == instructor.id
        assert db.query(PushSubscription).count() == 1
        assert service.unsubscribe(parent, endpoint) is False
        assert service.unsubscribe(instructor, endpoint) is True
        assert service.unsubscribe(instructor, endpoint) is False

    def test_cannot_unsubscribe_someone_else(self, client, db, parent, outsider, login_as):
        MessagingService(db).subscribe(parent, "https://push.example/sub/parent", self.KEYS)
        login_as(outsider)

        response = client.post("/messages/push/unsubscribe", json={"endpoint": "https://push.example/sub/parent"})

        assert response.json() == {"removed": False}
        assert db.query(PushSubscription).count() == 1

        login_as(parent)
        response = client.post("/messages/push/unsubscribe", json={"endpoint": "https://push.example/sub/parent"})
        assert response.json() == {"removed": True}

    def test_push_disabled_without_vapid_key(self, db, parent, monkeypatch):
        monkeypatch.setattr(push_service, "VAPID_PRIVATE_KEY", None)
        MessagingService(db).subscribe(parent, "https://push.example/sub/2", self.KEYS)

        assert push_service.send_push_to_profile(db, parent.id, "t", "b") == 0

    def test_gone_subscriptions_are_removed(self, db, parent, monkeypatch):
        service = MessagingService(db)
        service.subscribe(parent, "https://push.example/alive", self.KEYS)
        service.subscribe(parent, "https://push.example/gone", self.KEYS)

        def fake_webpush(subscription_info, data, vapid_private_key, vapid_claims):
            if subscription_info["endpoint"].endswith("gone"):
                raise WebPushException("Gone", response=SimpleNamespace(status_code=410))

        monkeypatch.setattr(push_service, "VAPID_PRIVATE_KEY", "test-private-key")
        monkeypatch.setattr(push_service, "webpush", fake_webpush)

        delivered = push_service.send_push_to_profile(db, parent.id, "Hello", "World", url="/messages/1")

        assert delivered == 1
        assert [s.endpoint for s in db.query(PushSubscription).all()] == ["https://push.example/alive"]


def test_preview_truncates_long_messages():
    text = "word " * 60

    short = preview(text)

    assert len(short) <= 140
    assert short.endswith("...")
    assert preview("short") == "short"
