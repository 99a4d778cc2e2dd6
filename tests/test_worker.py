import asyncio
from datetime import datetime, timedelta

import pytest

from dojo import worker
from dojo.models import Class, Enrollment
from dojo.models_payment import Payment

NOW = datetime(2025, 10, 20, 12, 0)


@pytest.fixture
def worker_db(db, monkeypatch):
    monkeypatch.setattr(worker, "SessionLocal", lambda: db)
    return db


def enroll(db, karate_class, student, paid_until, status="active"):
    enrollment = Enrollment(
        class_id=karate_class.id,
        student_id=student.id,
        program_id=karate_class.program_id,
        status=status,
        paid_until=paid_until,
    )
    db.add(enrollment)
    db.commit()
    return enrollment


class TestPaymentReminders:
    def test_groups_expiring_and_expired_by_family(self, db, family, student, sibling, karate_class):
        enroll(db, karate_class, student, NOW + timedelta(days=3))
        enroll(db, karate_class, sibling, NOW - timedelta(days=1))

        reminders = worker.collect_payment_reminders(db, NOW)

        assert list(reminders) == [family.id]
        reminder = reminders[family.id]
        assert reminder["email"] == "tanaka@example.com"
        by_name = {s["name"]: s for s in reminder["students"]}
        assert by_name["Hana Tanaka"]["expired"] is False
        assert by_name["Hana Tanaka"]["paid_until"] == "October 23, 2025"
        assert by_name["Ren Tanaka"]["expired"] is True

    def test_skips_far_off_unpaid_and_inactive(self, db, student, sibling, karate_class, program):
        enroll(db, karate_class, student, NOW + timedelta(days=20))
        enroll(db, karate_class, sibling, None)
        other_class = Class(program_id=program.id, name="Friday Open Mat", is_active=True)
        db.add(other_class)
        db.commit()
        enroll(db, other_class, student, NOW - timedelta(days=5), status="dropped")

        assert worker.collect_payment_reminders(db, NOW) == {}

    def test_task_emails_each_family_once(self, worker_db, student, sibling, karate_class, outbox):
        soon = worker.utcnow() + timedelta(days=2)
        enroll(worker_db, karate_class, student, soon)
        enroll(worker_db, karate_class, sibling, soon)

        result = asyncio.run(worker.payment_reminder_task({}))

        assert result == {"families": 1, "sent": 1}
        assert len(outbox) == 1
        assert outbox[0]["subject"].startswith("Membership Payment Reminder")


def test_missing_waiver_reminder_task(worker_db, family, outbox):
    from dojo.domain.waivers.service import WaiverService

    WaiverService(worker_db).create_waiver(
        {"title": "Liability release", "content": "Risk acknowledged.", "required_for_registration": True}
    )

    result = asyncio.run(worker.missing_waiver_reminder_task({}))

    assert result == {"families": 1, "sent": 1}
    assert outbox[0]["to"] == "tanaka@example.com"
    assert outbox[0]["subject"].startswith("Waivers Required")


class TestRevenueReport:
    def test_previous_month_range(self):
        assert worker.previous_month_range(datetime(2025, 3, 15, 9, 30)) == (datetime(2025, 2, 1), datetime(2025, 3, 1))
        assert worker.previous_month_range(datetime(2025, 1, 1)) == (datetime(2024, 12, 1), datetime(2025, 1, 1))

    def test_summarize_revenue(self):
        payments = [
            Payment(type="monthly_group", total_amount=12600),
            Payment(type="monthly_group", total_amount=12600),
            Payment(type="store_purchase", total_amount=5600),
        ]

        totals, grand_total = worker.summarize_revenue(payments)

        assert totals == {"monthly_group": 25200, "store_purchase": 5600}
        assert grand_total == 30800

    def test_summarize_nothing(self):
        assert worker.summarize_revenue([]) == ({}, 0)


def test_waitlist_task_promotes_and_notifies(worker_db, family, student, sibling, program, outbox):
    class_ = Class(program_id=program.id, name="Small Group", max_capacity=1, is_active=True)
    worker_db.add(class_)
    worker_db.commit()
    enroll(worker_db, class_, student, None)
    enroll(worker_db, class_, sibling, None, status="waitlist")
    class_.max_capacity = 2
    worker_db.commit()

    result = asyncio.run(worker.process_all_waitlists_task({}))

    assert result == {"promoted": 1}
    assert outbox[0]["subject"] == "Ren Tanaka is enrolled in Small Group"


def test_cron_schedule_registered():
    names = {job.name for job in worker.WorkerSettings.cron_jobs}

    assert len(worker.WorkerSettings.cron_jobs) == 5
    assert "cron:payment_reminder_task" in names
    assert "cron:process_all_waitlists_task" in names
