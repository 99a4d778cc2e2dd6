import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret")
os.environ["PAYMENT_PROVIDER"] = "mock"

from datetime import date, time  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from dojo import email_service, rate_limiter  # noqa: E402
from dojo.auth import get_current_user  # noqa: E402
from dojo.database import Base, get_db  # noqa: E402
from dojo.domain.payments.providers import MockPaymentProvider  # noqa: E402
from dojo.main import app  # noqa: E402
from dojo.models import Class, ClassSchedule, Family, Profile, Program, Student  # noqa: E402
from dojo.models_payment import TaxRate  # noqa: E402


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def outbox(monkeypatch):
    """Every email the code tries to send, instead of calling Resend"""
    sent = []

    async def fake_send_email(to, subject, mjml_content, from_address=None):
        sent.append({"to": to, "subject": subject, "body": mjml_content})
        return {"id": f"test-email-{len(sent)}"}

    monkeypatch.setattr(email_service, "send_email", fake_send_email)
    return sent


@pytest.fixture(autouse=True)
def reset_mock_provider():
    MockPaymentProvider.intents.clear()
    yield
    MockPaymentProvider.intents.clear()


@pytest.fixture(autouse=True)
def no_redis(monkeypatch):
    monkeypatch.setattr(rate_limiter, "get_redis_client", lambda: None)
    monkeypatch.setattr(rate_limiter, "check_rate_limit", lambda key, limit, window, client: (True, 1, window))


# ============================================================================
# Seed data
# ============================================================================


@pytest.fixture
def family(db):
    family = Family(name="Tanaka Family", email="tanaka@example.com", primary_phone="604-555-0101")
    db.add(family)
    db.commit()
    db.refresh(family)
    return family


@pytest.fixture
def other_family(db):
    family = Family(name="Singh Family", email="singh@example.com")
    db.add(family)
    db.commit()
    db.refresh(family)
    return family


@pytest.fixture
def admin(db):
    profile = Profile(auth_uid="admin-uid", email="admin@dojo.example", first_name="Sensei", last_name="Admin", role="admin")
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile


@pytest.fixture
def instructor(db):
    profile = Profile(
        auth_uid="instructor-uid", email="coach@dojo.example", first_name="Kenji", last_name="Coach", role="instructor"
    )
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile


@pytest.fixture
def parent(db, family):
    profile = Profile(
        auth_uid="parent-uid",
        email="parent@example.com",
        first_name="Yuki",
        last_name="Tanaka",
        role="user",
        family_id=family.id,
    )
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile


@pytest.fixture
def outsider(db, other_family):
    profile = Profile(
        auth_uid="outsider-uid", email="outsider@example.com", first_name="Ravi", role="user", family_id=other_family.id
    )
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile


@pytest.fixture
def student(db, family):
    student = Student(family_id=family.id, first_name="Hana", last_name="Tanaka", gender="female", birth_date=date(2014, 5, 1))
    db.add(student)
    db.commit()
    db.refresh(student)
    return student


@pytest.fixture
def sibling(db, family):
    student = Student(family_id=family.id, first_name="Ren", last_name="Tanaka", gender="male", birth_date=date(2016, 9, 3))
    db.add(student)
    db.commit()
    db.refresh(student)
    return student


@pytest.fixture
def program(db):
    program = Program(
        name="Youth Karate",
        duration_minutes=60,
        monthly_fee=12000,
        yearly_fee=120000,
        individual_session_fee=3000,
        gender_restriction="none",
        prerequisite_programs=[],
    )
    db.add(program)
    db.commit()
    db.refresh(program)
    return program


@pytest.fixture
def karate_class(db, program):
    class_ = Class(program_id=program.id, name="Monday Juniors", max_capacity=10, is_active=True)
    db.add(class_)
    db.flush()
    db.add(ClassSchedule(class_id=class_.id, day_of_week="monday", start_time=time(17, 0)))
    db.add(ClassSchedule(class_id=class_.id, day_of_week="wednesday", start_time=time(17, 0)))
    db.commit()
    db.refresh(class_)
    return class_


@pytest.fixture
def tax_rates(db):
    gst = TaxRate(name="GST", rate=0.05, description="Federal GST", is_active=True)
    pst = TaxRate(name="PST_BC", rate=0.07, description="BC PST", is_active=True)
    db.add_all([gst, pst])
    db.commit()
    db.refresh(gst)
    db.refresh(pst)
    return {"GST": gst, "PST_BC": pst}


# ============================================================================
# HTTP client
# ============================================================================


@pytest.fixture
def auth_state(admin):
    return {"user": admin}


@pytest.fixture
def login_as(auth_state):
    def _login(profile):
        auth_state["user"] = profile

    return _login


@pytest.fixture
def client(db, auth_state):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = lambda: auth_state["user"]
    yield TestClient(app)
    app.dependency_overrides.clear()
