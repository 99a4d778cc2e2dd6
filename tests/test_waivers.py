import pytest
from fastapi import HTTPException

from dojo.domain.waivers.service import WaiverService
from dojo.models import Enrollment, Profile, Program, ProgramWaiver, WaiverSignature


@pytest.fixture
def liability(db):
    return WaiverService(db).create_waiver(
        {"title": "Liability release", "content": "I understand martial arts carry risk.", "required_for_registration": True}
    )


@pytest.fixture
def sparring(db):
    return WaiverService(db).create_waiver({"title": "Sparring consent", "content": "Contact sparring is allowed."})


def test_registration_waiver_required_for_every_family(db, family, liability, sparring):
    status = WaiverService(db).get_family_waiver_status(family.id)

    assert status["required"] == [{"id": liability.id, "title": "Liability release"}]
    assert status["missing"] == status["required"]
    assert status["all_signed"] is False


def test_program_waiver_required_only_while_enrolled(db, family, student, karate_class, liability, sparring):
    service = WaiverService(db)
    service.add_program_waiver(karate_class.program_id, sparring.id)

    before = service.get_family_waiver_status(family.id)
    assert [w["id"] for w in before["required"]] == [liability.id]

    enrollment = Enrollment(class_id=karate_class.id, student_id=student.id, program_id=karate_class.program_id, status="trial")
    db.add(enrollment)
    db.commit()

    during = service.get_family_waiver_status(family.id)
    assert [w["id"] for w in during["required"]] == [liability.id, sparring.id]

    enrollment.status = "dropped"
    db.commit()
    after = service.get_family_waiver_status(family.id)
    assert [w["id"] for w in after["required"]] == [liability.id]


def test_optional_program_waiver_not_required(db, family, student, karate_class, sparring):
    service = WaiverService(db)
    service.add_program_waiver(karate_class.program_id, sparring.id, is_required=False)
    db.add(Enrollment(class_id=karate_class.id, student_id=student.id, program_id=karate_class.program_id, status="active"))
    db.commit()

    assert service.get_family_waiver_status(family.id)["required"] == []


def test_any_family_member_signature_counts(db, family, parent, liability):
    service = WaiverService(db)
    other_parent = Profile(auth_uid="parent-2", email="kei@example.com", first_name="Kei", role="user", family_id=family.id)
    db.add(other_parent)
    db.commit()

    service.sign_waiver(liability.id, other_parent, signature_data="data:image/png;base64,AAA")

    status = service.get_family_waiver_status(family.id)
    assert status["all_signed"] is True
    assert status["signed"] == [{"id": liability.id, "title": "Liability release"}]


def test_signing_twice_returns_same_signature(db, parent, liability):
    service = WaiverService(db)

    first = service.sign_waiver(liability.id, parent)
    second = service.sign_waiver(liability.id, parent)

    assert first.id == second.id
    assert first.family_id == parent.family_id
    assert db.query(WaiverSignature).count() == 1


def test_families_missing_waivers(db, family, other_family, parent, liability):
    WaiverService(db).sign_waiver(liability.id, parent)

    missing = WaiverService(db).get_families_missing_waivers()

    assert [m["family_id"] for m in missing] == [other_family.id]
    assert missing[0]["email"] == "singh@example.com"
    assert missing[0]["missing"][0]["title"] == "Liability release"


def test_signed_waiver_cannot_be_deleted(db, parent, liability, sparring, program):
    service = WaiverService(db)
    service.sign_waiver(liability.id, parent)
    service.add_program_waiver(program.id, sparring.id)

    with pytest.raises(HTTPException) as exc_info:
        service.delete_waiver(liability.id)
    assert exc_info.value.status_code == 400

    service.delete_waiver(sparring.id)
    assert db.query(ProgramWaiver).count() == 0


def test_program_waiver_links(db, sparring):
    service = WaiverService(db)
    program = Program(name="Weapons", gender_restriction="none")
    db.add(program)
    db.commit()

    link = service.add_program_waiver(program.id, sparring.id)
    relinked = service.add_program_waiver(program.id, sparring.id, is_required=False)

    assert link.id == relinked.id
    assert relinked.is_required is False
    assert len(service.list_program_waivers(program.id)) == 1

    service.remove_program_waiver(program.id, sparring.id)
    with pytest.raises(HTTPException) as exc_info:
        service.remove_program_waiver(program.id, sparring.id)
    assert exc_info.value.status_code == 404


def test_unknown_family_status(db):
    with pytest.raises(HTTPException) as exc_info:
        WaiverService(db).get_family_waiver_status(404)
    assert exc_info.value.status_code == 404
