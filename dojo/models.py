from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base
from .shared.dates import utcnow

BELT_RANKS = ["white", "yellow", "orange", "green", "blue", "purple", "red", "brown", "black"]


class Profile(Base):
    """Authenticated account (Supabase auth user) - a guardian login, instructor or admin"""

    __tablename__ = "profiles"

    id = Column(Integer, primary_key=True, index=True)
    auth_uid = Column(String(255), unique=True, index=True, nullable=False)  # Supabase "sub"
    email = Column(String(255), unique=True, index=True, nullable=False)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    role = Column(String(20), default="user", nullable=False)  # user, admin, instructor
    family_id = Column(Integer, ForeignKey("families.id"), nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    family = relationship("Family", back_populates="profiles")

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part) or self.email


class Family(Base):
    __tablename__ = "families"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    address = Column(String(255), nullable=True)
    city = Column(String(100), nullable=True)
    province = Column(String(50), nullable=True)
    postal_code = Column(String(20), nullable=True)
    primary_phone = Column(String(50), nullable=True)
    email = Column(String(255), nullable=True)
    referral_source = Column(String(255), nullable=True)
    emergency_contact = Column(Text, nullable=True)
    health_info = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    profiles = relationship("Profile", back_populates="family")
    guardians = relationship("Guardian", back_populates="family", cascade="all, delete-orphan")
    students = relationship("Student", back_populates="family", cascade="all, delete-orphan")


class Guardian(Base):
    __tablename__ = "guardians"

    id = Column(Integer, primary_key=True, index=True)
    family_id = Column(Integer, ForeignKey("families.id"), nullable=False, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    relationship_type = Column("relationship", String(50), nullable=True)  # Mother, Father, Guardian
    phone = Column(String(50), nullable=True)
    email = Column(String(255), nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    family = relationship("Family", back_populates="guardians")


class Student(Base):
    __tablename__ = "students"

    id = Column(Integer, primary_key=True, index=True)
    family_id = Column(Integer, ForeignKey("families.id"), nullable=False, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    gender = Column(String(20), nullable=True)  # male, female, other
    birth_date = Column(Date, nullable=True)
    t_shirt_size = Column(String(10), nullable=True)
    school = Column(String(255), nullable=True)
    grade_level = Column(String(50), nullable=True)
    cell_phone = Column(String(50), nullable=True)
    email = Column(String(255), nullable=True)
    allergies = Column(Text, nullable=True)
    medications = Column(Text, nullable=True)
    special_needs = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    family = relationship("Family", back_populates="students")
    belt_awards = relationship(
        "BeltAward",
        back_populates="student",
        cascade="all, delete-orphan",
        order_by="BeltAward.awarded_date",
    )
    enrollments = relationship("Enrollment", back_populates="student", cascade="all, delete-orphan")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class BeltAward(Base):
    __tablename__ = "belt_awards"

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=False, index=True)
    type = Column(String(20), nullable=False)  # one of BELT_RANKS
    awarded_date = Column(Date, nullable=False)
    description = Column(Text, nullable=True)

    student = relationship("Student", back_populates="belt_awards")


class Program(Base):
    __tablename__ = "programs"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    duration_minutes = Column(Integer, default=60, nullable=False)
    max_capacity = Column(Integer, nullable=True)
    sessions_per_week = Column(Integer, default=1, nullable=False)
    # Eligibility rules
    min_age = Column(Integer, nullable=True)
    max_age = Column(Integer, nullable=True)
    min_belt_rank = Column(String(20), nullable=True)
    max_belt_rank = Column(String(20), nullable=True)
    gender_restriction = Column(String(20), default="none", nullable=False)  # male, female, none
    prerequisite_programs = Column(JSON, default=list, nullable=True)  # program ids
    # Fees in cents
    monthly_fee = Column(Integer, nullable=True)
    yearly_fee = Column(Integer, nullable=True)
    individual_session_fee = Column(Integer, nullable=True)
    registration_fee = Column(Integer, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    classes = relationship("Class", back_populates="program")
    waivers = relationship("ProgramWaiver", back_populates="program", cascade="all, delete-orphan")


class Class(Base):
    __tablename__ = "classes"

    id = Column(Integer, primary_key=True, index=True)
    program_id = Column(Integer, ForeignKey("programs.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    instructor_id = Column(Integer, ForeignKey("profiles.id"), nullable=True)
    max_capacity = Column(Integer, nullable=True)  # None or 0 = unlimited
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    program = relationship("Program", back_populates="classes")
    instructor = relationship("Profile")
    schedules = relationship(
        "ClassSchedule",
        back_populates="class_",
        cascade="all, delete-orphan",
        order_by="ClassSchedule.start_time",
    )
    sessions = relationship("ClassSession", back_populates="class_", cascade="all, delete-orphan")
    enrollments = relationship("Enrollment", back_populates="class_")


class ClassSchedule(Base):
    __tablename__ = "class_schedules"

    id = Column(Integer, primary_key=True, index=True)
    class_id = Column(Integer, ForeignKey("classes.id"), nullable=False, index=True)
    day_of_week = Column(String(10), nullable=False)  # monday .. sunday
    start_time = Column(Time, nullable=False)

    class_ = relationship("Class", back_populates="schedules")


class ClassSession(Base):
    __tablename__ = "class_sessions"
    __table_args__ = (UniqueConstraint("class_id", "session_date", name="uq_class_session_date"),)

    id = Column(Integer, primary_key=True, index=True)
    class_id = Column(Integer, ForeignKey("classes.id"), nullable=False, index=True)
    session_date = Column(Date, nullable=False, index=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    status = Column(String(20), default="scheduled", nullable=False)  # scheduled, completed, cancelled
    instructor_id = Column(Integer, ForeignKey("profiles.id"), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    class_ = relationship("Class", back_populates="sessions")
    attendance = relationship("Attendance", back_populates="session")


class Enrollment(Base):
    __tablename__ = "enrollments"
    __table_args__ = (UniqueConstraint("class_id", "student_id", name="uq_enrollment_class_student"),)

    id = Column(Integer, primary_key=True, index=True)
    class_id = Column(Integer, ForeignKey("classes.id"), nullable=False, index=True)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=False, index=True)
    program_id = Column(Integer, ForeignKey("programs.id"), nullable=False)
    status = Column(String(20), default="active", nullable=False)  # active, trial, waitlist, dropped, completed
    enrolled_at = Column(DateTime, default=utcnow, nullable=False)
    paid_until = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    dropped_at = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    class_ = relationship("Class", back_populates="enrollments")
    student = relationship("Student", back_populates="enrollments")
    program = relationship("Program")


class Attendance(Base):
    __tablename__ = "attendance"
    __table_args__ = (UniqueConstraint("student_id", "class_session_id", name="uq_attendance_student_session"),)

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=False, index=True)
    class_session_id = Column(Integer, ForeignKey("class_sessions.id"), nullable=False, index=True)
    status = Column(String(20), nullable=False)  # present, absent, late, excused
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    student = relationship("Student")
    session = relationship("ClassSession", back_populates="attendance")


class Waiver(Base):
    __tablename__ = "waivers"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    content = Column(Text, nullable=False)
    required_for_registration = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, server_default=func.now())


class ProgramWaiver(Base):
    __tablename__ = "program_waivers"
    __table_args__ = (UniqueConstraint("program_id", "waiver_id", name="uq_program_waiver"),)

    id = Column(Integer, primary_key=True, index=True)
    program_id = Column(Integer, ForeignKey("programs.id"), nullable=False)
    waiver_id = Column(Integer, ForeignKey("waivers.id"), nullable=False)
    is_required = Column(Boolean, default=True, nullable=False)

    program = relationship("Program", back_populates="waivers")
    waiver = relationship("Waiver")


class WaiverSignature(Base):
    __tablename__ = "waiver_signatures"
    __table_args__ = (UniqueConstraint("waiver_id", "profile_id", name="uq_waiver_signature"),)

    id = Column(Integer, primary_key=True, index=True)
    waiver_id = Column(Integer, ForeignKey("waivers.id"), nullable=False)
    profile_id = Column(Integer, ForeignKey("profiles.id"), nullable=False)
    family_id = Column(Integer, ForeignKey("families.id"), nullable=True)
    signature_data = Column(Text, nullable=True)
    signed_at = Column(DateTime, default=utcnow, nullable=False)

    waiver = relationship("Waiver")
