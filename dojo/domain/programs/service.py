"""Program service - Business logic for programs and eligibility"""

import logging
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import Program, Student
from .eligibility import check_program_eligibility
from .schemas import ProgramCreate, ProgramUpdate

logger = logging.getLogger(__name__)


class ProgramService:
    """Service layer for programs"""

    def __init__(self, db: Session):
        self.db = db

    def list_programs(self, is_active: Optional[bool] = None) -> list[Program]:
        query = self.db.query(Program)
        if is_active is not None:
            query = query.filter(Program.is_active == is_active)
        return query.order_by(Program.name).all()

    def get_program(self, program_id: int) -> Program:
        program = self.db.query(Program).filter(Program.id == program_id).first()
        if not program:
            raise HTTPException(status_code=404, detail="Program not found")
        return program

    def _check_prerequisites(self, prerequisite_ids: list[int], program_id: Optional[int] = None) -> None:
        if not prerequisite_ids:
            return
        if program_id is not None and program_id in prerequisite_ids:
            raise HTTPException(status_code=400, detail="A program cannot be its own prerequisite")
        found = self.db.query(Program.id).filter(Program.id.in_(prerequisite_ids)).count()
        if found != len(set(prerequisite_ids)):
            raise HTTPException(status_code=400, detail="Unknown prerequisite program")

    def create_program(self, data: ProgramCreate) -> Program:
        self._check_prerequisites(data.prerequisite_programs)
        program = Program(**data.model_dump())
        self.db.add(program)
        self.db.commit()
        self.db.refresh(program)
        logger.info(f"✅ Created program {program.id}: {program.name}")
        return program

    def update_program(self, program_id: int, data: ProgramUpdate) -> Program:
        program = self.get_program(program_id)
        updates = data.model_dump(exclude_unset=True)

        if "prerequisite_programs" in updates and updates["prerequisite_programs"] is not None:
            self._check_prerequisites(updates["prerequisite_programs"], program_id)

        min_age = updates.get("min_age", program.min_age)
        max_age = updates.get("max_age", program.max_age)
        if min_age is not None and max_age is not None and min_age > max_age:
            raise HTTPException(status_code=400, detail="min_age cannot be greater than max_age")

        for key, value in updates.items():
            setattr(program, key, value)
        self.db.commit()
        self.db.refresh(program)
        return program

    def get_eligibility(self, program_id: int, student_id: int) -> tuple[bool, list[str]]:
        program = self.get_program(program_id)
        student = self.db.query(Student).filter(Student.id == student_id).first()
        if not student:
            raise HTTPException(status_code=404, detail="Student not found")
        return check_program_eligibility(self.db, program, student)

    def get_programs_for_student(self, student_id: int) -> list[Program]:
        """Active programs the student is eligible for"""
        student = self.db.query(Student).filter(Student.id == student_id).first()
        if not student:
            raise HTTPException(status_code=404, detail="Student not found")
        return [
            program
            for program in self.list_programs(is_active=True)
            if check_program_eligibility(self.db, program, student)[0]
        ]
