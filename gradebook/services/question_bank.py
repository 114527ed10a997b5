from collections import Counter
from typing import Dict, Iterable, List
from sqlalchemy.orm import Session, selectinload
from sqlalchemy import select
from gradebook.core.errors import NotFoundError
from gradebook.models.orm import Assignment, AssignmentQuestion
from gradebook.models.records import QuestionRecord, QuestionType

class QuestionBank:
    """Read-only view of an assignment's gradable questions."""

    def __init__(self, db: Session):
        self.db = db

    def get_assignment(self, assignment_id: int) -> Assignment:
        assignment = self.db.get(Assignment, assignment_id)
        if not assignment:
            raise NotFoundError(f"Assignment {assignment_id} not found")
        return assignment

    def rows(self, assignment_id: int) -> List[AssignmentQuestion]:
        self.get_assignment(assignment_id)
        stmt = (
            select(AssignmentQuestion)
            .options(selectinload(AssignmentQuestion.options))
            .where(
                AssignmentQuestion.assignment_id == assignment_id,
                AssignmentQuestion.question_type != int(QuestionType.SECTION_HEADING),
            )
            .order_by(AssignmentQuestion.order_index, AssignmentQuestion.id)
            .execution_options(populate_existing=True)
        )
        return list(self.db.scalars(stmt).all())

    def list(self, assignment_id: int) -> List[QuestionRecord]:
        return [QuestionRecord.from_orm(r) for r in self.rows(assignment_id)]

def counts_by_type(questions: Iterable[QuestionRecord]) -> Dict[QuestionType, int]:
    return dict(Counter(q.type for q in questions if q.type.gradable))
