from datetime import datetime
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy import BigInteger, Integer, String, Text, Boolean, ForeignKey, JSON, Float, DateTime, UniqueConstraint

# SQLite only autoincrements INTEGER PRIMARY KEY
BigId = BigInteger().with_variant(Integer, "sqlite")

class Base(DeclarativeBase): pass

class Assignment(Base):
    __tablename__ = "assignments"
    id: Mapped[int] = mapped_column(BigId, primary_key=True)
    lesson_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    title: Mapped[str] = mapped_column(String)
    max_score: Mapped[float] = mapped_column(Float, default=10.0)
    passing_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    max_attempts: Mapped[int] = mapped_column(Integer, default=1)
    points_version: Mapped[int] = mapped_column(Integer, default=0)
    questions: Mapped[list["AssignmentQuestion"]] = relationship(back_populates="assignment", order_by="AssignmentQuestion.order_index")

class AssignmentQuestion(Base):
    __tablename__ = "assignment_questions"
    id: Mapped[int] = mapped_column(BigId, primary_key=True)
    assignment_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("assignments.id"), index=True)
    question_type: Mapped[int] = mapped_column(Integer)
    difficulty: Mapped[int] = mapped_column(Integer, default=1)
    content: Mapped[str] = mapped_column(Text, default="")
    points: Mapped[float] = mapped_column(Float, default=0.0)
    order_index: Mapped[int] = mapped_column(Integer, default=0)
    assignment: Mapped[Assignment] = relationship(back_populates="questions")
    options: Mapped[list["QuestionOption"]] = relationship(back_populates="question", order_by="QuestionOption.order_index")

class QuestionOption(Base):
    __tablename__ = "question_options"
    id: Mapped[int] = mapped_column(BigId, primary_key=True)
    question_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("assignment_questions.id"), index=True)
    option_text: Mapped[str] = mapped_column(Text)
    is_correct: Mapped[bool] = mapped_column(Boolean, default=False)
    order_index: Mapped[int] = mapped_column(Integer, default=0)
    question: Mapped[AssignmentQuestion] = relationship(back_populates="options")

class AssignmentAttempt(Base):
    __tablename__ = "assignment_attempts"
    __table_args__ = (UniqueConstraint("assignment_id", "user_id", "attempt_number", name="uq_attempt_number"),)
    id: Mapped[int] = mapped_column(BigId, primary_key=True)
    assignment_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("assignments.id"), index=True)
    user_id: Mapped[str] = mapped_column(String, index=True)
    attempt_number: Mapped[int] = mapped_column(Integer, default=1)
    status: Mapped[str] = mapped_column(String, default="in_progress")
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    score: Mapped[float | None] = mapped_column(Float, nullable=True)
    max_score: Mapped[float] = mapped_column(Float, default=10.0)
    is_completed: Mapped[bool] = mapped_column(Boolean, default=False)
    is_graded: Mapped[bool] = mapped_column(Boolean, default=False)
    answers: Mapped[list["AttemptAnswer"]] = relationship(back_populates="attempt", order_by="AttemptAnswer.id", cascade="all, delete-orphan")

class AttemptAnswer(Base):
    __tablename__ = "attempt_answers"
    id: Mapped[int] = mapped_column(BigId, primary_key=True)
    attempt_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("assignment_attempts.id"), index=True)
    question_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("assignment_questions.id"))
    option_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey("question_options.id"), nullable=True)
    answer_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    points_earned: Mapped[float | None] = mapped_column(Float, nullable=True)
    is_correct: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    attempt: Mapped[AssignmentAttempt] = relationship(back_populates="answers")

class RegradeRun(Base):
    __tablename__ = "regrade_runs"
    id: Mapped[str] = mapped_column(String, primary_key=True)
    assignment_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("assignments.id"), index=True)
    status: Mapped[str] = mapped_column(String, default="queued")
    params: Mapped[dict] = mapped_column(JSON)
    result: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
