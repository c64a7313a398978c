"""
Database Schemas for the Exam Portal

Each Pydantic model represents a collection in MongoDB.
Collection name is the lowercase of the class name.

Field names are snake_case in Python and camelCase on the wire / in the
database (the aliases), so stored documents keep the shape the web client
reads.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Tuple, Type

from pydantic import BaseModel, ConfigDict, Field, StrictStr


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# ---------- Content ----------

class QuizQuestion(BaseModel):
    question: StrictStr = Field(..., min_length=1)
    options: List[StrictStr] = Field(..., min_length=2)
    answer: StrictStr = Field(..., min_length=1)


class Chapter(CamelModel):
    chapter_number: int = Field(..., alias="chapterNumber")
    notes_file_url: str = Field(..., alias="notesFileUrl")
    public_id: str = Field(..., alias="publicId")
    summary: str = ""
    quiz: List[QuizQuestion] = Field(default_factory=list)


class Unit(CamelModel):
    unit_number: int = Field(..., alias="unitNumber")
    notes_file_url: str = Field(..., alias="notesFileUrl")
    public_id: str = Field(..., alias="publicId")
    summary: str = ""
    quiz: List[QuizQuestion] = Field(default_factory=list)


class ExamSubject(BaseModel):
    name: str
    chapters: List[Chapter] = Field(default_factory=list)


class CourseSubject(BaseModel):
    name: str
    units: List[Unit] = Field(default_factory=list)


class Exam(BaseModel):
    exam: str = Field(..., description="Exam name, e.g. GATE")
    subjects: List[ExamSubject] = Field(default_factory=list)


class Course(BaseModel):
    year: str = Field(..., description="Study year, e.g. 2")
    branch: str = Field(..., description="Branch, e.g. Computer Science")
    subjects: List[CourseSubject] = Field(default_factory=list)


# ---------- Student activity ----------

class ActivityType(str, Enum):
    NOTES_ACCESS = "notes_access"
    QUIZ_SUBMISSION = "quiz_submission"


class QuizResult(CamelModel):
    score: int = Field(..., ge=0)
    total_questions: int = Field(..., ge=0, alias="totalQuestions")
    answers: Dict[str, str] = Field(default_factory=dict)


class _ActivityBase(CamelModel):
    user_id: str = Field(..., min_length=1, alias="userId")
    user_name: str = Field(..., min_length=1, alias="userName")
    subject: str = Field(..., min_length=1)
    activity_type: ActivityType = Field(..., alias="activityType")
    quiz_result: Optional[QuizResult] = Field(None, alias="quizResult")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ExamStudentActivity(_ActivityBase):
    exam: str = Field(..., min_length=1)
    chapter_number: int = Field(..., alias="chapterNumber")


class StudentActivity(_ActivityBase):
    year: str = Field(..., min_length=1)
    branch: str = Field(..., min_length=1)
    unit_number: int = Field(..., alias="unitNumber")


# ---------- Container kinds ----------

@dataclass(frozen=True)
class ContainerKind:
    """Everything that differs between exam content and course content."""
    name: str
    key_fields: Tuple[str, ...]
    item_field: str
    number_field: str
    item_label: str
    document_model: Type[BaseModel]
    item_model: Type[BaseModel]
    activity_model: Type[BaseModel]
    folder_prefix: str

    @property
    def collection(self) -> str:
        return self.document_model.__name__.lower()

    @property
    def activity_collection(self) -> str:
        return self.activity_model.__name__.lower()

    @property
    def scope_fields(self) -> Tuple[str, ...]:
        return self.key_fields + ("subject", self.number_field)

    @property
    def id_field(self) -> str:
        return f"{self.name}Id"


EXAM = ContainerKind(
    name="exam",
    key_fields=("exam",),
    item_field="chapters",
    number_field="chapterNumber",
    item_label="chapter",
    document_model=Exam,
    item_model=Chapter,
    activity_model=ExamStudentActivity,
    folder_prefix="competitive-exam-notes",
)

COURSE = ContainerKind(
    name="course",
    key_fields=("year", "branch"),
    item_field="units",
    number_field="unitNumber",
    item_label="unit",
    document_model=Course,
    item_model=Unit,
    activity_model=StudentActivity,
    folder_prefix="course-notes",
)
