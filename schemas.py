"""
Database Schemas for Form Builder

Each Pydantic model corresponds to a MongoDB collection (lowercased class name).
- Form -> "form"
- Submission -> "submission"

Questions are a tagged union keyed by `type`, so a config that does not match
its question type is rejected when the document is built or read back.
"""

from datetime import datetime, timezone
from typing import List, Optional, Union, Literal, Annotated

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator

BLANK = "_____"

CATEGORIZE = "categorize"
CLOZE = "cloze"
COMPREHENSION = "comprehension"
QUESTION_TYPES = (CATEGORIZE, CLOZE, COMPREHENSION)

QuestionType = Literal["categorize", "cloze", "comprehension"]


def count_blanks(text: str) -> int:
    return text.count(BLANK)


def _ensure_unique(ids: List[str], what: str) -> None:
    seen = set()
    for value in ids:
        if value in seen:
            raise ValueError(f"Duplicate {what} id: {value}")
        seen.add(value)


# --- Question configs ---

class Category(BaseModel):
    id: str
    label: str = ""


class CategorizeItem(BaseModel):
    id: str
    label: str = ""
    belongsTo: str = Field("", description="Category id, empty when unassigned")


class CategorizeConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    categories: List[Category] = Field(default_factory=list)
    items: List[CategorizeItem] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_references(self):
        _ensure_unique([c.id for c in self.categories], "category")
        _ensure_unique([i.id for i in self.items], "item")
        category_ids = {c.id for c in self.categories}
        for item in self.items:
            if item.belongsTo and item.belongsTo not in category_ids:
                raise ValueError(f"Item {item.id} belongs to unknown category {item.belongsTo}")
        return self


class ClozeConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    textWithBlanks: str = ""
    options: List[str] = Field(default_factory=list)

    @property
    def blank_count(self) -> int:
        return count_blanks(self.textWithBlanks)


class SubQuestion(BaseModel):
    id: str
    question: str = ""
    options: List[str] = Field(default_factory=list)


class ComprehensionConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    passage: str = ""
    subQuestions: List[SubQuestion] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_ids(self):
        _ensure_unique([s.id for s in self.subQuestions], "sub-question")
        return self


# --- Questions ---

class QuestionBase(BaseModel):
    qid: str
    title: str = ""
    imageUrl: Optional[str] = None

    @field_validator("imageUrl")
    @classmethod
    def blank_image_is_absent(cls, v):
        return v or None


class CategorizeQuestion(QuestionBase):
    type: Literal["categorize"] = CATEGORIZE
    config: CategorizeConfig = Field(default_factory=CategorizeConfig)


class ClozeQuestion(QuestionBase):
    type: Literal["cloze"] = CLOZE
    config: ClozeConfig = Field(default_factory=ClozeConfig)


class ComprehensionQuestion(QuestionBase):
    type: Literal["comprehension"] = COMPREHENSION
    config: ComprehensionConfig = Field(default_factory=ComprehensionConfig)


Question = Annotated[
    Union[CategorizeQuestion, ClozeQuestion, ComprehensionQuestion],
    Field(discriminator="type"),
]

QUESTION_MODELS = {
    CATEGORIZE: CategorizeQuestion,
    CLOZE: ClozeQuestion,
    COMPREHENSION: ComprehensionQuestion,
}


class Form(BaseModel):
    title: str
    description: Optional[str] = None
    headerImageUrl: Optional[str] = None
    questions: List[Question] = Field(default_factory=list)
    owner: Optional[str] = None

    @field_validator("title")
    @classmethod
    def title_required(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Form title required")
        return v

    @field_validator("headerImageUrl")
    @classmethod
    def blank_header_is_absent(cls, v):
        return v or None

    @model_validator(mode="after")
    def check_question_ids(self):
        _ensure_unique([q.qid for q in self.questions], "question")
        return self

    def question(self, qid: str):
        return next((q for q in self.questions if q.qid == qid), None)


# --- Answers ---

class ItemPlacement(BaseModel):
    id: str
    belongsTo: str = ""


class CategorizeAnswer(BaseModel):
    items: List[ItemPlacement]


class SubAnswer(BaseModel):
    id: str
    answer: str = ""


class ComprehensionAnswer(BaseModel):
    answers: List[SubAnswer]


AnswerValue = Union[List[str], CategorizeAnswer, ComprehensionAnswer, str]

_ANSWER_ADAPTERS = {
    CLOZE: TypeAdapter(List[str]),
    CATEGORIZE: TypeAdapter(CategorizeAnswer),
    COMPREHENSION: TypeAdapter(ComprehensionAnswer),
}
_TEXT_ADAPTER = TypeAdapter(str)


def parse_answer_value(question_type: str, raw):
    """Resolve a stored answer value to the shape its question type expects.

    Raises pydantic.ValidationError when the shape does not match. Any type
    outside the known set is treated as free text.
    """
    adapter = _ANSWER_ADAPTERS.get(question_type, _TEXT_ADAPTER)
    if isinstance(raw, BaseModel):
        raw = raw.model_dump()
    return adapter.validate_python(raw)


class Answer(BaseModel):
    qid: str
    value: AnswerValue = ""


class Submission(BaseModel):
    formId: str
    responder: str
    answers: List[Answer] = Field(default_factory=list)
    submittedAt: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
