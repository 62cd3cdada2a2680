"""
Answer reconciliation

Joins a submission's raw answers back to the questions they were given for and
builds a display structure per question type. Nothing here is scored and
nothing here mutates its inputs.
"""

import logging
from typing import List, Optional, Dict, Any, Union, Literal, Annotated

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from schemas import (
    BLANK,
    CATEGORIZE,
    CLOZE,
    COMPREHENSION,
    Answer,
    CategorizeAnswer,
    CategorizeConfig,
    ClozeConfig,
    ComprehensionAnswer,
    ComprehensionConfig,
    Question,
    parse_answer_value,
)

logger = logging.getLogger(__name__)

NOT_FOUND_TITLE = "Question not found"
UNKNOWN_TYPE = "unknown"
NOT_ANSWERED = "Not answered"

_question_adapter = TypeAdapter(Question)


# --- Views ---

class BlankSlot(BaseModel):
    index: int
    value: Optional[str] = None
    filled: bool = False


class Chip(BaseModel):
    text: str
    used: bool = False


class ClozeView(BaseModel):
    kind: Literal["cloze"] = CLOZE
    segments: List[str]
    blanks: List[BlankSlot]
    chips: List[Chip]


class ItemView(BaseModel):
    id: str
    label: str


class CategoryBucket(BaseModel):
    id: str
    label: str
    items: List[ItemView] = Field(default_factory=list)
    missing: bool = False


class CategorizeView(BaseModel):
    kind: Literal["categorize"] = CATEGORIZE
    categories: List[CategoryBucket]
    unassigned: List[ItemView]


class OptionView(BaseModel):
    text: str
    selected: bool = False


class SubQuestionView(BaseModel):
    id: str
    question: str
    answer: Optional[str] = None
    options: List[OptionView]


class ComprehensionView(BaseModel):
    kind: Literal["comprehension"] = COMPREHENSION
    passage: str
    subQuestions: List[SubQuestionView]


class TextView(BaseModel):
    kind: Literal["text"] = "text"
    text: str


View = Annotated[Union[ClozeView, CategorizeView, ComprehensionView, TextView], Field(discriminator="kind")]


class ReconciledAnswer(BaseModel):
    question: Dict[str, Any]
    answer: Any = None
    view: View


# --- Lookups ---

def find_question(questions, qid: str):
    for question in questions:
        if question.qid == qid:
            return question
    return None


def placeholder_question(qid: str) -> Dict[str, Any]:
    return {"qid": qid, "title": NOT_FOUND_TITLE, "type": UNKNOWN_TYPE, "imageUrl": None}


def load_questions(raw_questions: List[dict]) -> List[Any]:
    """Parse stored question documents, dropping ones that no longer validate."""
    questions = []
    for raw in raw_questions or []:
        try:
            questions.append(_question_adapter.validate_python(raw))
        except ValidationError as e:
            logger.warning("Skipping malformed question %s: %s", raw.get("qid") if isinstance(raw, dict) else raw, e)
    return questions


# --- Renderers ---

def render_cloze(config: ClozeConfig, value: List[str]) -> ClozeView:
    segments = config.textWithBlanks.split(BLANK)
    blanks = []
    for i in range(len(segments) - 1):
        filled = value[i] if i < len(value) and value[i] else None
        blanks.append(BlankSlot(index=i, value=filled, filled=filled is not None))
    used = {v for v in value if v}
    chips = [Chip(text=opt, used=opt in used) for opt in config.options]
    return ClozeView(segments=segments, blanks=blanks, chips=chips)


def render_categorize(config: CategorizeConfig, value: CategorizeAnswer) -> CategorizeView:
    placements = {p.id: p.belongsTo for p in value.items}
    buckets = {c.id: CategoryBucket(id=c.id, label=c.label) for c in config.categories}
    unassigned = []
    for item in config.items:
        target = placements.get(item.id)
        view = ItemView(id=item.id, label=item.label)
        if not target:
            unassigned.append(view)
            continue
        if target not in buckets:
            buckets[target] = CategoryBucket(id=target, label=target, missing=True)
        buckets[target].items.append(view)
    return CategorizeView(categories=list(buckets.values()), unassigned=unassigned)


def render_comprehension(config: ComprehensionConfig, value: ComprehensionAnswer) -> ComprehensionView:
    sub_views = []
    for i, sub in enumerate(config.subQuestions):
        chosen = value.answers[i].answer if i < len(value.answers) else ""
        sub_views.append(SubQuestionView(
            id=sub.id,
            question=sub.question,
            answer=chosen or None,
            options=[OptionView(text=opt, selected=bool(chosen) and opt == chosen) for opt in sub.options],
        ))
    return ComprehensionView(passage=config.passage, subQuestions=sub_views)


def render_text(value) -> TextView:
    if isinstance(value, str):
        return TextView(text=value)
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return TextView(text=", ".join(value))
    return TextView(text=NOT_ANSWERED)


_RENDERERS = {
    CLOZE: render_cloze,
    CATEGORIZE: render_categorize,
    COMPREHENSION: render_comprehension,
}


def render(question, raw_value) -> View:
    renderer = _RENDERERS.get(question.type)
    if renderer is None:
        return render_text(raw_value)
    try:
        value = parse_answer_value(question.type, raw_value)
    except ValidationError:
        logger.warning("Answer for question %s does not match type %s", question.qid, question.type)
        return render_text(raw_value)
    return renderer(question.config, value)


def reconcile(questions, answers) -> List[ReconciledAnswer]:
    """Pair each answer, in submission order, with its question and a rendered view.

    `questions` are parsed Question models; `answers` may be Answer models or
    stored `{qid, value}` dicts.
    """
    out = []
    for entry in answers:
        if isinstance(entry, Answer):
            qid, raw_value = entry.qid, entry.model_dump()["value"]
        else:
            qid, raw_value = entry.get("qid"), entry.get("value")
        question = find_question(questions, qid)
        if question is None:
            out.append(ReconciledAnswer(
                question=placeholder_question(qid),
                answer=raw_value,
                view=render_text(raw_value),
            ))
            continue
        out.append(ReconciledAnswer(
            question=question.model_dump(),
            answer=raw_value,
            view=render(question, raw_value),
        ))
    return out
