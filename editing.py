"""
Form editing operations

Pure functions over an in-memory Form draft. Every function returns a new Form
and leaves the one it was given untouched; lists that did not change are shared
between the old and new value. Nothing here reads or writes the database.

Nested edits addressed at a question that no longer exists, or at a list the
question's type does not have, are silent no-ops so a stale editor draft never
raises. Reorders with out-of-range indices on an existing list raise
IndexError.
"""

import uuid
from typing import List, Optional, Union, Literal, Annotated, Callable

from pydantic import BaseModel, Field

from schemas import (
    CATEGORIZE,
    CLOZE,
    COMPREHENSION,
    QUESTION_MODELS,
    Category,
    CategorizeItem,
    Form,
    QuestionType,
    SubQuestion,
)

DEFAULT_TITLE = "Untitled Question"

# list kind -> (question type owning it, config attribute)
LIST_KINDS = {
    "categories": (CATEGORIZE, "categories"),
    "items": (CATEGORIZE, "items"),
    "options": (CLOZE, "options"),
    "subQuestions": (COMPREHENSION, "subQuestions"),
}

ListKind = Literal["categories", "items", "options", "subQuestions"]


def new_id() -> str:
    return str(uuid.uuid4())


def move(items: list, from_index: int, to_index: int) -> list:
    """Splice the element at from_index out and reinsert it at to_index."""
    size = len(items)
    for idx in (from_index, to_index):
        if not 0 <= idx < size:
            raise IndexError(f"Index {idx} out of range for list of length {size}")
    result = list(items)
    moved = result.pop(from_index)
    result.insert(to_index, moved)
    return result


def _with_questions(form: Form, questions: list) -> Form:
    return form.model_copy(update={"questions": questions})


def _update_question(form: Form, qid: str, fn: Callable) -> Form:
    for i, question in enumerate(form.questions):
        if question.qid == qid:
            updated = fn(question)
            if updated is question:
                return form
            questions = list(form.questions)
            questions[i] = updated
            return _with_questions(form, questions)
    return form


def _update_config(form: Form, qid: str, question_type: str, fn: Callable) -> Form:
    def apply(question):
        if question.type != question_type:
            return question
        changes = fn(question.config)
        if not changes:
            return question
        return question.model_copy(update={"config": question.config.model_copy(update=changes)})
    return _update_question(form, qid, apply)


# --- Questions ---

def new_question(question_type: str, title: str = DEFAULT_TITLE):
    model = QUESTION_MODELS.get(question_type)
    if model is None:
        raise ValueError(f"Unknown question type: {question_type}")
    return model(qid=new_id(), title=title)


def add_question(form: Form, question_type: str) -> Form:
    return _with_questions(form, list(form.questions) + [new_question(question_type)])


def remove_question(form: Form, qid: str) -> Form:
    if form.question(qid) is None:
        return form
    return _with_questions(form, [q for q in form.questions if q.qid != qid])


def reorder_questions(form: Form, from_index: int, to_index: int) -> Form:
    return _with_questions(form, move(form.questions, from_index, to_index))


def update_question_title(form: Form, qid: str, title: str) -> Form:
    return _update_question(form, qid, lambda q: q.model_copy(update={"title": title}))


def change_question_type(form: Form, qid: str, question_type: str) -> Form:
    """Switch a question's type; its config is reset to the new type's empty one."""
    model = QUESTION_MODELS.get(question_type)
    if model is None:
        raise ValueError(f"Unknown question type: {question_type}")

    def apply(question):
        if question.type == question_type:
            return question
        return model(qid=question.qid, title=question.title, imageUrl=question.imageUrl)
    return _update_question(form, qid, apply)


def set_question_image(form: Form, qid: str, url: Optional[str]) -> Form:
    return _update_question(form, qid, lambda q: q.model_copy(update={"imageUrl": url or None}))


def set_header_image(form: Form, url: Optional[str]) -> Form:
    return form.model_copy(update={"headerImageUrl": url or None})


# --- Categorize ---

def add_category(form: Form, qid: str, label: str = "") -> Form:
    return _update_config(form, qid, CATEGORIZE, lambda c: {
        "categories": list(c.categories) + [Category(id=new_id(), label=label)],
    })


def remove_category(form: Form, qid: str, category_id: str) -> Form:
    """Drop a category and unassign the items that pointed at it."""
    def changes(config):
        if not any(c.id == category_id for c in config.categories):
            return None
        items = config.items
        if any(i.belongsTo == category_id for i in items):
            items = [i.model_copy(update={"belongsTo": ""}) if i.belongsTo == category_id else i for i in items]
        return {
            "categories": [c for c in config.categories if c.id != category_id],
            "items": items,
        }
    return _update_config(form, qid, CATEGORIZE, changes)


def add_item(form: Form, qid: str, label: str = "", belongs_to: str = "") -> Form:
    def changes(config):
        target = belongs_to if any(c.id == belongs_to for c in config.categories) else ""
        return {"items": list(config.items) + [CategorizeItem(id=new_id(), label=label, belongsTo=target)]}
    return _update_config(form, qid, CATEGORIZE, changes)


def remove_item(form: Form, qid: str, item_id: str) -> Form:
    def changes(config):
        if not any(i.id == item_id for i in config.items):
            return None
        return {"items": [i for i in config.items if i.id != item_id]}
    return _update_config(form, qid, CATEGORIZE, changes)


def assign_item(form: Form, qid: str, item_id: str, category_id: str) -> Form:
    """Point an item at a category id; an empty id unassigns it."""
    def changes(config):
        if category_id and not any(c.id == category_id for c in config.categories):
            return None
        items = [i.model_copy(update={"belongsTo": category_id}) if i.id == item_id else i for i in config.items]
        if items == list(config.items):
            return None
        return {"items": items}
    return _update_config(form, qid, CATEGORIZE, changes)


# --- Cloze ---

def set_cloze_text(form: Form, qid: str, text: str) -> Form:
    return _update_config(form, qid, CLOZE, lambda c: {"textWithBlanks": text})


def add_option(form: Form, qid: str, text: str = "") -> Form:
    return _update_config(form, qid, CLOZE, lambda c: {"options": list(c.options) + [text]})


def remove_option(form: Form, qid: str, index: int) -> Form:
    def changes(config):
        if not 0 <= index < len(config.options):
            return None
        return {"options": [o for i, o in enumerate(config.options) if i != index]}
    return _update_config(form, qid, CLOZE, changes)


# --- Comprehension ---

def set_passage(form: Form, qid: str, passage: str) -> Form:
    return _update_config(form, qid, COMPREHENSION, lambda c: {"passage": passage})


def add_sub_question(form: Form, qid: str, question: str = "", options: Optional[List[str]] = None) -> Form:
    sub = SubQuestion(id=new_id(), question=question, options=list(options or []))
    return _update_config(form, qid, COMPREHENSION, lambda c: {"subQuestions": list(c.subQuestions) + [sub]})


def remove_sub_question(form: Form, qid: str, sub_id: str) -> Form:
    def changes(config):
        if not any(s.id == sub_id for s in config.subQuestions):
            return None
        return {"subQuestions": [s for s in config.subQuestions if s.id != sub_id]}
    return _update_config(form, qid, COMPREHENSION, changes)


# --- Nested reorder ---

def reorder_nested(form: Form, qid: str, list_kind: str, from_index: int, to_index: int) -> Form:
    if list_kind not in LIST_KINDS:
        raise ValueError(f"Unknown list kind: {list_kind}")
    question_type, attr = LIST_KINDS[list_kind]
    return _update_config(form, qid, question_type, lambda c: {
        attr: move(getattr(c, attr), from_index, to_index),
    })


def reorder_categories(form: Form, qid: str, from_index: int, to_index: int) -> Form:
    return reorder_nested(form, qid, "categories", from_index, to_index)


def reorder_items(form: Form, qid: str, from_index: int, to_index: int) -> Form:
    return reorder_nested(form, qid, "items", from_index, to_index)


def reorder_options(form: Form, qid: str, from_index: int, to_index: int) -> Form:
    return reorder_nested(form, qid, "options", from_index, to_index)


def reorder_sub_questions(form: Form, qid: str, from_index: int, to_index: int) -> Form:
    return reorder_nested(form, qid, "subQuestions", from_index, to_index)


# --- Serialized edit operations (editor actions replayed by the API) ---

class AddQuestionOp(BaseModel):
    op: Literal["addQuestion"]
    type: QuestionType

    def apply(self, form):
        return add_question(form, self.type)


class RemoveQuestionOp(BaseModel):
    op: Literal["removeQuestion"]
    qid: str

    def apply(self, form):
        return remove_question(form, self.qid)


class ReorderQuestionsOp(BaseModel):
    op: Literal["reorderQuestions"]
    fromIndex: int
    toIndex: int

    def apply(self, form):
        return reorder_questions(form, self.fromIndex, self.toIndex)


class UpdateQuestionTitleOp(BaseModel):
    op: Literal["updateQuestionTitle"]
    qid: str
    title: str

    def apply(self, form):
        return update_question_title(form, self.qid, self.title)


class ChangeQuestionTypeOp(BaseModel):
    op: Literal["changeQuestionType"]
    qid: str
    type: QuestionType

    def apply(self, form):
        return change_question_type(form, self.qid, self.type)


class SetQuestionImageOp(BaseModel):
    op: Literal["setQuestionImage"]
    qid: str
    url: Optional[str] = None

    def apply(self, form):
        return set_question_image(form, self.qid, self.url)


class SetHeaderImageOp(BaseModel):
    op: Literal["setHeaderImage"]
    url: Optional[str] = None

    def apply(self, form):
        return set_header_image(form, self.url)


class AddCategoryOp(BaseModel):
    op: Literal["addCategory"]
    qid: str
    label: str = ""

    def apply(self, form):
        return add_category(form, self.qid, self.label)


class RemoveCategoryOp(BaseModel):
    op: Literal["removeCategory"]
    qid: str
    categoryId: str

    def apply(self, form):
        return remove_category(form, self.qid, self.categoryId)


class AddItemOp(BaseModel):
    op: Literal["addItem"]
    qid: str
    label: str = ""
    belongsTo: str = ""

    def apply(self, form):
        return add_item(form, self.qid, self.label, self.belongsTo)


class RemoveItemOp(BaseModel):
    op: Literal["removeItem"]
    qid: str
    itemId: str

    def apply(self, form):
        return remove_item(form, self.qid, self.itemId)


class AssignItemOp(BaseModel):
    op: Literal["assignItem"]
    qid: str
    itemId: str
    categoryId: str = ""

    def apply(self, form):
        return assign_item(form, self.qid, self.itemId, self.categoryId)


class SetClozeTextOp(BaseModel):
    op: Literal["setClozeText"]
    qid: str
    text: str

    def apply(self, form):
        return set_cloze_text(form, self.qid, self.text)


class AddOptionOp(BaseModel):
    op: Literal["addOption"]
    qid: str
    text: str = ""

    def apply(self, form):
        return add_option(form, self.qid, self.text)


class RemoveOptionOp(BaseModel):
    op: Literal["removeOption"]
    qid: str
    index: int

    def apply(self, form):
        return remove_option(form, self.qid, self.index)


class SetPassageOp(BaseModel):
    op: Literal["setPassage"]
    qid: str
    passage: str

    def apply(self, form):
        return set_passage(form, self.qid, self.passage)


class AddSubQuestionOp(BaseModel):
    op: Literal["addSubQuestion"]
    qid: str
    question: str = ""
    options: List[str] = Field(default_factory=list)

    def apply(self, form):
        return add_sub_question(form, self.qid, self.question, self.options)


class RemoveSubQuestionOp(BaseModel):
    op: Literal["removeSubQuestion"]
    qid: str
    subQuestionId: str

    def apply(self, form):
        return remove_sub_question(form, self.qid, self.subQuestionId)


class ReorderNestedOp(BaseModel):
    op: Literal["reorderNested"]
    qid: str
    listKind: ListKind
    fromIndex: int
    toIndex: int

    def apply(self, form):
        return reorder_nested(form, self.qid, self.listKind, self.fromIndex, self.toIndex)


EditOperation = Annotated[
    Union[
        AddQuestionOp, RemoveQuestionOp, ReorderQuestionsOp, UpdateQuestionTitleOp,
        ChangeQuestionTypeOp, SetQuestionImageOp, SetHeaderImageOp,
        AddCategoryOp, RemoveCategoryOp, AddItemOp, RemoveItemOp, AssignItemOp,
        SetClozeTextOp, AddOptionOp, RemoveOptionOp,
        SetPassageOp, AddSubQuestionOp, RemoveSubQuestionOp,
        ReorderNestedOp,
    ],
    Field(discriminator="op"),
]


def apply_edit(form: Form, op) -> Form:
    return op.apply(form)


def apply_edits(form: Form, ops: list) -> Form:
    for op in ops:
        form = apply_edit(form, op)
    return form
