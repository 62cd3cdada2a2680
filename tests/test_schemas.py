import pytest
from pydantic import ValidationError

from schemas import (
    CategorizeAnswer,
    ClozeQuestion,
    ComprehensionAnswer,
    Form,
    Submission,
    count_blanks,
    parse_answer_value,
)


def test_form_parses_each_question_type(sample_form):
    form = Form.model_validate(sample_form)

    assert [q.type for q in form.questions] == ["cloze", "categorize", "comprehension"]
    assert form.question("q1").config.blank_count == 1
    assert form.question("q2").config.items[0].belongsTo == "cat1"
    assert form.question("q3").config.subQuestions[1].options == ["mat", "chair"]
    assert form.question("missing") is None


def test_config_must_match_question_type():
    with pytest.raises(ValidationError):
        Form.model_validate({
            "title": "Broken",
            "questions": [{"qid": "q1", "type": "cloze", "config": {"categories": [], "items": []}}],
        })


def test_unknown_question_type_rejected():
    with pytest.raises(ValidationError):
        Form.model_validate({"title": "Broken", "questions": [{"qid": "q1", "type": "essay", "config": {}}]})


@pytest.mark.parametrize("title", ["", "   "])
def test_title_required(title):
    with pytest.raises(ValidationError):
        Form(title=title)


def test_duplicate_question_ids_rejected(sample_form):
    sample_form["questions"][1]["qid"] = "q1"
    with pytest.raises(ValidationError):
        Form.model_validate(sample_form)


def test_item_must_belong_to_existing_category(sample_form):
    sample_form["questions"][1]["config"]["items"][0]["belongsTo"] = "Fruit"
    with pytest.raises(ValidationError):
        Form.model_validate(sample_form)


def test_duplicate_sub_question_ids_rejected(sample_form):
    sample_form["questions"][2]["config"]["subQuestions"][1]["id"] = "s1"
    with pytest.raises(ValidationError):
        Form.model_validate(sample_form)


def test_blank_image_urls_are_absent():
    form = Form(title="Images", headerImageUrl="", questions=[ClozeQuestion(qid="q1", imageUrl="")])

    assert form.headerImageUrl is None
    assert form.questions[0].imageUrl is None
    assert "imageUrl" not in form.model_dump(exclude_none=True)["questions"][0]


def test_count_blanks():
    assert count_blanks("A_____B_____C") == 2
    assert count_blanks("no blanks here") == 0


def test_parse_answer_value_per_type():
    assert parse_answer_value("cloze", ["a", ""]) == ["a", ""]
    assert isinstance(parse_answer_value("categorize", {"items": [{"id": "i1", "belongsTo": ""}]}), CategorizeAnswer)
    assert isinstance(parse_answer_value("comprehension", {"answers": [{"id": "s1", "answer": "x"}]}), ComprehensionAnswer)
    assert parse_answer_value("unknown", "free text") == "free text"


@pytest.mark.parametrize("question_type,value", [
    ("cloze", "not a list"),
    ("categorize", ["a"]),
    ("categorize", {"answers": []}),
    ("comprehension", {"items": []}),
])
def test_parse_answer_value_rejects_mismatched_shape(question_type, value):
    with pytest.raises(ValidationError):
        parse_answer_value(question_type, value)


def test_submission_keeps_answer_shapes():
    sub = Submission(formId="f1", responder="u2", answers=[
        {"qid": "q1", "value": ["there"]},
        {"qid": "q2", "value": {"items": [{"id": "i1", "belongsTo": "cat1"}]}},
        {"qid": "q3", "value": {"answers": [{"id": "s1", "answer": "cat"}]}},
        {"qid": "q4", "value": "free text"},
    ])
    dumped = sub.model_dump()

    assert [a["value"] for a in dumped["answers"]] == [
        ["there"],
        {"items": [{"id": "i1", "belongsTo": "cat1"}]},
        {"answers": [{"id": "s1", "answer": "cat"}]},
        "free text",
    ]
    assert dumped["submittedAt"] is not None
