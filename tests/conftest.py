import copy
from typing import Optional

import mongomock
import pytest
from fastapi import Header, HTTPException
from fastapi.testclient import TestClient

import database
import main


SAMPLE_FORM = {
    "title": "Week 1 check-in",
    "description": "Three short tasks",
    "questions": [
        {
            "qid": "q1",
            "type": "cloze",
            "title": "Complete the greeting",
            "config": {"textWithBlanks": "Hi_____!", "options": ["there", "you"]},
        },
        {
            "qid": "q2",
            "type": "categorize",
            "title": "Sort the food",
            "config": {
                "categories": [{"id": "cat1", "label": "Fruit"}, {"id": "cat2", "label": "Vegetable"}],
                "items": [
                    {"id": "i1", "label": "Apple", "belongsTo": "cat1"},
                    {"id": "i2", "label": "Carrot", "belongsTo": "cat2"},
                ],
            },
        },
        {
            "qid": "q3",
            "type": "comprehension",
            "title": "Read and answer",
            "config": {
                "passage": "The cat sat on the mat.",
                "subQuestions": [
                    {"id": "s1", "question": "Who sat?", "options": ["cat", "dog"]},
                    {"id": "s2", "question": "Where?", "options": ["mat", "chair"]},
                ],
            },
        },
    ],
}


def _verify_user_from_header(authorization: Optional[str] = Header(None)) -> str:
    # tokens in tests are the uid itself
    if not authorization:
        raise HTTPException(status_code=401, detail="Missing Authorization header")
    return authorization.split()[-1]


@pytest.fixture
def sample_form():
    return copy.deepcopy(SAMPLE_FORM)


@pytest.fixture
def mongo(monkeypatch):
    test_db = mongomock.MongoClient()["formbuilder_test"]
    monkeypatch.setattr(database, "db", test_db)
    return test_db


@pytest.fixture
def client(mongo):
    main.app.dependency_overrides[main.verify_user] = _verify_user_from_header
    with TestClient(main.app) as c:
        yield c
    main.app.dependency_overrides.clear()


@pytest.fixture
def auth():
    def _auth(uid):
        return {"Authorization": f"Bearer {uid}"}
    return _auth


@pytest.fixture
def created_form(client, auth, sample_form):
    r = client.post("/api/forms", json=sample_form, headers=auth("owner"))
    assert r.status_code == 201
    return r.json()
