import pytest
from pydantic import ValidationError

from shama_quiz.models.quiz_model import Question, Quiz, QuizDraft, SourceType
from tests.conftest import make_quiz


def _question(**overrides):
    data = {
        "id": 1,
        "question": "엽록소가 주로 흡수하는 빛은?",
        "options": ["적색·청색", "녹색", "자외선", "적외선"],
        "correctAnswerIndex": 0,
        "explanation": "녹색은 반사된다.",
    }
    data.update(overrides)
    return Question.model_validate(data)


def test_question_accepts_camel_case_payload():
    q = _question()
    assert q.prompt.startswith("엽록소")
    assert q.correct_option_index == 0


def test_question_requires_exactly_four_options():
    with pytest.raises(ValidationError):
        _question(options=["a", "b", "c"])
    with pytest.raises(ValidationError):
        _question(options=["a", "b", "c", "d", "e"])


@pytest.mark.parametrize("index", [-1, 4, 7])
def test_question_rejects_out_of_range_answer(index):
    with pytest.raises(ValidationError):
        _question(correctAnswerIndex=index)


def test_quiz_rejects_duplicate_question_ids():
    q = _question()
    with pytest.raises(ValidationError):
        Quiz(title="t", questions=[q, q])


def test_quiz_requires_at_least_one_question():
    with pytest.raises(ValidationError):
        Quiz(title="t", questions=[])


def test_record_payload_uses_storage_keys_and_omits_identity():
    quiz = make_quiz(2, quiz_id="abc", created_at="2026-01-01T00:00:00+00:00")
    payload = quiz.to_record_payload()

    assert "id" not in payload and "created_at" not in payload
    assert "gapAnalysis" in payload and "nextLevelPreview" in payload
    assert payload["questions"][0]["correctAnswerIndex"] == 1
    assert payload["questions"][0]["question"] == "질문 1"


def test_from_record_attaches_server_identity():
    record = {
        "id": 42,
        "user_id": "u1",
        "quiz_data": make_quiz(1).to_record_payload(),
        "created_at": "2026-02-03T04:05:06+00:00",
    }
    quiz = Quiz.from_record(record)
    assert quiz.id == "42"
    assert quiz.created_at == "2026-02-03T04:05:06+00:00"
    assert quiz.question_ids() == {1}


def test_draft_defaults():
    draft = QuizDraft()
    assert draft.source_type == SourceType.TEXT
    assert draft.content == ""
    assert draft.question_count == 5
    assert draft.language == "ar"


def test_draft_rejects_unknown_language():
    with pytest.raises(ValidationError):
        QuizDraft(language="de")
