"""
models/quiz_model.py

AI 생성 퀴즈 모델 (Pydantic v2).
저장소/생성기와 주고받는 JSON은 원래 앱의 camelCase 키를 그대로 사용하므로
alias로 받고, 파이썬 코드에서는 snake_case 이름으로 다룬다.
"""

from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

OPTION_COUNT = 4

Difficulty = Literal["easy", "medium", "hard"]
Language = Literal["ar", "en", "es", "fr"]


class SourceType(str, Enum):
    TEXT = "text"
    URL = "url"
    FILE = "file"


class Question(BaseModel):
    """
    사지선다 문제 한 개.
    """
    model_config = ConfigDict(populate_by_name=True)

    id: int = Field(
        ...,
        description="문제 번호 (퀴즈 내 고유 식별자)"
    )
    prompt: str = Field(
        ...,
        min_length=1,
        alias="question",
        description="문제 본문"
    )
    options: List[str] = Field(
        ...,
        description="보기 리스트 (정확히 4개)"
    )
    correct_option_index: int = Field(
        ...,
        alias="correctAnswerIndex",
        description="정답 보기 인덱스 (0-based)"
    )
    explanation: str = Field(
        "",
        description="정답 해설"
    )

    @field_validator("options")
    @classmethod
    def validate_options_length(cls, v: List[str]) -> List[str]:
        if len(v) != OPTION_COUNT:
            raise ValueError(f"보기(options)는 정확히 {OPTION_COUNT}개여야 합니다 (현재 {len(v)}개).")
        return v

    @model_validator(mode="after")
    def validate_correct_index(self) -> "Question":
        if not 0 <= self.correct_option_index < len(self.options):
            raise ValueError(
                f"정답 인덱스({self.correct_option_index})가 보기 범위를 벗어났습니다."
            )
        return self


class Quiz(BaseModel):
    """
    생성된 퀴즈 전체. id / created_at 은 저장된 이후에만 채워진다.
    """
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = None
    title: str = Field(..., min_length=1)
    description: str = ""
    gap_analysis: str = Field("", alias="gapAnalysis")
    next_level_preview: str = Field("", alias="nextLevelPreview")
    questions: List[Question] = Field(..., min_length=1)
    created_at: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v):
        # PostgREST 정수 PK도 문자열 id로 통일
        return str(v) if v is not None else None

    @model_validator(mode="after")
    def validate_unique_question_ids(self) -> "Quiz":
        ids = [q.id for q in self.questions]
        if len(ids) != len(set(ids)):
            raise ValueError("문제 id가 중복되었습니다.")
        return self

    def question_ids(self) -> set:
        return {q.id for q in self.questions}

    def to_record_payload(self) -> dict:
        """저장소 quiz_data 컬럼에 들어갈 JSON (id / created_at 제외)."""
        return self.model_dump(by_alias=True, exclude={"id", "created_at"})

    @classmethod
    def from_record(cls, record: dict) -> "Quiz":
        """저장소 레코드 {id, user_id, quiz_data, created_at} → Quiz."""
        data = dict(record.get("quiz_data") or {})
        data["id"] = record.get("id")
        data["created_at"] = record.get("created_at")
        return cls.model_validate(data)


class QuizDraft(BaseModel):
    """
    사용자가 편집 중인 생성 요청 입력. 생성 성공 또는 명시적 초기화 시 비워진다.
    """
    source_type: SourceType = SourceType.TEXT
    content: str = ""
    difficulty: Difficulty = "medium"
    question_count: int = 5
    language: Language = "ar"
    subject: Optional[str] = None
    tone: Optional[str] = None
