"""
services/quiz_generator.py

퀴즈 생성 협력자 (OpenAI Chat API).
Public API:
  - QuizGenerator(api_key, model).generate(draft) -> Quiz

설계 원칙:
- JSON 객체 응답 모드로 호출, 일시적 오류는 지수 백오프 재시도
- 응답은 경계에서 Quiz 모델로 검증 (보기 4개, 정답 인덱스 범위, 문제 수 일치)
- 어떤 실패든 GenerationError 하나로 올린다
"""

import json
import logging
import re
import time
from typing import Optional

from openai import APIError, OpenAI, RateLimitError
from pydantic import ValidationError

from config import MODEL_NAME
from shama_quiz.errors import GenerationError
from shama_quiz.models.quiz_model import Quiz, QuizDraft, SourceType

logger = logging.getLogger(__name__)

# ── 상수 ─────────────────────────────────────────────────────────────────────
_MAX_API_RETRIES = 3
_BACKOFF_BASE = 1.0
_RATE_LIMIT_MAX_RETRIES = 5
_RATE_LIMIT_BACKOFF_BASE = 2.0
_TEMPERATURE = 0.8

LANGUAGE_NAMES = {
    "ar": "Arabic",
    "en": "English",
    "es": "Spanish",
    "fr": "French",
}


def _make_client(api_key: str) -> Optional[OpenAI]:
    """API 키로 OpenAI 클라이언트를 생성."""
    if not api_key:
        logger.warning("API 키가 제공되지 않았습니다.")
        return None
    try:
        return OpenAI(api_key=api_key)
    except Exception as e:
        logger.error(f"OpenAI 클라이언트 초기화 실패: {e}")
        return None


class QuizGenerator:
    def __init__(
        self,
        api_key: str = "",
        model: str = MODEL_NAME,
        client: Optional[OpenAI] = None,
        sleep=time.sleep,
    ):
        self._api_key = api_key
        self._model = model
        self._client = client
        self._sleep = sleep

    def _get_client(self) -> OpenAI:
        if self._client is None:
            self._client = _make_client(self._api_key)
        if self._client is None:
            raise GenerationError("OpenAI API 키가 설정되지 않았습니다.")
        return self._client

    # ══════════════════════════════════════════════════════════════════════════
    # Public API
    # ══════════════════════════════════════════════════════════════════════════

    def generate(self, draft: QuizDraft) -> Quiz:
        """draft → 검증된 Quiz. 실패 시 GenerationError."""
        client = self._get_client()
        system_prompt = build_system_prompt()
        user_prompt = build_user_prompt(draft, entropy=_entropy())

        logger.info(
            f"퀴즈 생성 요청: {draft.question_count}문항, 난이도={draft.difficulty}, "
            f"언어={draft.language}, 본문 {len(draft.content)}자"
        )
        raw = self._call_openai(client, system_prompt, user_prompt)
        quiz = parse_quiz_response(raw, expected_count=draft.question_count)
        logger.info(f"퀴즈 생성 완료: '{quiz.title}' ({len(quiz.questions)}문항)")
        return quiz

    # ══════════════════════════════════════════════════════════════════════════
    # OpenAI API 호출
    # ══════════════════════════════════════════════════════════════════════════

    def _call_openai(self, client: OpenAI, system_prompt: str, user_prompt: str) -> str:
        """OpenAI Chat API 호출 + 지수 백오프 재시도."""
        last_exception: Optional[Exception] = None
        effective_retries = _MAX_API_RETRIES

        attempt = 0
        while attempt < effective_retries:
            attempt += 1
            try:
                response = client.chat.completions.create(
                    model=self._model,
                    messages=[
                        {"role": "system", "content": system_prompt},
                        {"role": "user", "content": user_prompt},
                    ],
                    temperature=_TEMPERATURE,
                    response_format={"type": "json_object"},
                )
                content = response.choices[0].message.content
                if not content:
                    raise GenerationError("AI가 응답을 생성하지 못했습니다.")
                return content
            except GenerationError:
                raise
            except RateLimitError as e:
                last_exception = e
                effective_retries = _RATE_LIMIT_MAX_RETRIES
                if attempt < effective_retries:
                    wait = _RATE_LIMIT_BACKOFF_BASE * (2 ** (attempt - 1))
                    logger.warning(f"Rate Limit, {wait:.1f}초 후 재시도 ({attempt}/{effective_retries})")
                    self._sleep(wait)
                else:
                    logger.error("Rate Limit 최대 재시도 초과.")
                    break
            except APIError as e:
                last_exception = e
                error_str = str(e).lower()
                is_transient = any(k in error_str for k in ("timeout", "connection", "unavailable"))
                if getattr(e, "status_code", None) in (500, 502, 503, 504):
                    is_transient = True
                if attempt < effective_retries and is_transient:
                    wait = _BACKOFF_BASE * (2 ** (attempt - 1))
                    logger.warning(f"API 오류, {wait:.1f}초 후 재시도 ({attempt}/{effective_retries})")
                    self._sleep(wait)
                else:
                    logger.error(f"API 오류: {e}")
                    break
            except Exception as e:
                last_exception = e
                logger.error(f"예상치 못한 오류: {type(e).__name__}: {e}")
                break

        logger.error(f"API 최종 실패: {last_exception}")
        raise GenerationError("퀴즈 생성에 실패했습니다.") from last_exception


# ══════════════════════════════════════════════════════════════════════════════
# 프롬프트
# ══════════════════════════════════════════════════════════════════════════════

def _entropy() -> str:
    # 같은 본문으로 다시 요청해도 다른 문제가 나오도록 호출마다 바뀌는 태그
    return format(time.time_ns() // 1_000_000, "x")


def build_system_prompt() -> str:
    return (
        "You are an elite pedagogical tutor and instructional designer.\n"
        "Build an educational multiple-choice assessment from the reference content.\n"
        "\n"
        "[Pedagogy]\n"
        "1. When the language is Arabic, write natural Modern Standard Arabic, not a translation.\n"
        "2. Follow Bloom's taxonomy: test understanding (why), inference (what if) "
        "and application (how), not recall of sentences.\n"
        "3. Identify the concepts learners usually struggle with in this content.\n"
        "4. Order the questions as a learning path.\n"
        "\n"
        "[Output]\n"
        "Respond with one JSON object only, no markdown:\n"
        "{\n"
        '  "title": academic title,\n'
        '  "description": learning objectives of the quiz,\n'
        '  "gapAnalysis": 2-3 sentences on likely points of confusion,\n'
        '  "nextLevelPreview": a hint for a harder mastery challenge,\n'
        '  "questions": [\n'
        "    {\n"
        '      "id": unique integer,\n'
        '      "question": the question text,\n'
        '      "options": exactly four plausible options,\n'
        '      "correctAnswerIndex": index 0-3 of the correct option,\n'
        '      "explanation": why the answer is correct and how it links to the broader concept\n'
        "    }\n"
        "  ]\n"
        "}"
    )


def build_user_prompt(draft: QuizDraft, entropy: str = "") -> str:
    language = LANGUAGE_NAMES.get(draft.language, draft.language)
    lines = [
        f"Reference content [ID: {entropy}]:",
        f'"{draft.content.strip()}"',
        "",
    ]
    if draft.source_type == SourceType.URL:
        lines.append("The reference content is a URL; base the quiz on the material it points to.")
    lines.append(f"The quiz MUST be written entirely in {language}.")
    lines.append(f"Difficulty level: {draft.difficulty}.")
    if draft.subject:
        lines.append(f"Subject area: {draft.subject}.")
    if draft.tone:
        lines.append(f"Tone of voice: {draft.tone}.")
    lines.append(f"Generate exactly {draft.question_count} questions.")
    return "\n".join(lines)


# ══════════════════════════════════════════════════════════════════════════════
# 응답 파싱
# ══════════════════════════════════════════════════════════════════════════════

def parse_quiz_response(raw_response: str, expected_count: Optional[int] = None) -> Quiz:
    """LLM JSON → Quiz. 형식 불일치는 GenerationError."""
    cleaned = _clean_json_response(raw_response)
    if not cleaned:
        raise GenerationError("퀴즈 데이터를 처리하지 못했습니다.")

    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        logger.error(f"JSON 파싱 실패: {e}")
        raise GenerationError("퀴즈 데이터를 처리하지 못했습니다.") from e

    if isinstance(data, dict) and isinstance(data.get("quiz"), dict):
        data = data["quiz"]
    if not isinstance(data, dict):
        raise GenerationError("퀴즈 데이터 형식이 올바르지 않습니다.")

    # 저장 전 퀴즈이므로 생성기가 붙인 id / created_at 은 버린다
    data.pop("id", None)
    data.pop("created_at", None)

    try:
        quiz = Quiz.model_validate(data)
    except ValidationError as e:
        logger.error(f"퀴즈 스키마 검증 실패: {e.error_count()}건, {e.errors()[0].get('msg')}")
        raise GenerationError("퀴즈 데이터 형식이 올바르지 않습니다.") from e

    if expected_count is not None and len(quiz.questions) != expected_count:
        logger.error(f"문항 수 불일치: 요청 {expected_count}, 응답 {len(quiz.questions)}")
        raise GenerationError("요청한 문항 수와 생성된 문항 수가 다릅니다.")
    return quiz


def _clean_json_response(response_text: str) -> str:
    """LLM 응답에서 순수 JSON을 추출."""
    if not response_text:
        return ""

    text = re.sub(r"```(?:json)?\s*", "", response_text, flags=re.IGNORECASE)
    text = re.sub(r"```", "", text)
    text = text.strip()

    if text.startswith("{") or text.startswith("["):
        return text

    match = re.search(r"[{[].*[}\]]", text, re.DOTALL)
    if match:
        return match.group(0).strip()

    return ""
