"""
errors.py

앱 전역 예외 계층.
모든 실패는 사용자에게 보이는 복구 가능한 상태로 귀결되며, 프로세스를 종료시키지 않는다.
"""


class QuizAppError(Exception):
    """모든 앱 예외의 기반 클래스. message는 사용자에게 그대로 노출된다."""

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class AuthError(QuizAppError):
    """잘못된 자격 증명, 네트워크 오류 등 인증 실패."""


class DraftValidationError(QuizAppError):
    """생성 요청 입력(draft) 검증 실패."""


class EmptyContentError(DraftValidationError):
    """본문이 비어 있거나 공백뿐인 경우."""


class GenerationError(QuizAppError):
    """생성 협력자의 전송/스키마 불일치 오류."""


class GenerationInProgressError(QuizAppError):
    """이미 진행 중인 생성이 있는데 중복 요청된 경우."""


class PersistenceError(QuizAppError):
    """저장소 읽기/쓰기 실패."""


class EntitlementError(QuizAppError):
    """프리미엄 권한 부여 실패."""
