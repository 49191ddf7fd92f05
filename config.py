import os
import sys

# 기본 디렉토리 설정
IF_FROZEN = getattr(sys, "frozen", False)
BASE_DIR = sys._MEIPASS if IF_FROZEN else os.path.dirname(os.path.abspath(__file__))

# 경로 설정
STATIC_DIR = os.path.join(BASE_DIR, "static")
LOG_FILE = os.path.join(BASE_DIR, "launch.log")

# 서버 설정
DEFAULT_HOST = os.getenv("HOST", "127.0.0.1")
DEFAULT_PORT = int(os.getenv("PORT", "8000"))
DEFAULT_TIMEOUT = 15.0
SESSION_TTL = int(os.getenv("SESSION_TTL", "3600"))  # 1시간

# OpenAI 설정
MODEL_NAME = os.getenv("MODEL_NAME", "gpt-4o")
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")

# 인증/저장소 백엔드 ("memory" | "supabase")
AUTH_BACKEND = os.getenv("AUTH_BACKEND", "memory").strip().lower()
SUPABASE_URL = os.getenv("SUPABASE_URL", "").rstrip("/")
SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY", "")
SUPABASE_TABLE = os.getenv("SUPABASE_TABLE", "quizzes")
SUPABASE_TIMEOUT = 10

# 퀴즈 생성 설정
FREE_QUIZ_CAP = int(os.getenv("FREE_QUIZ_CAP", "2"))   # 무료 등급 저장 퀴즈 상한
QUESTION_COUNT_MIN = 1
QUESTION_COUNT_MAX = 15

# 업로드 설정
MAX_UPLOAD_SIZE = 20 * 1024 * 1024  # 20 MB
MAX_PDF_PAGES = 200

DEFAULT_DISPLAY_NAME = "مستخدم شمعة"
