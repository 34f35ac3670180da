"""
Core Configuration Module

환경변수 및 전역 설정을 관리하는 모듈.
Pydantic Settings를 사용하여 타입 안전성과 검증을 보장합니다.
"""

from functools import lru_cache
from typing import Any

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    애플리케이션 전역 설정 클래스

    환경변수에서 값을 로드하며, .env 파일을 지원합니다.
    API 키가 없어도 생성은 실패하지 않으며, LLM 클라이언트 첫 사용 시 검증합니다.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_prefix="",
    )

    # ==================== LLM Configuration ====================
    openai_api_key: str | None = Field(
        default=None,
        description="OpenAI API Key (첫 모델 호출 시 필수)",
        json_schema_extra={"env": "OPENAI_API_KEY"},
    )
    openai_base_url: str | None = Field(
        default=None,
        description="OpenAI 호환 엔드포인트 (미지정 시 공식 API)",
    )
    primary_model: str = Field(
        default="gpt-4o",
        description="모델 폴백 목록의 1순위 모델",
    )
    fallback_model: str = Field(
        default="gpt-4o-mini",
        description="1순위 모델 실패 시 사용하는 폴백 모델",
    )
    openai_temperature: float = Field(
        default=0.7,
        ge=0.0,
        le=2.0,
        description="LLM 응답의 창의성 제어 (0.0-2.0)",
    )
    openai_max_tokens: int = Field(
        default=4096,
        gt=0,
        description="LLM 응답의 최대 토큰 수",
    )

    # ==================== Agent Protocol Configuration ====================
    agent_max_retries: int = Field(
        default=2,
        gt=0,
        description="모델당 최대 시도 횟수 (일시 장애 시 재시도 포함)",
    )
    agent_backoff_base_seconds: float = Field(
        default=1.0,
        ge=0.0,
        description="지수 백오프 기준 (대기 = base * 2^attempt)",
    )
    agent_max_tool_rounds: int = Field(
        default=3,
        gt=0,
        description="한 실행에서 허용하는 도구 호출 라운드 수",
    )
    tool_result_preview_chars: int = Field(
        default=200,
        gt=0,
        description="tool_result 이벤트에 싣는 결과 미리보기 길이",
    )
    orchestrator_history_window: int = Field(
        default=10,
        gt=0,
        description="오케스트레이터가 첫 단계에 넘기는 최근 대화 수",
    )

    # ==================== Search Tool Configuration ====================
    custom_search_api_key: str | None = Field(
        default=None,
        description="Google Programmable Search API Key",
    )
    search_engine_id: str | None = Field(
        default=None,
        description="Google Programmable Search Engine ID (cx)",
    )
    search_api_url: str = Field(
        default="https://www.googleapis.com/customsearch/v1",
        description="Custom Search JSON API URL",
    )
    search_result_count: int = Field(
        default=5,
        gt=0,
        le=10,
        description="검색 결과 개수",
    )
    search_timeout: float = Field(
        default=10.0,
        gt=0,
        description="검색 HTTP 요청 타임아웃 (초)",
    )

    # ==================== Session Store Configuration ====================
    session_store_backend: str = Field(
        default="memory",
        description="파일 세션 저장소 (memory, redis)",
    )
    session_ttl_seconds: int = Field(
        default=3600,
        gt=0,
        description="업로드 세션 TTL (초, 기본: 1시간)",
    )
    session_sweep_interval_seconds: float = Field(
        default=600.0,
        gt=0,
        description="만료 세션 정리 주기 (초, 기본: 10분)",
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis 서버 URL",
    )
    redis_max_connections: int = Field(
        default=10,
        gt=0,
        description="Redis 최대 연결 수",
    )
    redis_key_prefix: str = Field(
        default="arbiter:session:",
        description="세션 키 prefix",
    )

    # ==================== Upload Limits ====================
    max_file_size_bytes: int = Field(
        default=5 * 1024 * 1024,
        gt=0,
        description="파일 1개 최대 크기 (기본: 5MB)",
    )
    max_total_size_bytes: int = Field(
        default=100 * 1024 * 1024,
        gt=0,
        description="세션 전체 최대 크기 (기본: 100MB)",
    )
    max_file_count: int = Field(
        default=1000,
        gt=0,
        description="세션당 최대 파일 수",
    )
    max_request_size_mb: int = Field(
        default=9,
        gt=0,
        description="업로드 요청 본문 최대 크기 (MB)",
    )

    # ==================== Prompt Budget ====================
    prompt_max_total_chars: int = Field(
        default=120_000,
        gt=0,
        description="코드베이스 프롬프트에 포함할 최대 문자 수",
    )
    prompt_max_files: int = Field(
        default=40,
        gt=0,
        description="코드베이스 프롬프트에 포함할 최대 파일 수",
    )
    prompt_per_file_max_chars: int = Field(
        default=3000,
        gt=0,
        description="파일당 최대 포함 문자 수",
    )
    prompt_max_file_size: int = Field(
        default=50_000,
        gt=0,
        description="이보다 큰 파일은 프롬프트에서 제외",
    )

    # ==================== Application Configuration ====================
    app_env: str = Field(
        default="development",
        description="애플리케이션 환경 (development, staging, production)"
    )
    app_name: str = Field(
        default="Arbiter-Platform",
        description="애플리케이션 이름"
    )
    app_version: str = Field(
        default="0.1.0",
        description="애플리케이션 버전"
    )
    debug: bool = Field(
        default=True,
        description="디버그 모드 활성화 여부"
    )

    # ==================== API Configuration ====================
    api_host: str = Field(
        default="0.0.0.0",
        description="API 서버 호스트"
    )
    api_port: int = Field(
        default=9000,
        gt=0,
        lt=65536,
        description="API 서버 포트"
    )
    api_reload: bool = Field(
        default=True,
        description="자동 리로드 활성화 (개발 모드용)"
    )
    allowed_origins: list[str] = Field(
        default=["http://localhost:3000"],
        description="CORS 허용 Origin"
    )

    # ==================== Logging Configuration ====================
    log_level: str = Field(
        default="INFO",
        description="로그 레벨 (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    @field_validator("app_env")
    @classmethod
    def validate_app_env(cls, v: str) -> str:
        """애플리케이션 환경 검증"""
        allowed_envs = {"development", "staging", "production"}
        if v.lower() not in allowed_envs:
            raise ValueError(f"app_env must be one of {allowed_envs}")
        return v.lower()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """로그 레벨 검증"""
        allowed_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in allowed_levels:
            raise ValueError(f"log_level must be one of {allowed_levels}")
        return v_upper

    @field_validator("session_store_backend")
    @classmethod
    def validate_session_store_backend(cls, v: str) -> str:
        """세션 저장소 백엔드 검증"""
        allowed = {"memory", "redis"}
        if v.lower() not in allowed:
            raise ValueError(f"session_store_backend must be one of {allowed}")
        return v.lower()

    @model_validator(mode="after")
    def validate_model_fallback(self) -> "Settings":
        """폴백 모델이 1순위 모델과 같으면 같은 모델을 두 번 시도하게 되므로 막습니다."""
        if self.primary_model == self.fallback_model:
            raise ValueError("fallback_model must differ from primary_model")
        return self

    @property
    def is_production(self) -> bool:
        """프로덕션 환경 여부 확인"""
        return self.app_env == "production"

    @property
    def model_fallback_list(self) -> list[str]:
        """시도 순서대로 정렬된 모델 이름 목록"""
        return [self.primary_model, self.fallback_model]

    @property
    def openai_config(self) -> dict[str, Any]:
        """ChatOpenAI 생성 인자를 딕셔너리로 반환 (모델 이름 제외)"""
        base: dict[str, Any] = {
            "temperature": self.openai_temperature,
            "max_tokens": self.openai_max_tokens,
            "api_key": self.openai_api_key,
        }
        if self.openai_base_url:
            base["base_url"] = self.openai_base_url
        return base

    @property
    def search_configured(self) -> bool:
        """검색 도구 자격 증명 설정 여부"""
        return bool(self.custom_search_api_key and self.search_engine_id)


@lru_cache()
def get_settings() -> Settings:
    """
    Settings 인스턴스를 반환하는 캐시된 함수

    이 함수는 애플리케이션 전체에서 단일 Settings 인스턴스를 공유합니다.
    FastAPI의 의존성 주입에서 사용됩니다.

    Returns:
        Settings 인스턴스
    """
    return Settings()


# 전역 설정 인스턴스
settings = get_settings()
