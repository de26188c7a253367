"""
애플리케이션 설정 관리
"""
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Dict, Optional

from dotenv import load_dotenv
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


_FILE_PATH = Path(__file__).resolve()


def _collect_env_files(file_path: Path) -> tuple[Path, ...]:
    """환경 파일 후보를 가까운 디렉터리부터 수집"""

    collected: list[Path] = []
    seen: set[Path] = set()

    for directory in file_path.parents:
        for name in (".env", ".env.local"):
            candidate = directory / name
            if candidate.exists() and candidate not in seen:
                collected.append(candidate)
                seen.add(candidate)

    return tuple(collected)


_ENV_FILES = _collect_env_files(_FILE_PATH)


def _load_dotenv_files() -> None:
    """프로젝트 전체에서 활용할 .env 파일들을 순차적으로 로드"""

    for dotenv_path in _ENV_FILES:
        load_dotenv(dotenv_path, override=False)


class Settings(BaseSettings):
    """애플리케이션 설정"""

    model_config = SettingsConfigDict(
        env_file=tuple(str(path) for path in _ENV_FILES) if _ENV_FILES else None,
        case_sensitive=True,
        extra="allow",
    )

    # 서버 설정
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # 로깅 설정
    LOG_LEVEL: str = "INFO"

    # Supabase 설정
    SUPABASE_URL: str
    SUPABASE_ANON_KEY: str
    SUPABASE_SERVICE_ROLE_KEY: Optional[str] = None

    # 테이블 이름
    USERS_TABLE: str = "users"
    PENDING_PAYMENTS_TABLE: str = "pending_payments"
    PAYMENT_LEDGER_TABLE: str = "payment_ledger"
    SYSTEM_LOGS_TABLE: str = "system_logs"

    # Stripe 웹훅 설정
    STRIPE_WEBHOOK_SECRET: Optional[str] = None
    STRIPE_WEBHOOK_TOLERANCE_SECONDS: int = 300
    STRIPE_PRICE_ID_BASIC: Optional[str] = None
    STRIPE_PRICE_ID_PRO: Optional[str] = None
    STRIPE_PRICE_ID_PREMIUM: Optional[str] = None

    # Flutterwave (이전 결제 공급자)
    FLUTTERWAVE_SECRET_HASH: Optional[str] = None

    # 매핑 테이블에 없는 플랜 식별자가 들어왔을 때 적용할 플랜
    UNMAPPED_PLAN_FALLBACK: str = "pro"

    @field_validator("SUPABASE_URL")
    @classmethod
    def validate_supabase_url(cls, v):
        if not v:
            raise ValueError("SUPABASE_URL은 필수입니다")
        return v

    @field_validator("SUPABASE_ANON_KEY")
    @classmethod
    def validate_supabase_anon_key(cls, v):
        if not v:
            raise ValueError("SUPABASE_ANON_KEY는 필수입니다")
        return v

    @field_validator("STRIPE_WEBHOOK_TOLERANCE_SECONDS")
    @classmethod
    def validate_tolerance(cls, v):
        if v <= 0:
            raise ValueError("STRIPE_WEBHOOK_TOLERANCE_SECONDS는 양수여야 합니다")
        return v


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """설정 인스턴스를 최초 1회 생성해 재사용"""
    _load_dotenv_files()
    return Settings()


@dataclass(frozen=True)
class WebhookConfig:
    """웹훅 검증기와 정산 서비스에 주입되는 설정 묶음"""

    signing_secret: Optional[str]
    tolerance_seconds: int = 300
    # 공급자 price id -> 플랜 문자열 (배포 환경별 설정)
    price_plan_map: Dict[str, str] = field(default_factory=dict)
    unmapped_plan_fallback: str = "pro"
    flutterwave_secret_hash: Optional[str] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "WebhookConfig":
        price_plan_map: Dict[str, str] = {}
        for plan, price_id in (
            ("basic", settings.STRIPE_PRICE_ID_BASIC),
            ("pro", settings.STRIPE_PRICE_ID_PRO),
            ("premium", settings.STRIPE_PRICE_ID_PREMIUM),
        ):
            if price_id and price_id.strip():
                price_plan_map[price_id.strip()] = plan

        return cls(
            signing_secret=(settings.STRIPE_WEBHOOK_SECRET or "").strip() or None,
            tolerance_seconds=settings.STRIPE_WEBHOOK_TOLERANCE_SECONDS,
            price_plan_map=price_plan_map,
            unmapped_plan_fallback=settings.UNMAPPED_PLAN_FALLBACK,
            flutterwave_secret_hash=(settings.FLUTTERWAVE_SECRET_HASH or "").strip() or None,
        )
