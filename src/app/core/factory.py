"""
서비스 팩토리 - 의존성 구성

설정에서 외부 클라이언트와 서비스를 한 번만 만들고, 라우터는 getter를 통해 받아간다.
"""
from supabase import create_client
import logging

from core.config import WebhookConfig, get_settings
from core.interfaces import IAuthService, IDatabaseHelper
from database_helper import DatabaseHelper
from services.auth_service import AuthService
from services.flutterwave_webhook_service import FlutterwaveWebhookService
from services.plan_service import PlanService
from services.signature_verifier import StripeSignatureVerifier
from services.stripe_webhook_service import StripeWebhookService
from services.user_resolver import UserResolver

logger = logging.getLogger(__name__)


class ServiceFactory:
    """서비스 의존성 등록 및 초기화"""

    _services: dict = {}

    @classmethod
    def configure_dependencies(cls):
        """설정을 읽어 서비스 그래프를 구성"""
        settings = get_settings()

        supabase_client = create_client(settings.SUPABASE_URL, settings.SUPABASE_ANON_KEY)
        supabase_admin = None
        if settings.SUPABASE_SERVICE_ROLE_KEY:
            supabase_admin = create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_ROLE_KEY)
        else:
            logger.warning("SUPABASE_SERVICE_ROLE_KEY가 설정되지 않음 - 웹훅 쓰기가 RLS에 막힐 수 있습니다")

        webhook_config = WebhookConfig.from_settings(settings)
        if not webhook_config.signing_secret:
            logger.warning("[STRIPE] STRIPE_WEBHOOK_SECRET이 설정되지 않아 모든 Stripe 웹훅을 거부합니다.")

        db_helper = DatabaseHelper(
            supabase_client,
            supabase_admin,
            users_table=settings.USERS_TABLE,
            pending_payments_table=settings.PENDING_PAYMENTS_TABLE,
            payment_ledger_table=settings.PAYMENT_LEDGER_TABLE,
            system_logs_table=settings.SYSTEM_LOGS_TABLE,
        )
        plan_service = PlanService(db_helper, webhook_config)
        resolver = UserResolver(db_helper)

        cls._services = {
            IDatabaseHelper: db_helper,
            IAuthService: AuthService(supabase_client, db_helper),
            PlanService: plan_service,
            StripeSignatureVerifier: StripeSignatureVerifier(webhook_config),
            StripeWebhookService: StripeWebhookService(db_helper, plan_service, resolver),
            FlutterwaveWebhookService: FlutterwaveWebhookService(
                db_helper,
                plan_service,
                resolver,
                secret_hash=webhook_config.flutterwave_secret_hash,
            ),
        }

    @classmethod
    def _get(cls, key):
        if not cls._services:
            cls.configure_dependencies()
        return cls._services[key]

    @classmethod
    def get_auth_service(cls) -> IAuthService:
        """인증 서비스 조회"""
        return cls._get(IAuthService)

    @classmethod
    def get_db_helper(cls) -> IDatabaseHelper:
        """DB 헬퍼 조회"""
        return cls._get(IDatabaseHelper)

    @classmethod
    def get_plan_service(cls) -> PlanService:
        return cls._get(PlanService)

    @classmethod
    def get_signature_verifier(cls) -> StripeSignatureVerifier:
        return cls._get(StripeSignatureVerifier)

    @classmethod
    def get_stripe_webhook_service(cls) -> StripeWebhookService:
        return cls._get(StripeWebhookService)

    @classmethod
    def get_flutterwave_webhook_service(cls) -> FlutterwaveWebhookService:
        return cls._get(FlutterwaveWebhookService)
