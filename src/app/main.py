from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import uvicorn
import os
from contextlib import asynccontextmanager
import logging
from datetime import datetime

# Core imports
from core.config import get_settings
from core.factory import ServiceFactory
from core.middleware import setup_exception_handlers
from core.responses import success_response

# Routers Import
from routers import plan_router, webhook_router

# 로깅 설정 (설정 객체 생성 전이라 환경 변수에서 직접 읽음)
logging.basicConfig(
    level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    # 시작 시 서비스 구성 (설정 누락이면 여기서 실패)
    ServiceFactory.configure_dependencies()
    db_helper = ServiceFactory.get_db_helper()

    await db_helper.log_system_event(
        event_type='server_start',
        event_data={'status': 'success', 'timestamp': datetime.now().isoformat()}
    )

    yield

    await db_helper.log_system_event(
        event_type='server_stop',
        event_data={'status': 'success', 'timestamp': datetime.now().isoformat()}
    )


app = FastAPI(
    title="Orbilink Billing Server",
    description="Payment webhook reconciliation and plan catalogue for Orbilink",
    version="1.0.0",
    lifespan=lifespan,
)

# 예외 처리 미들웨어 설정
setup_exception_handlers(app)

# CORS 미들웨어 추가
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # 프로덕션에서는 특정 도메인만 허용
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# 기본 엔드포인트
@app.get("/")
async def root():
    return success_response(
        data={"message": "Hello, Orbilink Billing Server!"},
        message="서버가 정상적으로 실행 중입니다"
    )


@app.get("/health")
async def health_check():
    # DB 헬스체크를 수행하지 않고 정적 상태만 반환
    return success_response(
        data={
            "database": {"checked": False},
            "timestamp": datetime.now().isoformat(),
            "version": "1.0.0",
        },
        message="헬스 체크(DB 미검사)"
    )


# 라우터 등록
app.include_router(webhook_router.router)  # 결제 웹훅 라우터
app.include_router(plan_router.router)  # 플랜 카탈로그 라우터

if __name__ == "__main__":
    settings = get_settings()
    uvicorn.run(
        app,
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )
