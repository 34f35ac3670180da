"""
Arbiter-Platform Main Entry Point

FastAPI 애플리케이션의 진입점입니다.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core.config import settings
from api.middleware import setup_middlewares
from core.sessions.file_store import get_file_session_store, shutdown_file_session_store

# 로깅 설정
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    애플리케이션 라이프사이클 관리

    시작 시: 파일 세션 저장소 시작 (메모리 만료 정리 태스크 또는 Redis 연결)
    종료 시: 저장소 정리
    """
    # Startup
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")
    logger.info(f"Environment: {settings.app_env}")
    logger.info(f"Models: {' -> '.join(settings.model_fallback_list)}")

    try:
        await get_file_session_store().start()
        logger.info(f"File session store started ({settings.session_store_backend})")
    except Exception as e:
        logger.error(f"Failed to start file session store: {e}")

    yield

    # Shutdown
    logger.info("Shutting down application")
    await shutdown_file_session_store()


# FastAPI 애플리케이션 초기화
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Multi-agent planning platform - streaming plan generation with model fallback",
    debug=settings.debug,
    lifespan=lifespan,
)

# CORS 미들웨어 설정
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 커스텀 미들웨어 설정
setup_middlewares(app)

# API 라우터 등록
from api.routes.files import router as files_router
from api.routes.orchestrate import router as orchestrate_router

app.include_router(orchestrate_router)
app.include_router(files_router)


@app.get("/")
async def root() -> dict[str, str]:
    """
    루트 엔드포인트

    Returns:
        환영 메시지
    """
    return {
        "message": f"Welcome to {settings.app_name}!",
        "version": settings.app_version,
        "status": "operational",
    }


@app.get("/health")
async def health_check() -> dict[str, str]:
    """헬스체크 엔드포인트"""
    return {
        "status": "healthy",
        "environment": settings.app_env,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_reload,
        log_level=settings.log_level.lower(),
    )
