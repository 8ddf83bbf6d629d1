"""
SearchInvest 金融数据网关
独立 FastAPI 应用程序入口

启动方式:
    uvicorn searchinvest.main:create_app --factory --host 0.0.0.0 --port 3000
    python -m searchinvest.main
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from searchinvest import __version__
from searchinvest.config import SearchInvestSettings, get_settings
from searchinvest.models.response import ApiResponse
from searchinvest.routers import analysis, cache, company, health, market, sentiment
from searchinvest.services.container import ServiceContainer, build_container

logger = logging.getLogger(__name__)


def configure_logging(settings: SearchInvestSettings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def create_app(
    settings: Optional[SearchInvestSettings] = None,
    container: Optional[ServiceContainer] = None,
) -> FastAPI:
    """
    构造应用实例

    Args:
        settings: 配置，默认读取环境变量
        container: 预先装配好的服务容器，测试时注入
    """
    settings = settings or get_settings()
    configure_logging(settings)
    container = container or build_container(settings)

    # ── 生命周期管理 ──────────────────────────────────────
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("=" * 60)
        logger.info(f"🚀 SearchInvest v{__version__} 启动中")
        logger.info(f"   Redis     : {'启用' if settings.REDIS_ENABLED else '未启用'}")
        logger.info(f"   MongoDB   : {'启用' if settings.MONGODB_ENABLED else '未启用'}")
        logger.info("=" * 60)

        # 外部依赖连接失败直接抛出，应用不会启动
        await container.start()
        app.state.container = container
        logger.info("✅ 所有依赖就绪")

        yield

        logger.info("🔄 服务正在关闭...")
        await container.stop()
        logger.info("✅ 服务已关闭")

    app = FastAPI(
        title="SearchInvest 金融数据网关",
        description=(
            "统一接入多个第三方金融数据提供商：\n"
            "- 📊 实时行情（Alpha Vantage）\n"
            "- 🏢 公司资料与基本面（Finnhub）\n"
            "- 📈 技术 / 基本面分析（Alpha Vantage + 持久化记录）\n"
            "- 📰 新闻情绪\n\n"
            "上游失败时若已有缓存数据，返回带 `meta.stale=true` 标记的旧数据。"
        ),
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.container = container

    # ── CORS 中间件 ───────────────────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── 请求计时中间件 ─────────────────────────────────────
    @app.middleware("http")
    async def add_process_time(request: Request, call_next):
        start = time.time()
        response = await call_next(request)
        response.headers["X-Process-Time"] = f"{(time.time() - start) * 1000:.1f}ms"
        return response

    # ── 全局异常处理 ──────────────────────────────────────
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"未处理的异常: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content=ApiResponse.fail(error="内部服务错误", message=str(exc)).model_dump(),
        )

    # ── 注册路由 ──────────────────────────────────────────
    app.include_router(health.router)
    app.include_router(market.router)
    app.include_router(company.router)
    app.include_router(analysis.router)
    app.include_router(sentiment.router)
    app.include_router(cache.router)

    @app.get("/", include_in_schema=False)
    async def root():
        return {
            "service": "SearchInvest",
            "version": __version__,
            "docs": "/docs",
            "health": "/health",
        }

    return app


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "searchinvest.main:create_app",
        factory=True,
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
