# phishing_detector/main.py
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging
import time
from typing import Optional

from .config import Settings
from .routes import analytics, check
from .services.detector import NavigationQueue, PhishingDetector
from .services.storage import SQLiteKeyValueStore

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO"):
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Build the detector once per process and run the navigation worker"""
        logger.info("🚀 Phishing Detector starting up...")

        storage = SQLiteKeyValueStore(settings.db_path)
        detector = PhishingDetector.build(
            storage,
            warn_threshold=settings.warn_threshold,
            block_threshold=settings.block_threshold,
            data_dir=settings.data_dir,
            banner_timeout_ms=settings.warning_banner_timeout_ms,
            reanalysis_debounce_ms=settings.reanalysis_debounce_ms,
        )
        await detector.start()

        navigation_queue = NavigationQueue(detector)
        navigation_queue.start()

        app.state.settings = settings
        app.state.detector = detector
        app.state.navigation_queue = navigation_queue
        logger.info("✅ All services ready!")

        yield

        logger.info("👋 Phishing Detector shutting down...")
        await navigation_queue.stop()
        storage.close()

    app = FastAPI(
        title="Phishing Detector API",
        description="Heuristic URL and page risk scoring",
        version="1.0.0",
        lifespan=lifespan
    )

    # Extension origins are not known in advance
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all requests with timing"""
        start_time = time.time()
        logger.info(f"Request: {request.method} {request.url.path}")

        response = await call_next(request)

        process_time = time.time() - start_time
        logger.info(f"Response: {response.status_code} - {process_time:.3f}s")
        return response

    app.include_router(check.router, prefix="/api", tags=["check"])
    app.include_router(analytics.router, prefix="/api")

    @app.get("/")
    async def root():
        return {
            "service": "Phishing Detector API",
            "version": "1.0.0",
            "status": "healthy",
            "endpoints": {
                "check": "/api/check",
                "navigation": "/api/navigation",
                "analysis": "/api/analysis/{tab_id}",
                "report": "/api/report",
                "trust": "/api/trust",
                "page_analysis": "/api/page/analyze",
                "stats": "/api/stats",
                "reputation_stats": "/api/reputation/stats"
            }
        }

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Catch-all exception handler"""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "detail": str(exc) if settings.debug else "An error occurred"
            }
        )

    return app


settings = Settings.from_env()
configure_logging(settings.log_level)
app = create_app(settings)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "phishing_detector.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        log_level=settings.log_level.lower()
    )
