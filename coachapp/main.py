import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from coachapp.api.router import api_router
from coachapp.core import settings
from coachapp.core.dependencies import backend

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Coach - workout progress and program tracking")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix="/api/v1")


@app.on_event("startup")
async def startup_event():
    logger.info(f"Приложение запущено! Таймзона программы: {settings.PROGRAM_TIMEZONE}")
    if settings.UX_METRICS_ENABLED:
        logger.info("UX-метрики включены")


@app.on_event("shutdown")
async def shutdown_event():
    await backend.close()
    logger.info("Клиенты бэкенда закрыты")


@app.get("/")
async def root():
    return {
        "app": "Coach",
        "message": "Workout progress and program tracking",
        "links": {
            "progress": "/api/v1/progress/current",
            "live": "/api/v1/progress/live",
            "program": "/api/v1/program/today",
            "docs": "/docs",
        },
    }


@app.get("/health")
async def health():
    return {"status": "ok"}
