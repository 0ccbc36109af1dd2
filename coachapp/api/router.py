from fastapi import APIRouter
from coachapp.api.v1.progress import router as progress_router
from coachapp.api.v1.program import router as program_router
from coachapp.api.v1.smart_progression import router as smart_progression_router

api_router = APIRouter()

api_router.include_router(progress_router)
api_router.include_router(program_router)
api_router.include_router(smart_progression_router)
