from fastapi import APIRouter

from musiccollab.api.v1.auth import router as auth_router
from musiccollab.api.v1.profiles import router as profiles_router
from musiccollab.api.v1.matching import router as matching_router

api_router = APIRouter()

# Include all route modules
api_router.include_router(auth_router)
api_router.include_router(profiles_router)
api_router.include_router(matching_router)
