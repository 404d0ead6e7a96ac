from fastapi import APIRouter
from procsync.api.endpoints import procedures

api_router = APIRouter()

# Combine all sub-routers into one
api_router.include_router(procedures.router)
