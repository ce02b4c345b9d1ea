from fastapi import APIRouter
from webcare.api.endpoints import login, clients, websites, updates, dashboard

api_router = APIRouter()
api_router.include_router(login.router, tags=["login"])
api_router.include_router(clients.router, prefix="/clients", tags=["clients"])
api_router.include_router(websites.router, prefix="/websites", tags=["websites"])
api_router.include_router(updates.router, prefix="/websites", tags=["updates"])
api_router.include_router(dashboard.router, prefix="/dashboard", tags=["dashboard"])
