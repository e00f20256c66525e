from fastapi import APIRouter
from app.routers import attendance, auth, employees, leave, leave_categories, settings

# Centralized API router hub
# Routers are aggregated here, and main.py only imports this single hub.
api_router = APIRouter()

api_router.include_router(auth.router, tags=["Authentication"])
api_router.include_router(leave_categories.router, tags=["Leave Types"])
api_router.include_router(leave.router, tags=["Leave"])
api_router.include_router(attendance.router, tags=["Attendance"])
api_router.include_router(settings.router, tags=["Settings"])
api_router.include_router(employees.router, tags=["Employees"])
