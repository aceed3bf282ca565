from fastapi import APIRouter

from app.api.v1.endpoints import booking, calendar, lessons, teachers, timeslots, users

api_router = APIRouter()

api_router.include_router(users.router, prefix="/users", tags=["users"])
api_router.include_router(teachers.router, tags=["teachers"])
api_router.include_router(timeslots.router, prefix="/timeslots", tags=["timeslots"])
api_router.include_router(booking.router, prefix="/booking-requests", tags=["booking"])
api_router.include_router(lessons.router, prefix="/lessons", tags=["lessons"])
api_router.include_router(calendar.router, tags=["calendar"])
