"""API V1 Router"""

from fastapi import APIRouter

from admissions.api.v1.endpoints import students

api_router = APIRouter()

api_router.include_router(students.router, prefix="/students", tags=["Student Management"])
