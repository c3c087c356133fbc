"""Attendance module router aggregation."""
from workforce.routers import attendance, face

ROUTERS = [attendance.router, face.router]
