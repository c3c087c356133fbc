"""End-user account module router aggregation."""
from workforce.routers import announcements, otp, session

ROUTERS = [session.router, otp.router, announcements.router]
