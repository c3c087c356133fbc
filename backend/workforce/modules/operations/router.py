"""Operational endpoints."""
from workforce.routers import health

ROUTERS = [health.router]
