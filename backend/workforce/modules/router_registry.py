"""Central router registry for module-oriented composition."""
from __future__ import annotations

from fastapi import FastAPI

from workforce.modules.accounts.router import ROUTERS as ACCOUNT_ROUTERS
from workforce.modules.admin.router import ROUTERS as ADMIN_ROUTERS
from workforce.modules.attendance.router import ROUTERS as ATTENDANCE_ROUTERS
from workforce.modules.operations.router import ROUTERS as OPERATIONS_ROUTERS

ALL_ROUTERS = (
    OPERATIONS_ROUTERS
    + ACCOUNT_ROUTERS
    + ATTENDANCE_ROUTERS
    + ADMIN_ROUTERS
)


def include_all_routers(app: FastAPI) -> None:
    for router in ALL_ROUTERS:
        app.include_router(router)
