"""Admin console module router aggregation."""
from workforce.routers import admin_announcements, admin_attendance, admin_audit, admin_auth, admin_users

ROUTERS = [
    admin_auth.router,
    admin_users.router,
    admin_attendance.router,
    admin_announcements.router,
    admin_audit.router,
]
