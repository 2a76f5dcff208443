"""API routers."""
from .alerts import incidents_router, router as alerts_router
from .applications import groups_router, router as applications_router
from .contacts import groups_router as contact_groups_router, router as contacts_router
from .data import router as data_router
from .monitors import router as monitors_router
from .settings import router as settings_router
from .status import router as status_router, ws_router

__all__ = [
    "alerts_router",
    "applications_router",
    "contact_groups_router",
    "contacts_router",
    "data_router",
    "groups_router",
    "incidents_router",
    "monitors_router",
    "settings_router",
    "status_router",
    "ws_router",
]
