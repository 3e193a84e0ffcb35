"""
Routers for Paystock
"""

from .admin import router as admin_router
from .catalog import router as catalog_router
from .payments import router as payments_router

__all__ = ["admin_router", "catalog_router", "payments_router"]
