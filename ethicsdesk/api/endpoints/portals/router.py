"""
Portal Router

Mounts the three portals under /portals.
"""
from fastapi import APIRouter

from ethicsdesk.api.endpoints.portals import ethics, operator, employee

router = APIRouter(prefix="/portals")
router.include_router(ethics.router)
router.include_router(operator.router)
router.include_router(employee.router)
