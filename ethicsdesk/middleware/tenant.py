"""
Tenant Middleware

Resolves the organization a request is addressed to and stores it on
request.state. Resolution order:

1. X-Organization-Slug header (API clients)
2. Subdomain of the Host header: acme.ethicsdesk.com -> "acme"
3. X-Organization-ID header

This only identifies the organization. The tenant context of the
database session is bound later, by the authentication dependency, from
the authenticated user; a token issued for a different organization is
rejected there.

The organizations table is not tenant-scoped, so the lookup here needs no
context.
"""
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from sqlalchemy.orm import Session
from typing import Optional
import logging

from ethicsdesk.database import SessionLocal
from ethicsdesk.models.organization import Organization

logger = logging.getLogger(__name__)

# Hosts like www.example.com are not organization subdomains
NON_TENANT_SUBDOMAINS = {"www", "api", "app"}


class TenantMiddleware(BaseHTTPMiddleware):
    """
    Middleware to extract and validate the organization from the request.

    Paths that resolve their organization some other way are excluded:
    login names it in the body, refresh carries it in the token and the
    public ethics portal takes it from the URL.
    """

    def __init__(self, app):
        super().__init__(app)
        self.excluded_paths = [
            "/docs",
            "/redoc",
            "/openapi.json",
            "/health",
            "/api/v1/auth/login",
            "/api/v1/auth/refresh",
            "/api/v1/portals/ethics/",
        ]

    async def dispatch(self, request: Request, call_next):
        if any(request.url.path.startswith(path) for path in self.excluded_paths):
            return await call_next(request)

        identifier = self._extract_identifier(request)
        if not identifier:
            logger.warning(f"No organization identifier in request: {request.url}")
            return JSONResponse(
                status_code=400,
                content={"detail": "Organization identifier required (subdomain or X-Organization-Slug header)"}
            )

        db = SessionLocal()
        try:
            organization = self._load_organization(db, identifier)
        finally:
            db.close()

        if not organization:
            logger.warning(f"Organization not found: {identifier}")
            return JSONResponse(
                status_code=404,
                content={"detail": f"Organization not found: {identifier}"}
            )

        if not organization.is_active:
            logger.warning(f"Inactive organization attempted access: {identifier}")
            return JSONResponse(
                status_code=403,
                content={"detail": "Organization account is inactive"}
            )

        request.state.organization = organization
        request.state.organization_id = organization.id
        logger.debug(f"Request for organization: {organization.slug} ({organization.id})")

        return await call_next(request)

    def _extract_identifier(self, request: Request) -> Optional[str]:
        slug = request.headers.get("X-Organization-Slug")
        if slug:
            return slug

        host = request.headers.get("Host", "").split(":")[0]
        parts = host.split(".")
        if len(parts) >= 3 and parts[0] not in NON_TENANT_SUBDOMAINS:
            return parts[0]

        return request.headers.get("X-Organization-ID")

    def _load_organization(self, db: Session, identifier: str) -> Optional[Organization]:
        """Slug first, then id."""
        organization = db.query(Organization).filter(Organization.slug == identifier).first()
        if organization:
            return organization
        return db.query(Organization).filter(Organization.id == identifier).first()
