"""
TenantContextResolver -- one agency per request, or nothing runs.

Responsibility:
    Resolves the single agency an inbound request is confined to and
    returns it as an explicit TenantContext.  Everything downstream receives
    ``context.agency_id`` as a parameter; nothing reads it from ambient
    state.

Architecture position:
    Kernel > Services.  Reads the (unscoped) agencies table through an
    unbound session; binds a ledger session only when asked to.

Resolution order (first hit wins):
    1. slug in the URL path
    2. verified custom portal domain (Host without port; platform domains
       are never looked up)
    3. ``X-Agency-Slug`` header
    4. ``agency_slug`` in the request body, then the query string
    5. ``agency_id`` claim of the authenticated user, when nothing above
       resolved

Invariants enforced:
    - No default tenant: an unresolved request raises TenantContextError.
    - An inactive agency is never returned (AgencyInactiveError).
    - When the request names one agency and the authentication claim
      another, the request is rejected (TenantBindingError).
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from letably_config.schema import TenancyConfig
from letably_kernel.db.tenant import bind_agency
from letably_kernel.domain.dtos import TenantContext
from letably_kernel.exceptions import (
    AgencyInactiveError,
    TenantBindingError,
    TenantContextError,
)
from letably_kernel.logging_config import get_logger
from letably_kernel.models.agency import Agency

logger = get_logger("services.tenant_context")

AGENCY_SLUG_HEADER = "x-agency-slug"


@dataclass(frozen=True)
class InboundRequest:
    """The parts of an HTTP request the resolver looks at."""

    host: str | None = None
    url_slug: str | None = None
    headers: Mapping[str, str] = field(default_factory=dict)
    query: Mapping[str, Any] = field(default_factory=dict)
    body: Mapping[str, Any] = field(default_factory=dict)
    auth_claims: Mapping[str, Any] | None = None

    def header(self, name: str) -> str | None:
        wanted = name.lower()
        for key, value in self.headers.items():
            if key.lower() == wanted:
                return value
        return None


class TenantContextResolver:
    """Resolves requests to agencies.  Holds no per-request state."""

    def __init__(self, session: Session, config: TenancyConfig | None = None):
        self.session = session
        self.config = config or TenancyConfig()

    def resolve(self, request: InboundRequest) -> TenantContext:
        """
        Resolve ``request`` to exactly one active agency.

        Raises:
            AgencyInactiveError: the named agency is deactivated.
            TenantBindingError: the auth claim names a different agency.
            TenantContextError: nothing identifies an agency.
        """
        agency, source = self._from_request(request)
        claim = self._claimed_agency_id(request)

        if agency is None and claim is not None:
            agency = self.session.get(Agency, claim)
            source = "auth_claim"
            if agency is None:
                raise TenantContextError("authenticated agency does not exist")

        if agency is None:
            logger.warning("tenant_unresolved", extra={"host": request.host})
            raise TenantContextError(
                "include agency_slug in the URL or request"
            )

        if claim is not None and claim != agency.id:
            logger.warning(
                "tenant_claim_mismatch",
                extra={
                    "agency_id": str(agency.id),
                    "claim_agency_id": str(claim),
                    "source": source,
                },
            )
            raise TenantBindingError(
                str(claim),
                str(agency.id),
                "authenticated user belongs to a different agency",
            )

        if not agency.is_active:
            logger.warning(
                "tenant_inactive",
                extra={"agency_id": str(agency.id), "source": source},
            )
            raise AgencyInactiveError(str(agency.id))

        context = TenantContext(agency_id=agency.id, agency_slug=agency.slug, source=source)
        logger.debug(
            "tenant_resolved",
            extra={"agency_id": str(agency.id), "source": source},
        )
        return context

    def resolve_and_bind(self, request: InboundRequest, session: Session) -> TenantContext:
        """Resolve, then bind ``session`` to the resolved agency."""
        context = self.resolve(request)
        bind_agency(session, context.agency_id)
        return context

    # ------------------------------------------------------------------

    def _from_request(self, request: InboundRequest) -> tuple[Agency | None, str]:
        if request.url_slug:
            agency = self._by_slug(request.url_slug)
            if agency is not None:
                return agency, "url_slug"

        host = self._host(request.host)
        if host and not self._is_platform_host(host):
            agency = self._by_domain(host)
            if agency is not None:
                return agency, "custom_domain"

        header_slug = request.header(AGENCY_SLUG_HEADER)
        if header_slug:
            agency = self._by_slug(header_slug)
            if agency is not None:
                return agency, "header"

        for source, params in (("body", request.body), ("query", request.query)):
            slug = params.get("agency_slug") if params else None
            if slug:
                agency = self._by_slug(str(slug))
                if agency is not None:
                    return agency, source
                break

        return None, ""

    @staticmethod
    def _host(raw: str | None) -> str | None:
        if not raw:
            return None
        return raw.split(":", 1)[0].strip().lower() or None

    def _is_platform_host(self, host: str) -> bool:
        return any(
            host == domain or host.endswith("." + domain)
            for domain in self.config.main_domains
        )

    @staticmethod
    def _claimed_agency_id(request: InboundRequest) -> UUID | None:
        if not request.auth_claims:
            return None
        raw = request.auth_claims.get("agency_id")
        if raw is None:
            return None
        if isinstance(raw, UUID):
            return raw
        try:
            return UUID(str(raw))
        except ValueError:
            raise TenantContextError("authentication claim carries a malformed agency id") from None

    def _by_slug(self, slug: str) -> Agency | None:
        return self.session.execute(
            select(Agency).where(Agency.slug == slug.strip())
        ).scalar_one_or_none()

    def _by_domain(self, host: str) -> Agency | None:
        return self.session.execute(
            select(Agency).where(
                Agency.custom_portal_domain == host,
                Agency.custom_domain_verified.is_(True),
            )
        ).scalar_one_or_none()
