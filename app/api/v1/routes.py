from fastapi import APIRouter, Depends

router = APIRouter()

from .questions import router as questions_router
from .categories import router as categories_router
from .assessments import router as assessments_router
from .files import router as files_router
from .submissions import router as submissions_router
from .reports import router as reports_router
from .schemas import OrganizationClaims, PrincipalResponse
from app.core.logging import get_logger
from app.core.security import Principal, get_current_principal

logger = get_logger("sustainability.api")


@router.get("/health")
async def health_check():
    logger.debug("Health check endpoint called")
    return {"status": "ok", "version": "v1"}


@router.get("/me", response_model=PrincipalResponse, tags=["auth"])
async def whoami(principal: Principal = Depends(get_current_principal)):
    """The caller as resolved from the bearer token."""
    return PrincipalResponse(
        sub=principal.sub,
        preferred_username=principal.preferred_username,
        email=principal.email,
        organizations=[
            OrganizationClaims(
                org_id=org_id,
                name=membership.name,
                roles=sorted(membership.roles),
                categories=sorted(membership.categories),
            )
            for org_id, membership in sorted(principal.organizations.items())
        ],
        realm_roles=sorted(principal.realm_roles),
        is_super_user=principal.is_super_user,
        is_application_admin=principal.is_application_admin,
    )


# Question catalog
router.include_router(questions_router)

# Category catalog and organization categories
router.include_router(categories_router)

# Assessments, responses and the draft/finalize pipeline
router.include_router(assessments_router)

# Evidence files
router.include_router(files_router)

# Submissions and review
router.include_router(submissions_router)

# Reports
router.include_router(reports_router)
