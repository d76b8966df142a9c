"""Authorization decisions.

``permit`` is a pure function of (principal, operation, target); it never
touches the database or the network. Services gather the facts a decision
needs into a :class:`Target` and call :func:`authorize`.
"""
from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, Optional

from app.core.errors import Forbidden, InvariantViolation
from app.core.security import (
    ORGANIZATION_ADMIN,
    ORGANIZATION_USER,
    Principal,
)

# Capability that lets a non organization_user submit drafts
DRAFT_SUBMITTER = "submit_drafts"

FROZEN_MESSAGE = "assessment already submitted"
IN_USE_MESSAGE = "file is still attached to one or more responses"


class Operation(str, Enum):
    CATALOG_READ = "catalog.read"
    CATALOG_WRITE = "catalog.write"
    ORG_CATEGORY_ASSIGN = "org.category.assign"
    ASSESSMENT_CREATE = "assessment.create"
    ASSESSMENT_READ = "assessment.read"
    ASSESSMENT_UPDATE = "assessment.update"
    ASSESSMENT_DELETE = "assessment.delete"
    ASSESSMENT_SUBMIT = "assessment.submit"
    ASSESSMENT_FINALIZE = "assessment.finalize"
    RESPONSE_READ = "response.read"
    RESPONSE_WRITE = "response.write"
    RESPONSE_DELETE = "response.delete"
    FILE_UPLOAD = "file.upload"
    FILE_DOWNLOAD = "file.download"
    FILE_DELETE = "file.delete"
    FILE_ATTACH = "file.attach"
    FILE_DETACH = "file.detach"
    SUBMISSION_LIST = "submission.list"
    SUBMISSION_READ = "submission.read"
    SUBMISSION_REVIEW = "submission.review"
    SUBMISSION_DELETE = "submission.delete"
    REPORT_READ = "report.read"
    REPORT_GENERATE = "report.generate"
    REPORT_DELETE = "report.delete"
    REPORT_RECOMMENDATION_UPDATE = "report.recommendation.update"


class Decision(str, Enum):
    ALLOW = "allow"
    DENY = "deny"
    FROZEN = "frozen"
    IN_USE = "in_use"


@dataclass(frozen=True)
class Target:
    org_id: Optional[str] = None
    # An AssessmentSubmission exists for the assessment involved
    submitted: bool = False
    uploaded_by: Optional[str] = None
    link_count: int = 0
    # Question categories of the responses being submitted
    categories: FrozenSet[str] = frozenset()


# Operations that mutate an assessment or anything hanging off it
FREEZABLE = frozenset({
    Operation.ASSESSMENT_UPDATE,
    Operation.ASSESSMENT_DELETE,
    Operation.ASSESSMENT_SUBMIT,
    Operation.RESPONSE_WRITE,
    Operation.RESPONSE_DELETE,
    Operation.FILE_ATTACH,
    Operation.FILE_DETACH,
})

# Operations any member of the target organization may perform
MEMBER_OPERATIONS = frozenset({
    Operation.ASSESSMENT_READ,
    Operation.RESPONSE_READ,
    Operation.RESPONSE_WRITE,
    Operation.RESPONSE_DELETE,
    Operation.FILE_UPLOAD,
    Operation.FILE_DOWNLOAD,
    Operation.FILE_ATTACH,
    Operation.FILE_DETACH,
    Operation.SUBMISSION_READ,
    Operation.REPORT_READ,
})

# Operations reserved to the organization's admins
ORG_ADMIN_OPERATIONS = frozenset({
    Operation.ASSESSMENT_CREATE,
    Operation.ASSESSMENT_UPDATE,
    Operation.ASSESSMENT_DELETE,
    Operation.ASSESSMENT_FINALIZE,
    Operation.ORG_CATEGORY_ASSIGN,
    Operation.REPORT_GENERATE,
    Operation.REPORT_DELETE,
    Operation.REPORT_RECOMMENDATION_UPDATE,
})

# Operations reserved to platform administrators
PLATFORM_OPERATIONS = frozenset({
    Operation.SUBMISSION_REVIEW,
    Operation.SUBMISSION_DELETE,
})


def _authority(principal: Principal, operation: Operation, target: Target) -> Decision:
    if principal.is_super_user:
        return Decision.ALLOW

    if operation is Operation.CATALOG_READ:
        return Decision.ALLOW
    if operation is Operation.CATALOG_WRITE:
        return Decision.DENY

    app_admin = principal.is_application_admin
    if operation in PLATFORM_OPERATIONS:
        return Decision.ALLOW if app_admin else Decision.DENY
    if operation is Operation.SUBMISSION_LIST:
        # Scoped to the caller's organizations by the listing itself
        return Decision.ALLOW

    if operation is Operation.FILE_DELETE:
        return Decision.ALLOW if target.uploaded_by and target.uploaded_by == principal.sub else Decision.DENY

    # Everything below is scoped to target.org_id
    if not app_admin and not principal.is_member(target.org_id):
        return Decision.DENY

    roles = principal.roles_in(target.org_id)
    if operation is Operation.ASSESSMENT_SUBMIT:
        is_submitter = (
            app_admin
            or (ORGANIZATION_USER in roles and ORGANIZATION_ADMIN not in roles)
            or DRAFT_SUBMITTER in roles
            or DRAFT_SUBMITTER in principal.realm_roles
        )
        if not is_submitter:
            return Decision.DENY
        if not target.categories <= principal.categories_in(target.org_id):
            return Decision.DENY
        return Decision.ALLOW

    if operation in ORG_ADMIN_OPERATIONS:
        return Decision.ALLOW if app_admin or ORGANIZATION_ADMIN in roles else Decision.DENY

    if operation in MEMBER_OPERATIONS:
        return Decision.ALLOW

    return Decision.DENY


def permit(principal: Principal, operation: Operation, target: Optional[Target] = None) -> Decision:
    """Decide whether ``principal`` may perform ``operation`` on ``target``.

    Authority is checked first; a submitted assessment and a still-attached
    file then block mutation for every principal, super users included.
    """
    target = target or Target()
    decision = _authority(principal, operation, target)
    if decision is not Decision.ALLOW:
        return decision
    if operation in FREEZABLE and target.submitted:
        return Decision.FROZEN
    if operation is Operation.FILE_DELETE and target.link_count > 0:
        return Decision.IN_USE
    return Decision.ALLOW


def authorize(principal: Principal, operation: Operation, target: Optional[Target] = None) -> None:
    decision = permit(principal, operation, target)
    if decision is Decision.ALLOW:
        return
    if decision is Decision.FROZEN:
        raise InvariantViolation(FROZEN_MESSAGE)
    if decision is Decision.IN_USE:
        raise InvariantViolation(IN_USE_MESSAGE)
    if operation is Operation.ASSESSMENT_SUBMIT and target is not None and target.categories:
        missing = sorted(target.categories - principal.categories_in(target.org_id))
        if missing:
            raise Forbidden(f"category not permitted: {', '.join(missing)}")
    raise Forbidden(f"{operation.value} not permitted")
