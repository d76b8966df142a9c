"""
Category catalog and the categories each organization has elected.
"""
from typing import Optional, Sequence
from uuid import UUID

from sqlalchemy import delete, exists, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload

from app.core.context import RequestContext
from app.core.errors import BadInput, Conflict, InvariantViolation, NotFound
from app.core.logging import get_logger
from app.core.permissions import Operation, Target, authorize
from app.db.models import CategoryCatalog, OrganizationCategory, now

logger = get_logger("sustainability.services.categories")

TOTAL_WEIGHT = 100


def _require_name(name) -> str:
    if not isinstance(name, str) or not name.strip():
        raise BadInput("Category name cannot be empty")
    return name.strip()


async def _load_category(ctx: RequestContext, catalog_id: UUID) -> CategoryCatalog:
    category = await ctx.db.get(CategoryCatalog, catalog_id)
    if category is None:
        raise NotFound("Category not found")
    return category


async def list_categories(ctx: RequestContext, active_only: bool = False) -> list[CategoryCatalog]:
    authorize(ctx.principal, Operation.CATALOG_READ)
    stmt = select(CategoryCatalog).order_by(CategoryCatalog.name)
    if active_only:
        stmt = stmt.where(CategoryCatalog.is_active.is_(True))
    return list((await ctx.db.execute(stmt)).scalars().all())


async def get_category(ctx: RequestContext, catalog_id: UUID) -> CategoryCatalog:
    authorize(ctx.principal, Operation.CATALOG_READ)
    return await _load_category(ctx, catalog_id)


async def create_category(
    ctx: RequestContext,
    name: str,
    template_id: str,
    description: Optional[str] = None,
    is_active: bool = True,
) -> CategoryCatalog:
    authorize(ctx.principal, Operation.CATALOG_WRITE)
    if not template_id:
        raise BadInput("Category template_id cannot be empty")
    category = CategoryCatalog(
        name=_require_name(name),
        description=description,
        template_id=template_id,
        is_active=is_active,
        created_at=now(),
        updated_at=now(),
    )
    try:
        async with ctx.db.begin_nested():
            ctx.db.add(category)
            await ctx.db.flush()
    except IntegrityError:
        raise Conflict(f"Category '{category.name}' already exists")
    logger.info("Created catalog category %s (%s)", category.id, category.name)
    return category


async def update_category(
    ctx: RequestContext,
    catalog_id: UUID,
    name: Optional[str] = None,
    description: Optional[str] = None,
    template_id: Optional[str] = None,
    is_active: Optional[bool] = None,
) -> CategoryCatalog:
    authorize(ctx.principal, Operation.CATALOG_WRITE)
    category = await _load_category(ctx, catalog_id)
    if name is not None:
        name = _require_name(name)
        taken = await ctx.db.scalar(
            select(exists().where(CategoryCatalog.name == name, CategoryCatalog.id != catalog_id))
        )
        if taken:
            raise Conflict(f"Category '{name}' already exists")
    if template_id is not None and not template_id:
        raise BadInput("Category template_id cannot be empty")

    try:
        async with ctx.db.begin_nested():
            if name is not None:
                category.name = name
            if description is not None:
                category.description = description
            if template_id is not None:
                category.template_id = template_id
            if is_active is not None:
                category.is_active = is_active
            category.updated_at = now()
            await ctx.db.flush()
    except IntegrityError:
        raise Conflict(f"Category '{name}' already exists")
    logger.info("Updated catalog category %s", catalog_id)
    return category


async def delete_category(ctx: RequestContext, catalog_id: UUID) -> None:
    authorize(ctx.principal, Operation.CATALOG_WRITE)
    category = await _load_category(ctx, catalog_id)
    elected = await ctx.db.scalar(select(exists().where(OrganizationCategory.catalog_id == catalog_id)))
    if elected:
        raise InvariantViolation("Cannot delete category: it is assigned to one or more organizations")
    await ctx.db.delete(category)
    await ctx.db.flush()
    logger.info("Deleted catalog category %s", catalog_id)


def split_weights(count: int, weights: Optional[Sequence[int]] = None) -> list[int]:
    """Weights for ``count`` categories summing to 100.

    Without explicit weights the points are shared equally and the
    remainder goes to the first category. Every category carries at least
    one point, so at most 100 categories can be assigned.
    """
    if count > TOTAL_WEIGHT:
        raise BadInput(f"At most {TOTAL_WEIGHT} categories can be assigned")
    if weights is None:
        if count == 0:
            return []
        share, remainder = divmod(TOTAL_WEIGHT, count)
        return [share + remainder] + [share] * (count - 1)
    weights = list(weights)
    if len(weights) != count:
        raise BadInput("Number of weights must match number of categories")
    if any(w < 1 for w in weights):
        raise BadInput("Weight must be between 1 and 100")
    if sum(weights) != TOTAL_WEIGHT:
        raise BadInput(f"Weights must sum to {TOTAL_WEIGHT}")
    return weights


async def list_org_categories(ctx: RequestContext, org_id: str) -> list[OrganizationCategory]:
    authorize(ctx.principal, Operation.ASSESSMENT_READ, Target(org_id=org_id))
    stmt = (
        select(OrganizationCategory)
        .where(OrganizationCategory.org_id == org_id)
        .options(selectinload(OrganizationCategory.catalog))
        .order_by(OrganizationCategory.order)
        .execution_options(populate_existing=True)
    )
    return list((await ctx.db.execute(stmt)).scalars().all())


async def assign_org_categories(
    ctx: RequestContext,
    org_id: str,
    catalog_ids: Sequence[UUID],
    weights: Optional[Sequence[int]] = None,
) -> list[OrganizationCategory]:
    """Replace the organization's elected categories."""
    authorize(ctx.principal, Operation.ORG_CATEGORY_ASSIGN, Target(org_id=org_id))
    catalog_ids = list(catalog_ids)
    if len(set(catalog_ids)) != len(catalog_ids):
        raise BadInput("Duplicate category in assignment")
    weights = split_weights(len(catalog_ids), weights)

    if catalog_ids:
        found = (
            await ctx.db.execute(select(CategoryCatalog).where(CategoryCatalog.id.in_(catalog_ids)))
        ).scalars().all()
        by_id = {c.id: c for c in found}
        for catalog_id in catalog_ids:
            category = by_id.get(catalog_id)
            if category is None:
                raise NotFound(f"Category {catalog_id} not found")
            if not category.is_active:
                raise BadInput(f"Category '{category.name}' is not active")

    await ctx.db.execute(delete(OrganizationCategory).where(OrganizationCategory.org_id == org_id))
    for position, (catalog_id, weight) in enumerate(zip(catalog_ids, weights)):
        ctx.db.add(OrganizationCategory(
            org_id=org_id,
            catalog_id=catalog_id,
            weight=weight,
            order=position + 1,
            created_at=now(),
            updated_at=now(),
        ))
    await ctx.db.flush()
    logger.info("Organization %s now has %d categories", org_id, len(catalog_ids))
    return await list_org_categories(ctx, org_id)


async def update_org_category(
    ctx: RequestContext,
    org_id: str,
    org_cat_id: UUID,
    weight: Optional[int] = None,
    order: Optional[int] = None,
) -> OrganizationCategory:
    authorize(ctx.principal, Operation.ORG_CATEGORY_ASSIGN, Target(org_id=org_id))
    org_category = await ctx.db.get(OrganizationCategory, org_cat_id)
    if org_category is None or org_category.org_id != org_id:
        raise NotFound("Organization category not found")
    if weight is not None:
        if not 1 <= weight <= TOTAL_WEIGHT:
            raise BadInput("Weight must be between 1 and 100")
        org_category.weight = weight
    if order is not None:
        if order < 1:
            raise BadInput("Order must be positive")
        org_category.order = order
    org_category.updated_at = now()
    await ctx.db.flush()
    await ctx.db.refresh(org_category, attribute_names=["catalog"])
    return org_category
