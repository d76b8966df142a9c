"""Category catalog and organization category endpoints."""
from typing import List
from fastapi import APIRouter, Depends
from uuid import UUID

from app.api.v1.schemas import (
    CategoryCreate,
    CategoryUpdate,
    CategoryResponse,
    OrganizationCategoryAssign,
    OrganizationCategoryUpdate,
    OrganizationCategoryResponse,
)
from app.core.context import RequestContext, get_request_context
from app.services import category_service

router = APIRouter(tags=["categories"])


@router.get("/categories", response_model=List[CategoryResponse])
async def list_categories(
    active_only: bool = False,
    ctx: RequestContext = Depends(get_request_context),
):
    return await category_service.list_categories(ctx, active_only=active_only)


@router.post("/categories", response_model=CategoryResponse, status_code=201)
async def create_category(
    payload: CategoryCreate,
    ctx: RequestContext = Depends(get_request_context),
):
    category = await category_service.create_category(
        ctx,
        name=payload.name,
        template_id=payload.template_id,
        description=payload.description,
        is_active=payload.is_active,
    )
    await ctx.db.commit()
    return category


@router.get("/categories/{catalog_id}", response_model=CategoryResponse)
async def get_category(
    catalog_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
):
    return await category_service.get_category(ctx, catalog_id)


@router.put("/categories/{catalog_id}", response_model=CategoryResponse)
async def update_category(
    catalog_id: UUID,
    payload: CategoryUpdate,
    ctx: RequestContext = Depends(get_request_context),
):
    category = await category_service.update_category(ctx, catalog_id, **payload.model_dump(exclude_unset=True))
    await ctx.db.commit()
    return category


@router.delete("/categories/{catalog_id}", status_code=204)
async def delete_category(
    catalog_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
):
    await category_service.delete_category(ctx, catalog_id)
    await ctx.db.commit()


@router.get("/organizations/{org_id}/categories", response_model=List[OrganizationCategoryResponse])
async def list_organization_categories(
    org_id: str,
    ctx: RequestContext = Depends(get_request_context),
):
    return await category_service.list_org_categories(ctx, org_id)


@router.put("/organizations/{org_id}/categories", response_model=List[OrganizationCategoryResponse])
async def assign_organization_categories(
    org_id: str,
    payload: OrganizationCategoryAssign,
    ctx: RequestContext = Depends(get_request_context),
):
    """Replace the organization's categories. Weights default to an equal split of 100."""
    assigned = await category_service.assign_org_categories(ctx, org_id, payload.catalog_ids, payload.weights)
    await ctx.db.commit()
    return assigned


@router.patch("/organizations/{org_id}/categories/{org_cat_id}", response_model=OrganizationCategoryResponse)
async def update_organization_category(
    org_id: str,
    org_cat_id: UUID,
    payload: OrganizationCategoryUpdate,
    ctx: RequestContext = Depends(get_request_context),
):
    org_category = await category_service.update_org_category(
        ctx, org_id, org_cat_id, weight=payload.weight, order=payload.order
    )
    await ctx.db.commit()
    return org_category
