"""Submission report endpoints."""
from typing import Optional
from fastapi import APIRouter, Depends
from uuid import UUID

from app.api.v1.schemas import (
    RecommendationStatusUpdate,
    ReportComplete,
    ReportFail,
    ReportGenerate,
    ReportListResponse,
    ReportResponse,
)
from app.core.context import RequestContext, get_request_context
from app.services import report_service

router = APIRouter(tags=["reports"])


@router.get("/submissions/{submission_id}/reports", response_model=ReportListResponse)
async def list_reports(
    submission_id: UUID,
    report_type: Optional[str] = None,
    ctx: RequestContext = Depends(get_request_context),
):
    reports = await report_service.list_reports(ctx, submission_id, report_type=report_type)
    return ReportListResponse(reports=reports)


@router.post("/submissions/{submission_id}/reports", response_model=ReportResponse, status_code=201)
async def generate_report(
    submission_id: UUID,
    payload: ReportGenerate,
    ctx: RequestContext = Depends(get_request_context),
):
    """Schedule a report; it stays ``generating`` until completed or failed."""
    report = await report_service.generate_report(ctx, submission_id, payload.report_type, payload.parameters)
    await ctx.db.commit()
    return report


@router.get("/reports", response_model=ReportListResponse)
async def list_org_reports(
    org_id: Optional[str] = None,
    report_type: Optional[str] = None,
    ctx: RequestContext = Depends(get_request_context),
):
    """Reports for every submission of the caller's organizations."""
    reports = await report_service.list_org_reports(ctx, org_id=org_id, report_type=report_type)
    return ReportListResponse(reports=reports)


@router.get("/reports/{report_id}", response_model=ReportResponse)
async def get_report(
    report_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
):
    return await report_service.get_report(ctx, report_id)


@router.delete("/reports/{report_id}", status_code=204)
async def delete_report(
    report_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
):
    await report_service.delete_report(ctx, report_id)
    await ctx.db.commit()


@router.post("/reports/{report_id}/complete", response_model=ReportResponse)
async def complete_report(
    report_id: UUID,
    payload: ReportComplete,
    ctx: RequestContext = Depends(get_request_context),
):
    report = await report_service.complete_report(ctx, report_id, payload.data)
    await ctx.db.commit()
    return report


@router.post("/reports/{report_id}/fail", response_model=ReportResponse)
async def fail_report(
    report_id: UUID,
    payload: ReportFail,
    ctx: RequestContext = Depends(get_request_context),
):
    report = await report_service.fail_report(ctx, report_id, payload.reason)
    await ctx.db.commit()
    return report


@router.put("/reports/{report_id}/recommendations/{recommendation_id}", response_model=ReportResponse)
async def update_recommendation_status(
    report_id: UUID,
    recommendation_id: str,
    payload: RecommendationStatusUpdate,
    ctx: RequestContext = Depends(get_request_context),
):
    report = await report_service.update_recommendation_status(ctx, report_id, recommendation_id, payload.status)
    await ctx.db.commit()
    return report
