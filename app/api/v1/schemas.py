"""Pydantic schemas for API request/response models."""
from typing import Optional, List, Any, Dict
from pydantic import AliasChoices, BaseModel, Field, ConfigDict
from uuid import UUID
from datetime import datetime


# Principal
class OrganizationClaims(BaseModel):
    org_id: str
    name: Optional[str] = None
    roles: List[str] = Field(default_factory=list)
    categories: List[str] = Field(default_factory=list)


class PrincipalResponse(BaseModel):
    sub: str
    preferred_username: str
    email: Optional[str] = None
    organizations: List[OrganizationClaims] = Field(default_factory=list)
    realm_roles: List[str] = Field(default_factory=list)
    is_super_user: bool = False
    is_application_admin: bool = False


# Question schemas
class QuestionCreate(BaseModel):
    category: str
    text: Dict[str, str]
    weight: float = 1.0


class QuestionUpdate(BaseModel):
    category: Optional[str] = None
    text: Dict[str, str]
    weight: float = 1.0


class QuestionRevisionResponse(BaseModel):
    id: UUID
    question_id: UUID
    text: Dict[str, str]
    weight: float
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class QuestionResponse(BaseModel):
    question_id: UUID
    category: str
    created_at: datetime
    revision: QuestionRevisionResponse


class QuestionListResponse(BaseModel):
    questions: List[QuestionResponse]


# Category schemas
class CategoryBase(BaseModel):
    name: str
    description: Optional[str] = None
    template_id: str
    is_active: bool = True


class CategoryCreate(CategoryBase):
    pass


class CategoryUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    template_id: Optional[str] = None
    is_active: Optional[bool] = None


class CategoryResponse(CategoryBase):
    id: UUID
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class OrganizationCategoryAssign(BaseModel):
    catalog_ids: List[UUID]
    weights: Optional[List[int]] = None


class OrganizationCategoryUpdate(BaseModel):
    weight: Optional[int] = None
    order: Optional[int] = None


class OrganizationCategoryResponse(BaseModel):
    id: UUID
    org_id: str
    catalog_id: UUID
    weight: int
    order: int
    created_at: datetime
    updated_at: datetime
    catalog: Optional[CategoryResponse] = None

    model_config = ConfigDict(from_attributes=True)


# File schemas
class FileResponse(BaseModel):
    id: UUID
    org_id: str
    meta_data: dict = Field(default_factory=dict)
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# Assessment / response schemas
class AssessmentCreate(BaseModel):
    org_id: Optional[str] = None
    language: str
    name: str


class AssessmentUpdate(BaseModel):
    name: Optional[str] = None
    language: Optional[str] = None


class ResponseItem(BaseModel):
    id: UUID
    assessment_id: UUID
    revision_id: UUID
    text: str
    version: int
    updated_by: Optional[str] = None
    updated_at: datetime
    files: List[FileResponse] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class AssessmentResponse(BaseModel):
    id: UUID
    org_id: str
    language: str
    name: str
    status: str
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class AssessmentDetailResponse(AssessmentResponse):
    responses: List[ResponseItem] = Field(default_factory=list)


class AssessmentListResponse(BaseModel):
    assessments: List[AssessmentResponse]


class AnswerCreate(BaseModel):
    revision_id: UUID
    text: str


class ResponseUpdate(BaseModel):
    text: str
    version: int = Field(..., description="Version the client last saw")


class ResponseListResponse(BaseModel):
    responses: List[ResponseItem]


# Submission schemas
class TempSubmissionResponse(BaseModel):
    assessment_id: UUID
    org_id: str
    content: Dict[str, Any]
    submitted_at: datetime
    status: str
    reviewed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class SubmissionResponse(BaseModel):
    submission_id: UUID = Field(validation_alias=AliasChoices("id", "submission_id"))
    org_id: str
    content: Dict[str, Any]
    submitted_at: datetime
    status: str
    reviewed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class SubmissionListResponse(BaseModel):
    submissions: List[SubmissionResponse]


class ReviewRequest(BaseModel):
    status: str


# Report schemas
class ReportGenerate(BaseModel):
    report_type: str
    parameters: Optional[Dict[str, Any]] = None


class ReportComplete(BaseModel):
    data: Any


class ReportFail(BaseModel):
    reason: str


class RecommendationStatusUpdate(BaseModel):
    status: str


class ReportResponse(BaseModel):
    id: UUID
    submission_id: UUID
    report_type: str
    status: str
    generated_at: datetime
    data: Optional[Any] = None

    model_config = ConfigDict(from_attributes=True)


class ReportListResponse(BaseModel):
    reports: List[ReportResponse]
