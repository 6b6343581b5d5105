"""
Pydantic Schemas - Request/Response Validation

All API request and response schemas in one file for simplicity.
Listing view models serialize with camelCase aliases (daysLeft,
applicationCount, ...) because that is what the browser client consumes.
"""

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import Optional, List, Dict, Any, Type
from datetime import datetime, date
from enum import Enum


# ============================================================
# ENUMS
# ============================================================

class TabType(str, Enum):
    programmes = "programmes"
    scholarships = "scholarships"
    research = "research"


class SortOption(str, Enum):
    """Sort keys accepted from the explore page URL."""
    most_popular = "most-popular"
    newest = "newest"
    match_score = "match-score"
    deadline = "deadline"


class ListingSort(str, Enum):
    """Every sort key the listing endpoints understand."""
    most_popular = "most-popular"
    newest = "newest"
    oldest = "oldest"
    match_score = "match-score"
    deadline = "deadline"
    price_low = "price-low"
    price_high = "price-high"
    amount_high = "amount-high"
    amount_low = "amount-low"
    alphabetical = "alphabetical"


class PostStatus(str, Enum):
    draft = "DRAFT"
    submitted = "SUBMITTED"
    published = "PUBLISHED"
    closed = "CLOSED"
    rejected = "REJECTED"
    deleted = "DELETED"


class NotificationType(str, Enum):
    PROFILE_CREATED = "PROFILE_CREATED"
    PAYMENT_DEADLINE = "PAYMENT_DEADLINE"
    APPLICATION_STATUS_UPDATE = "APPLICATION_STATUS_UPDATE"
    DOCUMENT_UPDATED = "DOCUMENT_UPDATED"
    PAYMENT_SUCCESS = "PAYMENT_SUCCESS"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    SUBSCRIPTION_EXPIRING = "SUBSCRIPTION_EXPIRING"
    WELCOME = "WELCOME"
    USER_BANNED = "USER_BANNED"
    SESSION_REVOKED = "SESSION_REVOKED"
    WISHLIST_DEADLINE = "WISHLIST_DEADLINE"
    PASSWORD_CHANGED = "PASSWORD_CHANGED"
    ACCOUNT_DELETED = "ACCOUNT_DELETED"
    SUPPORT_REPLY = "SUPPORT_REPLY"
    POST_STATUS_UPDATE = "POST_STATUS_UPDATE"


class DocumentType(str, Enum):
    cv_resume = "cv-resume"
    language_certificates = "language-certificates"
    degree_certificates = "degree-certificates"
    transcripts = "transcripts"
    application_documents = "application-documents"
    institution_verification = "institution-verification"


class ValidationAction(str, Enum):
    accept = "accept"
    reupload = "reupload"
    review = "review"


# ============================================================
# COMMON
# ============================================================

class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    details: Optional[Any] = None


# ============================================================
# EXPLORE / LISTING SCHEMAS
# ============================================================

class ProgramView(CamelModel):
    id: str
    title: str
    description: str
    university: str
    logo: str
    field: str
    country: str
    date: str
    days_left: int
    price: str
    match: str
    funding: str
    attendance: str
    duration: str = ""
    degree_level: str = ""
    application_count: int = 0
    is_in_wishlist: bool = False


class ScholarshipView(CamelModel):
    id: str
    title: str
    description: str
    provider: str
    university: str
    essay_required: str
    country: str
    date: str
    days_left: int
    amount: str
    match: str
    degree_level: str = ""
    application_count: int = 0
    is_in_wishlist: bool = False


class ResearchLabView(CamelModel):
    id: str
    title: str
    description: str
    professor: str
    field: str
    country: str
    position: str
    contract_type: str = ""
    attendance: str = ""
    min_salary: float = 0
    max_salary: float = 0
    date: str
    days_left: int
    match: str
    degree_level: str = ""
    application_count: int = 0
    is_in_wishlist: bool = False


class PaginationMeta(CamelModel):
    total: int
    page: int
    limit: int
    total_pages: int


class AvailableFilters(CamelModel):
    countries: List[str] = []
    disciplines: List[str] = []
    degree_levels: List[str] = []
    attendance_types: List[str] = []
    essay_required: List[str] = []
    contract_types: List[str] = []
    job_types: List[str] = []
    subdisciplines: Dict[str, List[str]] = {}


class ExploreResponse(CamelModel):
    success: bool = True
    data: List[Any]
    meta: PaginationMeta
    available_filters: AvailableFilters


class QueryStateResponse(ExploreResponse):
    """Explore listing resolved from a full page URL query."""
    tab: TabType
    sort: SortOption
    query: str


class PostDetailResponse(BaseModel):
    success: bool = True
    data: Dict[str, Any]


# ============================================================
# INSTITUTION SCHEMAS
# ============================================================

class DisciplineRef(CamelModel):
    name: str
    discipline_name: str


class InstitutionDetail(BaseModel):
    id: str
    name: str
    abbreviation: Optional[str] = None
    type: Optional[str] = None
    country: Optional[str] = None
    address: Optional[str] = None
    email: Optional[str] = None
    website: Optional[str] = None
    hotline: Optional[str] = None
    logo: Optional[str] = None
    coverImage: Optional[str] = None
    about: Optional[str] = None
    disciplines: List[DisciplineRef] = []


class InstitutionResponse(BaseModel):
    success: bool = True
    institution: InstitutionDetail


class InstitutionPagination(BaseModel):
    currentPage: int
    totalPages: int
    totalItems: int
    itemsPerPage: int
    hasNextPage: bool
    hasPrevPage: bool


class InstitutionPostsResponse(BaseModel):
    success: bool = True
    data: List[Any]
    pagination: InstitutionPagination


# ============================================================
# POST MANAGEMENT SCHEMAS
# ============================================================

class FileRequirement(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None


class PostBase(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    start_date: date
    application_deadline: date
    country: Optional[str] = None
    location: Optional[str] = None
    degree_level: Optional[str] = None
    description: Optional[str] = None
    other_info: Optional[str] = None
    subdisciplines: List[str] = []
    file_requirements: List[FileRequirement] = []
    status: PostStatus = PostStatus.draft

    @field_validator("application_deadline")
    @classmethod
    def deadline_after_start(cls, v, info):
        start = info.data.get("start_date")
        if start and v < start:
            raise ValueError("application_deadline must not be before start_date")
        return v


class ScholarshipCreate(PostBase):
    scholarship_type: List[str] = []
    number: Optional[int] = Field(None, ge=1)
    grant: Optional[str] = None
    eligibility: Optional[str] = None
    award_amount: Optional[float] = Field(None, ge=0)
    award_duration: Optional[str] = None


class ScholarshipUpdate(ScholarshipCreate):
    post_id: str


class SalaryRange(BaseModel):
    min: Optional[float] = Field(None, ge=0)
    max: Optional[float] = Field(None, ge=0)
    description: Optional[str] = None


class ResearchCreate(PostBase):
    research_fields: List[str] = []
    contract_type: Optional[str] = None
    attendance: Optional[str] = None
    job_type: Optional[str] = None
    salary: SalaryRange = SalaryRange()
    benefit: Optional[str] = None
    main_responsibility: Optional[str] = None
    qualification_requirement: Optional[str] = None
    experience_requirement: Optional[str] = None
    assessment_criteria: Optional[str] = None
    other_requirement: Optional[str] = None
    professor_name: Optional[str] = None
    lab_name: Optional[str] = None


class ResearchUpdate(ResearchCreate):
    post_id: str


class PostMutationResponse(BaseModel):
    success: bool = True
    post_id: str
    status: PostStatus
    message: str


# ============================================================
# NOTIFICATION SCHEMAS
# ============================================================

class ProfileCreatedMeta(CamelModel):
    profile_id: str
    first_name: str
    last_name: str
    role: str


class PaymentDeadlineMeta(CamelModel):
    subscription_id: str
    plan_name: str
    deadline_date: str
    amount: float
    currency: str


class ApplicationStatusMeta(CamelModel):
    application_id: str
    program_name: str
    old_status: str
    new_status: str
    institution_name: str
    message: Optional[str] = None


class DocumentUpdatedMeta(CamelModel):
    application_id: str
    program_name: str
    applicant_name: str
    institution_name: str
    document_count: int


class PaymentSuccessMeta(CamelModel):
    subscription_id: str
    plan_name: str
    amount: float
    currency: str
    transaction_id: str


class PaymentFailedMeta(CamelModel):
    subscription_id: str
    plan_name: str
    amount: float
    currency: str
    failure_reason: str


class SubscriptionExpiringMeta(CamelModel):
    subscription_id: str
    plan_name: str
    expiry_date: str
    days_remaining: int


class NameMeta(CamelModel):
    first_name: str
    last_name: str


class UserBannedMeta(NameMeta):
    reason: str
    banned_by: str
    banned_until: Optional[str] = None


class SessionRevokedMeta(NameMeta):
    reason: str
    revoked_by: str
    device_info: Optional[str] = None


class WishlistDeadlineMeta(CamelModel):
    post_id: str
    post_title: str
    deadline_date: str
    days_remaining: int
    post_type: Optional[str] = None  # programme | scholarship | research-lab
    institution_name: Optional[str] = None


class PasswordChangedMeta(NameMeta):
    change_time: str
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


class AccountDeletedMeta(NameMeta):
    deletion_time: str


class SupportReplyMeta(NameMeta):
    support_id: str
    original_subject: str
    original_message: str
    reply_message: str
    replied_by: str
    replied_at: str


class PostStatusUpdateMeta(CamelModel):
    post_id: str
    post_title: str
    post_type: str  # Program | Scholarship | Research Lab
    institution_name: str
    old_status: str
    new_status: str
    rejection_reason: Optional[str] = None
    post_url: str


METADATA_MODELS: Dict[NotificationType, Type[BaseModel]] = {
    NotificationType.PROFILE_CREATED: ProfileCreatedMeta,
    NotificationType.PAYMENT_DEADLINE: PaymentDeadlineMeta,
    NotificationType.APPLICATION_STATUS_UPDATE: ApplicationStatusMeta,
    NotificationType.DOCUMENT_UPDATED: DocumentUpdatedMeta,
    NotificationType.PAYMENT_SUCCESS: PaymentSuccessMeta,
    NotificationType.PAYMENT_FAILED: PaymentFailedMeta,
    NotificationType.SUBSCRIPTION_EXPIRING: SubscriptionExpiringMeta,
    NotificationType.WELCOME: NameMeta,
    NotificationType.USER_BANNED: UserBannedMeta,
    NotificationType.SESSION_REVOKED: SessionRevokedMeta,
    NotificationType.WISHLIST_DEADLINE: WishlistDeadlineMeta,
    NotificationType.PASSWORD_CHANGED: PasswordChangedMeta,
    NotificationType.ACCOUNT_DELETED: AccountDeletedMeta,
    NotificationType.SUPPORT_REPLY: SupportReplyMeta,
    NotificationType.POST_STATUS_UPDATE: PostStatusUpdateMeta,
}


class NotificationMessage(CamelModel):
    """
    A queued notification event.

    The wire format is the camelCase JSON the producers enqueue:
    {id, type, userId, userEmail, timestamp, metadata}.
    """
    id: str
    type: NotificationType
    user_id: str
    user_email: str
    timestamp: str
    metadata: Dict[str, Any] = {}

    def typed_metadata(self) -> BaseModel:
        """Validate metadata against the model registered for this type."""
        return METADATA_MODELS[self.type].model_validate(self.metadata)


class NotificationSettingsPayload(BaseModel):
    applicationStatus: bool = True
    wishlistDeadline: bool = True
    payment: bool = True


class ProcessResponse(BaseModel):
    success: bool = True
    message: str
    processed: Dict[str, int] = {}


class WishlistCronResponse(BaseModel):
    success: bool = True
    message: str
    notificationsSent: int
    errors: Optional[List[str]] = None


class TestEmailRequest(BaseModel):
    type: str
    to: EmailStr


# ============================================================
# SUPPORT SCHEMAS
# ============================================================

class SupportRequest(BaseModel):
    problemType: str = "other"
    question: str
    email: Optional[EmailStr] = None

    @field_validator("question")
    @classmethod
    def question_not_blank(cls, v):
        if not v or not v.strip():
            raise ValueError("Question is required")
        return v.strip()


class SupportResponse(BaseModel):
    success: bool = True
    stored: bool
    id: Optional[str] = None


# ============================================================
# FILE VALIDATION SCHEMAS
# ============================================================

class ValidationResult(BaseModel):
    isValid: bool
    confidence: float = Field(..., ge=0, le=1)
    reasoning: str
    suggestions: List[str] = []
    action: ValidationAction
    detectedType: Optional[str] = None


class FileValidationResponse(BaseModel):
    success: bool = True
    fileName: str
    expectedType: DocumentType
    displayName: str
    result: ValidationResult
    validatedAt: datetime
