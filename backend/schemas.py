"""
Pydantic schemas for parsed IDs, lookups, subscriptions and API request/response models
"""
from enum import Enum
from pydantic import BaseModel, Field, model_validator
from typing import List, Optional, Dict, Any
from datetime import datetime

from config import UNKNOWN_ID_TYPE


class ScanSource(str, Enum):
    QR = "qr"
    MANUAL = "manual"
    LIVE_SCAN = "live_scan"
    DATABASE_LOOKUP = "database_lookup"


class VerificationStatus(str, Enum):
    FOUND_IN_DB = "FOUND_IN_DB"
    NEW_ID = "NEW_ID"
    NO_ID_NUMBER = "NO_ID_NUMBER"
    LOOKUP_ERROR = "LOOKUP_ERROR"


class AuthenticityStatus(str, Enum):
    VERIFIED = "VERIFIED"
    DISCREPANCY_FOUND = "DISCREPANCY_FOUND"
    UNKNOWN_ID = "UNKNOWN_ID"
    VERIFICATION_ERROR = "VERIFICATION_ERROR"


class SubscriptionPlan(str, Enum):
    FREE = "free"
    MONTHLY_PRO = "monthly_pro"
    YEARLY_PRO = "yearly_pro"


class PaymentStatus(str, Enum):
    SUCCEEDED = "succeeded"
    PENDING = "pending"
    FAILED = "failed"
    REQUIRES_ACTION = "requires_action"


class ParsedIdRecord(BaseModel):
    """Fields extracted from one scanned ID string"""
    id_number: Optional[str] = Field(None, description="Raw ID number as extracted")
    id_type: str = Field(UNKNOWN_ID_TYPE, description="Detected ID type")
    first_name: Optional[str] = Field(None, description="Given name")
    last_name: Optional[str] = Field(None, description="Family name")
    middle_initial: Optional[str] = Field(None, description="Middle initial")
    birthday: Optional[str] = Field(None, description="Birthday in source format")
    additional_info: Optional[str] = Field(None, description="Unmapped residue text")
    parse_success: bool = Field(False, description="True if an ID number or a name was found")

    class Config:
        frozen = True


class LookupResult(ParsedIdRecord):
    """Parsed ID merged with the record store lookup"""
    verification_status: VerificationStatus = Field(..., description="Outcome of the record lookup")
    is_from_database: bool = Field(False, description="Fields come from the stored record")
    scan_source: ScanSource = Field(ScanSource.LIVE_SCAN, description="Provenance of the fields")
    record_id: Optional[int] = Field(None, description="Stored record identifier")
    last_updated: Optional[datetime] = Field(None, description="Stored record update time")
    photo_id: Optional[str] = Field(None, description="Stored photo file identifier")
    photo_url: Optional[str] = Field(None, description="Viewable photo URL")
    lookup_error: Optional[str] = Field(None, description="Failure reason when the lookup failed")

    @model_validator(mode="after")
    def _database_implies_found(self):
        if self.is_from_database and self.verification_status != VerificationStatus.FOUND_IN_DB:
            raise ValueError("is_from_database requires verification_status FOUND_IN_DB")
        return self


class ParsedDataValidation(BaseModel):
    is_valid: bool
    completeness: float = Field(..., description="Share of filled fields (0-1)")
    missing_fields: List[str] = Field(default_factory=list)


class DailyScans(BaseModel):
    count: int = Field(0, ge=0)
    last_reset_date: str = Field(..., alias="lastResetDate", pattern=r"^\d{4}-\d{2}-\d{2}$")

    class Config:
        populate_by_name = True


class SubscriptionState(BaseModel):
    """Subscription blob kept under the `subscription` key of a user's profile metadata"""
    plan: SubscriptionPlan = SubscriptionPlan.FREE
    daily_scans: DailyScans = Field(..., alias="dailyScans")
    expires_at: Optional[str] = Field(None, alias="expiresAt", pattern=r"^\d{4}-\d{2}-\d{2}$")
    created_at: Optional[str] = Field(None, alias="createdAt")
    updated_at: Optional[str] = Field(None, alias="updatedAt")

    class Config:
        populate_by_name = True
        extra = "allow"

    @model_validator(mode="after")
    def _free_never_expires(self):
        if self.plan == SubscriptionPlan.FREE:
            self.expires_at = None
        return self

    def to_metadata(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class ExpirationCheck(BaseModel):
    is_expired: bool
    state: SubscriptionState


class ScanPermission(BaseModel):
    can_scan: bool
    remaining_scans: int = Field(..., description="-1 means unlimited")
    is_expired: bool = False


class StoredRecordResponse(BaseModel):
    """Scanned ID record kept in the record store"""
    id: int
    id_type: Optional[str] = None
    id_number: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    middle_initial: Optional[str] = None
    birthday: Optional[str] = None
    photo_id: Optional[str] = None
    additional_info: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RecordListResponse(BaseModel):
    records: List[StoredRecordResponse] = Field(..., description="List of records")
    total: int = Field(..., description="Number of records returned")


class RecordsForIdResponse(BaseModel):
    found: bool
    records: List[StoredRecordResponse] = Field(default_factory=list)
    count: int = 0


class StatisticsResponse(BaseModel):
    total_scans: int
    recent_scans: List[StoredRecordResponse] = Field(default_factory=list)
    id_type_breakdown: Dict[str, int] = Field(default_factory=dict)
    first_scan: Optional[datetime] = None
    last_scan: Optional[datetime] = None


class FieldDiscrepancy(BaseModel):
    field: str
    scanned: str
    database: str


class AuthenticityReport(BaseModel):
    is_known_id: bool
    is_valid: Optional[bool] = Field(None, description="None when the ID cannot be verified")
    discrepancies: List[FieldDiscrepancy] = Field(default_factory=list)
    database_record: Optional[StoredRecordResponse] = None
    verification_status: AuthenticityStatus
    error: Optional[str] = None


class IdTypeResponse(BaseModel):
    name: str = Field(..., description="Human-readable ID type")
    example: str = Field("", description="Example ID number")


class PlanDetailsResponse(BaseModel):
    key: SubscriptionPlan
    name: str
    amount: int
    price: str
    period: str
    duration_days: int
    features: List[str]
    daily_scans: int = Field(..., description="-1 means unlimited")
    show_photo: bool
    unlimited: bool


class ScanRequest(BaseModel):
    raw_data: str = Field("", description="Raw decoded QR/barcode or typed text")
    scan_source: ScanSource = Field(ScanSource.QR, description="Where the text came from")


class ParseResponse(BaseModel):
    record: ParsedIdRecord
    display_name: str
    validation: ParsedDataValidation


class ScanResponse(BaseModel):
    result: LookupResult
    remaining_scans: int = Field(..., description="-1 means unlimited")
    remaining_display: str
    photos_visible: bool


class SubscriptionResponse(BaseModel):
    user_id: str
    subscription: SubscriptionState
    plan_details: PlanDetailsResponse
    can_scan: bool
    remaining_scans: int
    remaining_display: str
    can_view_photos: bool
    is_expired: bool = False


class UpgradeRequest(BaseModel):
    plan: SubscriptionPlan
    method: str = Field("card", description="card, gcash, ...")
    details: Dict[str, Any] = Field(default_factory=dict, description="Opaque payment details")


class PaymentResult(BaseModel):
    status: PaymentStatus
    reference: Optional[str] = None


class UpgradeOutcome(BaseModel):
    status: PaymentStatus
    reference: Optional[str] = None
    activated: bool = False
    message: str = ""
