"""
FastAPI application - ID Scanner backend
"""
from fastapi import FastAPI, HTTPException, Depends, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from sqlalchemy.orm import Session
from typing import List, Optional
from contextlib import asynccontextmanager
from datetime import date, datetime
import logging

from database import get_db, init_db
from config import PLAN_DETAILS
from entitlements import format_remaining_scans, get_plan_details, get_plan_limits
from id_classifier import supported_id_types
from id_parser import IDParser, format_name, validate_parsed_data
from lookup_service import IDLookupService, RecordLookupError, SqlRecordStore
from payment_service import PaymentGateway, PlanUpgradeService
from record_service import RecordService
from schemas import (
    AuthenticityReport, IdTypeResponse, LookupResult, ParseResponse, PlanDetailsResponse,
    RecordListResponse, RecordsForIdResponse, ScanRequest, ScanResponse, StatisticsResponse,
    StoredRecordResponse, SubscriptionPlan, SubscriptionResponse, UpgradeOutcome, UpgradeRequest,
)
from subscription_service import PersistenceError, SqlProfileStore, SubscriptionService
from dotenv import load_dotenv

load_dotenv()
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events"""
    # Startup
    init_db()
    print("✅ Database initialized")
    print("✅ ID parser ready")
    yield


# Initialize FastAPI app with lifespan
app = FastAPI(
    title="ID Scanner API",
    description="API for parsing scanned IDs, looking them up and gating scans by subscription plan",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware - Allow the mobile/web clients
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Allow all origins for now - tighten in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Stateless, shared by all requests
id_parser = IDParser()


def get_today() -> date:
    """Subscription dates are UTC calendar days"""
    return datetime.utcnow().date()


def get_subscription_service(db: Session = Depends(get_db)) -> SubscriptionService:
    return SubscriptionService(SqlProfileStore(db))


def get_lookup_service(db: Session = Depends(get_db)) -> IDLookupService:
    return IDLookupService(SqlRecordStore(db), parser=id_parser)


def get_record_service(db: Session = Depends(get_db)) -> RecordService:
    return RecordService(db)


def get_payment_gateway(request: Request) -> Optional[PaymentGateway]:
    """Gateway configured at deployment on app.state.payment_gateway"""
    return getattr(request.app.state, "payment_gateway", None)


def _plan_response(plan: SubscriptionPlan) -> PlanDetailsResponse:
    details = get_plan_details(plan)
    limits = get_plan_limits(plan)
    return PlanDetailsResponse(
        key=plan,
        name=details.name,
        amount=details.amount,
        price=details.price,
        period=details.period,
        duration_days=details.duration_days,
        features=list(details.features),
        daily_scans=limits.daily_scans,
        show_photo=limits.show_photo,
        unlimited=limits.unlimited,
    )


@app.get("/")
async def root():
    """Health check endpoint"""
    return {
        "status": "ok",
        "message": "ID Scanner API is running",
        "version": "1.0.0"
    }


@app.get("/api/id-types", response_model=List[IdTypeResponse])
async def get_id_types():
    """Get all ID types the classifier can detect"""
    return [IdTypeResponse(name=rule.name, example=rule.example) for rule in supported_id_types()]


@app.get("/api/plans", response_model=List[PlanDetailsResponse])
async def get_plans():
    """Get all subscription plans"""
    return [_plan_response(SubscriptionPlan(key)) for key in PLAN_DETAILS]


@app.post("/api/parse", response_model=ParseResponse)
async def parse_id(request: ScanRequest):
    """
    Parse scanned ID text without touching the database or the scan quota
    """
    record = id_parser.parse(request.raw_data, request.scan_source)
    return ParseResponse(
        record=record,
        display_name=format_name(record.first_name, record.middle_initial, record.last_name),
        validation=validate_parsed_data(record),
    )


@app.post("/api/lookup", response_model=LookupResult)
async def lookup_id(request: ScanRequest, lookup: IDLookupService = Depends(get_lookup_service)):
    """
    Parse scanned ID text and look the ID number up in the database
    """
    return lookup.lookup(request.raw_data, request.scan_source)


@app.post("/api/users/{user_id}/scans", response_model=ScanResponse)
async def scan_id(
    user_id: str,
    request: ScanRequest,
    subscriptions: SubscriptionService = Depends(get_subscription_service),
    lookup: IDLookupService = Depends(get_lookup_service),
    today: date = Depends(get_today),
):
    """
    Quota-gated scan: check the user's plan, look the ID up, count the scan.
    Photos are only returned to plans that include photo viewing.
    """
    if subscriptions.initialize_user_subscription(user_id, today) is None:
        raise HTTPException(status_code=503, detail="Could not initialize subscription")

    try:
        permission = subscriptions.can_perform_scan(user_id, today)
    except PersistenceError as e:
        raise HTTPException(status_code=503, detail=f"Could not save subscription: {str(e)}")

    if not permission.can_scan:
        logger.info(f"Daily scan limit reached for {user_id}")
        raise HTTPException(
            status_code=403,
            detail="Daily scan limit reached. Upgrade to a Pro plan for unlimited scans."
        )

    result = lookup.lookup(request.raw_data, request.scan_source)

    if not subscriptions.increment_scan_count(user_id, today):
        raise HTTPException(status_code=503, detail="Scan could not be recorded. Please try again.")

    photos_visible = subscriptions.can_view_photos(user_id, today)
    if not photos_visible:
        result = result.model_copy(update={"photo_id": None, "photo_url": None})

    remaining = subscriptions.can_perform_scan(user_id, today).remaining_scans
    return ScanResponse(
        result=result,
        remaining_scans=remaining,
        remaining_display=format_remaining_scans(remaining),
        photos_visible=photos_visible,
    )


@app.get("/api/users/{user_id}/subscription", response_model=SubscriptionResponse)
async def get_subscription(
    user_id: str,
    subscriptions: SubscriptionService = Depends(get_subscription_service),
    today: date = Depends(get_today),
):
    """
    Get a user's subscription, remaining scans and plan details
    """
    if subscriptions.initialize_user_subscription(user_id, today) is None:
        raise HTTPException(status_code=503, detail="Could not initialize subscription")

    try:
        permission = subscriptions.can_perform_scan(user_id, today)
    except PersistenceError as e:
        raise HTTPException(status_code=503, detail=f"Could not save subscription: {str(e)}")

    state = subscriptions.get_user_subscription(user_id, today)
    return SubscriptionResponse(
        user_id=user_id,
        subscription=state,
        plan_details=_plan_response(state.plan),
        can_scan=permission.can_scan,
        remaining_scans=permission.remaining_scans,
        remaining_display=format_remaining_scans(permission.remaining_scans),
        can_view_photos=subscriptions.can_view_photos(user_id, today),
        is_expired=permission.is_expired,
    )


@app.post("/api/users/{user_id}/subscription/upgrade", response_model=UpgradeOutcome)
async def upgrade_subscription(
    user_id: str,
    request: UpgradeRequest,
    subscriptions: SubscriptionService = Depends(get_subscription_service),
    gateway: Optional[PaymentGateway] = Depends(get_payment_gateway),
    today: date = Depends(get_today),
):
    """
    Pay for a plan; the plan only changes once the payment has succeeded
    """
    if request.plan != SubscriptionPlan.FREE and gateway is None:
        raise HTTPException(status_code=503, detail="Payment gateway is not configured")

    upgrades = PlanUpgradeService(gateway, subscriptions)
    return upgrades.upgrade(user_id, request.plan, request.method, request.details, today)


@app.get("/api/records", response_model=RecordListResponse)
async def get_records(limit: int = Query(50, ge=1, le=500), records: RecordService = Depends(get_record_service)):
    """
    Get scan history, newest first
    """
    history = records.get_history(limit)
    return RecordListResponse(records=history, total=len(history))


@app.get("/api/records/search", response_model=RecordListResponse)
async def search_records(q: str = "", records: RecordService = Depends(get_record_service)):
    """
    Search records by name, ID number or ID type
    """
    matches = records.search(q)
    return RecordListResponse(records=matches, total=len(matches))


@app.get("/api/records/statistics", response_model=StatisticsResponse)
async def get_statistics(records: RecordService = Depends(get_record_service)):
    return records.get_statistics()


@app.get("/api/records/export")
async def export_records(format: str = "json", records: RecordService = Depends(get_record_service)):
    """
    Export all records as JSON or CSV
    """
    try:
        content = records.export(format)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    media_type = "text/csv" if format.lower() == "csv" else "application/json"
    return Response(content=content, media_type=media_type)


@app.get("/api/records/by-id-number/{id_number}", response_model=RecordsForIdResponse)
async def get_records_for_id(id_number: str, lookup: IDLookupService = Depends(get_lookup_service)):
    """
    Get every stored record for an ID number (duplicates included)
    """
    try:
        matches = lookup.get_all_records_for_id(id_number)
    except RecordLookupError as e:
        raise HTTPException(status_code=503, detail=f"Lookup failed: {str(e)}")

    return RecordsForIdResponse(
        found=bool(matches),
        records=[StoredRecordResponse.model_validate(m) for m in matches],
        count=len(matches),
    )


@app.post("/api/verify", response_model=AuthenticityReport)
async def verify_id(request: ScanRequest, lookup: IDLookupService = Depends(get_lookup_service)):
    """
    Compare a scanned ID against the stored record for its ID number
    """
    scanned = id_parser.parse(request.raw_data, request.scan_source)
    return lookup.verify_authenticity(scanned)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
