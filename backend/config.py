"""
Configuration for ID types, date formats and subscription plan tables
"""
import re
from types import MappingProxyType
from typing import NamedTuple, Tuple


UNKNOWN_ID_TYPE = "Unknown ID Type"
GENERIC_ID_TYPE = "Generic ID"
US_DRIVERS_LICENSE = "US Driver's License"
PH_DRIVERS_LICENSE = "Philippine Driver's License"

# Common date formats found in IDs
DATE_FORMATS = (
    re.compile(r"(\d{2})/(\d{2})/(\d{4})"),  # MM/DD/YYYY
    re.compile(r"(\d{2})-(\d{2})-(\d{4})"),  # MM-DD-YYYY
    re.compile(r"(\d{4})/(\d{2})/(\d{2})"),  # YYYY/MM/DD
    re.compile(r"(\d{4})-(\d{2})-(\d{2})"),  # YYYY-MM-DD
    re.compile(r"(\d{2})(\d{2})(\d{4})"),    # MMDDYYYY
    re.compile(r"(\d{4})(\d{2})(\d{2})"),    # YYYYMMDD
)


class IdTypeRule(NamedTuple):
    """One row of the ID-number shape table"""
    name: str
    patterns: Tuple[str, ...] = ()
    keywords: Tuple[str, ...] = ()
    example: str = ""


# Ordered: the first rule whose pattern (full match) or keyword (substring)
# hits the cleaned ID number decides the type.
ID_TYPE_RULES = (
    IdTypeRule(
        name=PH_DRIVERS_LICENSE,
        patterns=(r"[A-Z]\d{2}-\d{2}-\d{6}", r"[A-Z]\d{8,11}"),
        example="A01-23-456789",
    ),
    IdTypeRule(
        name="Philippine National ID",
        patterns=(r"\d{4}-\d{4}-\d{4}", r"\d{12}"),
        example="1234-5678-9012",
    ),
    IdTypeRule(
        name="SSS ID",
        patterns=(r"\d{2}-\d{7}-\d", r"\d{10}"),
        example="12-3456789-0",
    ),
    IdTypeRule(
        name="UMID",
        patterns=(r"\d{4}-\d{7}-\d", r"\d{12}"),
        example="1234-5678901-2",
    ),
    IdTypeRule(
        name="PRC License",
        patterns=(r"[A-Z]\d{8,10}[A-Z]?", r"PRC.*"),
        example="PRC-1234567",
    ),
    IdTypeRule(
        name="Postal ID",
        patterns=(r"POST-\d{4}-\d{6}",),
        keywords=("POST",),
        example="POST-1234-567890",
    ),
    IdTypeRule(
        name="TIN ID",
        patterns=(r"\d{3}-\d{3}-\d{3}", r"\d{9}"),
        example="123-456-789",
    ),
    IdTypeRule(
        name="PhilHealth ID",
        patterns=(r"\d{2}-\d{9}-\d", r"\d{12}"),
        example="12-345678901-2",
    ),
    IdTypeRule(
        name="GSIS ID",
        patterns=(r"1\d{10}",),
        example="12345678901",
    ),
    IdTypeRule(
        name="Senior Citizen ID",
        keywords=("SENIOR", "SC"),
        example="SC-2023-0001",
    ),
    IdTypeRule(
        name="PWD ID",
        keywords=("PWD", "DISABILITY"),
        example="PWD-0420-1234",
    ),
    IdTypeRule(
        name="Voter's ID",
        patterns=(r"\d{4}-\d{4}-\d{4}-\d{4}",),
        example="1234-5678-9012-3456",
    ),
    IdTypeRule(
        name="Philippine Passport",
        patterns=(r"[A-Z]\d{7}[A-Z]?", r"P\d{7}[A-Z]"),
        example="P1234567A",
    ),
    IdTypeRule(
        name="OFW ID",
        keywords=("OFW", "OWWA"),
        example="OFW-123456",
    ),
    IdTypeRule(
        name="Philippine Government ID",
        patterns=(r"[A-Z0-9\-]{6,20}",),
        example="ABC-123456",
    ),
)


# Keywords that mark a Philippine driver's license text dump
DRIVERS_LICENSE_KEYWORDS = ("DRIVER", "LICENSE", "REPUBLIC OF THE PHILIPPINES")

# Markers of an AAMVA (PDF417) US driver's license payload
US_LICENSE_MARKERS = ("ANSI", "PDF417")

# AAMVA element IDs
AAMVA_FIELDS = {
    "DCS": "last_name",
    "DCT": "first_name",
    "DCU": "middle_initial",
    "DBB": "birthday",
    "DAQ": "id_number",
}


class PlanLimits(NamedTuple):
    daily_scans: int  # -1 means unlimited
    show_photo: bool
    unlimited: bool


class PlanDetails(NamedTuple):
    name: str
    amount: int  # PHP
    price: str
    period: str
    duration_days: int  # 0 = never expires
    features: Tuple[str, ...]


FREE_PLAN = "free"
MONTHLY_PRO_PLAN = "monthly_pro"
YEARLY_PRO_PLAN = "yearly_pro"

DAILY_FREE_SCANS = 2
UNLIMITED_SCANS = -1
PAYMENT_CURRENCY = "PHP"

PLAN_LIMITS = MappingProxyType({
    FREE_PLAN: PlanLimits(daily_scans=DAILY_FREE_SCANS, show_photo=False, unlimited=False),
    MONTHLY_PRO_PLAN: PlanLimits(daily_scans=UNLIMITED_SCANS, show_photo=True, unlimited=True),
    YEARLY_PRO_PLAN: PlanLimits(daily_scans=UNLIMITED_SCANS, show_photo=True, unlimited=True),
})

PLAN_DETAILS = MappingProxyType({
    FREE_PLAN: PlanDetails(
        name="Free",
        amount=0,
        price="₱0",
        period="forever",
        duration_days=0,
        features=("2 daily scans", "QR code scanning", "Manual ID lookup"),
    ),
    MONTHLY_PRO_PLAN: PlanDetails(
        name="Monthly Pro",
        amount=199,
        price="₱199",
        period="per month",
        duration_days=30,
        features=(
            "Unlimited scans", "Photo viewing", "QR code scanning",
            "Manual ID lookup", "Priority support",
        ),
    ),
    YEARLY_PRO_PLAN: PlanDetails(
        name="Yearly Pro",
        amount=1999,
        price="₱1,999",
        period="per year",
        duration_days=365,
        features=(
            "Unlimited scans", "Photo viewing", "QR code scanning",
            "Manual ID lookup", "Priority support", "2 months free!",
        ),
    ),
})
