"""
ID lookup - parse a scan, then look its ID number up in the record store
"""
import os
import logging
from typing import List, Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from id_classifier import detect_id_type
from id_parser import IDParser
from models import ScannedRecord
from schemas import (
    AuthenticityReport,
    AuthenticityStatus,
    FieldDiscrepancy,
    LookupResult,
    ParsedIdRecord,
    ScanSource,
    StoredRecordResponse,
    VerificationStatus,
)
from config import UNKNOWN_ID_TYPE

logger = logging.getLogger(__name__)

UNKNOWN_STORED_TYPES = ("", "Unknown", UNKNOWN_ID_TYPE)


class RecordLookupError(Exception):
    """The record store query failed (network, auth, database...)."""


class RecordStore(Protocol):
    def find_by_exact_field(self, field_name: str, value: str, order_by_created_desc: bool = True,
                            limit: Optional[int] = 1) -> Optional[ScannedRecord]:
        ...

    def find_all_by_exact_field(self, field_name: str, value: str) -> List[ScannedRecord]:
        ...


class SqlRecordStore:
    """Scanned ID records in the scanned_records table"""

    def __init__(self, db: Session):
        self.db = db

    def _query_exact(self, field_name: str, value: str, order_by_created_desc: bool):
        column = getattr(ScannedRecord, field_name, None)
        if column is None or field_name not in ScannedRecord.__table__.columns:
            raise ValueError(f"Unknown record field: {field_name}")

        query = self.db.query(ScannedRecord).filter(column == value)
        if order_by_created_desc:
            query = query.order_by(ScannedRecord.created_at.desc(), ScannedRecord.id.desc())
        return query

    def find_by_exact_field(self, field_name: str, value: str, order_by_created_desc: bool = True,
                            limit: Optional[int] = 1) -> Optional[ScannedRecord]:
        try:
            query = self._query_exact(field_name, value, order_by_created_desc)
            if limit:
                query = query.limit(limit)
            return query.first()
        except SQLAlchemyError as e:
            raise RecordLookupError(str(e)) from e

    def find_all_by_exact_field(self, field_name: str, value: str) -> List[ScannedRecord]:
        try:
            return self._query_exact(field_name, value, True).all()
        except SQLAlchemyError as e:
            raise RecordLookupError(str(e)) from e


def build_photo_url(photo_id: Optional[str]) -> Optional[str]:
    """Viewable URL of a stored ID photo, None when storage is not configured"""
    endpoint = os.getenv("STORAGE_ENDPOINT", "").rstrip("/")
    bucket_id = os.getenv("STORAGE_BUCKET_ID")
    project_id = os.getenv("STORAGE_PROJECT_ID", "")
    if not photo_id or not endpoint or not bucket_id:
        return None
    return f"{endpoint}/storage/buckets/{bucket_id}/files/{photo_id}/view?project={project_id}"


class IDLookupService:
    """Glue between the ID parser and the record store."""

    def __init__(self, record_store: RecordStore, parser: Optional[IDParser] = None):
        self.record_store = record_store
        self.parser = parser or IDParser()

    def lookup(self, raw_data: Optional[str], scan_source: ScanSource = ScanSource.LIVE_SCAN) -> LookupResult:
        """
        Parse the scan and look its ID number up, at most one store query.

        Lookup failures come back as LOOKUP_ERROR, never as exceptions.
        """
        scan_source = ScanSource(scan_source)
        parsed = self.parser.parse(raw_data, scan_source)

        if not parsed.id_number:
            return self._from_parsed(parsed, VerificationStatus.NO_ID_NUMBER, scan_source)

        try:
            record = self.record_store.find_by_exact_field(
                "id_number", parsed.id_number, order_by_created_desc=True, limit=1
            )
        except RecordLookupError as e:
            logger.error(f"Database lookup failed for {parsed.id_number}: {e}")
            return self._from_parsed(parsed, VerificationStatus.LOOKUP_ERROR, scan_source, lookup_error=str(e))
        except Exception as e:
            logger.error(f"Record store error for {parsed.id_number}: {e}")
            return self._from_parsed(parsed, VerificationStatus.LOOKUP_ERROR, scan_source, lookup_error=str(e))

        if record is None:
            return self._from_parsed(parsed, VerificationStatus.NEW_ID, scan_source)

        logger.info(f"ID {parsed.id_number} found in database (record {record.id})")
        return self._from_record(record)

    def _from_parsed(self, parsed: ParsedIdRecord, status: VerificationStatus, scan_source: ScanSource,
                     lookup_error: Optional[str] = None) -> LookupResult:
        return LookupResult(
            **parsed.model_dump(),
            verification_status=status,
            is_from_database=False,
            scan_source=scan_source,
            lookup_error=lookup_error,
        )

    def _from_record(self, record: ScannedRecord) -> LookupResult:
        id_type = record.id_type
        if not id_type or id_type in UNKNOWN_STORED_TYPES:
            id_type = detect_id_type(record.id_number)

        return LookupResult(
            id_number=record.id_number,
            id_type=id_type,
            first_name=record.first_name,
            last_name=record.last_name,
            middle_initial=record.middle_initial,
            birthday=record.birthday,
            additional_info=record.additional_info,
            parse_success=bool(record.id_number or record.first_name or record.last_name),
            verification_status=VerificationStatus.FOUND_IN_DB,
            is_from_database=True,
            scan_source=ScanSource.DATABASE_LOOKUP,
            record_id=record.id,
            last_updated=record.updated_at,
            photo_id=record.photo_id,
            photo_url=build_photo_url(record.photo_id),
        )

    def get_all_records_for_id(self, id_number: str) -> List[ScannedRecord]:
        """Every stored record for an ID number, newest first"""
        return self.record_store.find_all_by_exact_field("id_number", id_number)

    def verify_authenticity(self, scanned: ParsedIdRecord) -> AuthenticityReport:
        """Compare scanned fields against the stored record for the same ID number"""
        if not scanned.id_number:
            return AuthenticityReport(is_known_id=False, verification_status=AuthenticityStatus.UNKNOWN_ID)

        try:
            record = self.record_store.find_by_exact_field("id_number", scanned.id_number)
        except Exception as e:
            logger.error(f"Verify ID authenticity error: {e}")
            return AuthenticityReport(
                is_known_id=False,
                verification_status=AuthenticityStatus.VERIFICATION_ERROR,
                error=str(e),
            )

        if record is None:
            return AuthenticityReport(is_known_id=False, verification_status=AuthenticityStatus.UNKNOWN_ID)

        discrepancies = []
        for field in ("first_name", "last_name"):
            scanned_value = getattr(scanned, field)
            stored_value = getattr(record, field)
            if scanned_value and stored_value and scanned_value.lower() != stored_value.lower():
                discrepancies.append(FieldDiscrepancy(field=field, scanned=scanned_value, database=stored_value))

        if scanned.birthday and record.birthday and scanned.birthday != record.birthday:
            discrepancies.append(
                FieldDiscrepancy(field="birthday", scanned=scanned.birthday, database=record.birthday)
            )

        return AuthenticityReport(
            is_known_id=True,
            is_valid=not discrepancies,
            discrepancies=discrepancies,
            database_record=StoredRecordResponse.model_validate(record),
            verification_status=(
                AuthenticityStatus.VERIFIED if not discrepancies else AuthenticityStatus.DISCREPANCY_FOUND
            ),
        )
