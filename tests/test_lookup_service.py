from datetime import datetime
from unittest.mock import MagicMock

import pytest
from pydantic import ValidationError
from sqlalchemy.exc import OperationalError

from lookup_service import (
    IDLookupService,
    RecordLookupError,
    SqlRecordStore,
    build_photo_url,
)
from models import ScannedRecord
from schemas import AuthenticityStatus, LookupResult, ScanSource, VerificationStatus


class CountingRecordStore:
    def __init__(self, record=None):
        self.record = record
        self.calls = []

    def find_by_exact_field(self, field_name, value, order_by_created_desc=True, limit=1):
        self.calls.append((field_name, value, order_by_created_desc, limit))
        return self.record

    def find_all_by_exact_field(self, field_name, value):
        return [self.record] if self.record else []


class BrokenRecordStore:
    def find_by_exact_field(self, field_name, value, order_by_created_desc=True, limit=1):
        raise RecordLookupError("connection refused")

    def find_all_by_exact_field(self, field_name, value):
        raise RecordLookupError("connection refused")


@pytest.fixture
def storage_env(monkeypatch):
    monkeypatch.setenv("STORAGE_ENDPOINT", "https://cloud.example.com/v1/")
    monkeypatch.setenv("STORAGE_BUCKET_ID", "ids")
    monkeypatch.setenv("STORAGE_PROJECT_ID", "proj")


def add_record(db_session, **fields):
    record = ScannedRecord(**fields)
    db_session.add(record)
    db_session.commit()
    db_session.refresh(record)
    return record


def test_no_id_number_skips_store():
    store = CountingRecordStore()
    result = IDLookupService(store).lookup("JUAN DELA CRUZ")

    assert result.verification_status == VerificationStatus.NO_ID_NUMBER
    assert result.is_from_database is False
    assert store.calls == []


def test_new_id_queries_store_once():
    store = CountingRecordStore()
    result = IDLookupService(store).lookup("A01-23-456789\nSANTOS, MARIA", ScanSource.QR)

    assert store.calls == [("id_number", "A01-23-456789", True, 1)]
    assert result.verification_status == VerificationStatus.NEW_ID
    assert result.is_from_database is False
    assert result.scan_source == ScanSource.QR
    assert result.first_name == "MARIA"
    assert result.id_type == "Philippine Driver's License"


def test_found_in_db_uses_stored_fields(db_session, storage_env):
    stored = add_record(
        db_session,
        id_number="A01-23-456789",
        id_type="Unknown",
        first_name="MARIA",
        last_name="SANTOS",
        birthday="02/20/1985",
        photo_id="photo123",
    )

    result = IDLookupService(SqlRecordStore(db_session)).lookup("A01-23-456789\nDELA CRUZ, JUAN P")

    assert result.verification_status == VerificationStatus.FOUND_IN_DB
    assert result.is_from_database is True
    assert result.scan_source == ScanSource.DATABASE_LOOKUP
    assert result.first_name == "MARIA"
    assert result.last_name == "SANTOS"
    assert result.birthday == "02/20/1985"
    assert result.id_type == "Philippine Driver's License"
    assert result.record_id == stored.id
    assert result.last_updated == stored.updated_at
    assert result.photo_id == "photo123"
    assert result.photo_url == "https://cloud.example.com/v1/storage/buckets/ids/files/photo123/view?project=proj"


def test_stored_id_type_is_kept_when_known(db_session):
    add_record(db_session, id_number="A01-23-456789", id_type="PRC License")
    result = IDLookupService(SqlRecordStore(db_session)).lookup("A01-23-456789")
    assert result.id_type == "PRC License"


def test_newest_record_wins(db_session):
    add_record(db_session, id_number="1234-5678-9012", first_name="OLD", created_at=datetime(2023, 1, 1))
    add_record(db_session, id_number="1234-5678-9012", first_name="NEW", created_at=datetime(2024, 1, 1))

    result = IDLookupService(SqlRecordStore(db_session)).lookup("1234-5678-9012")
    assert result.first_name == "NEW"


def test_lookup_error_keeps_parsed_fields():
    result = IDLookupService(BrokenRecordStore()).lookup("A01-23-456789\nSANTOS, MARIA")

    assert result.verification_status == VerificationStatus.LOOKUP_ERROR
    assert result.lookup_error == "connection refused"
    assert result.is_from_database is False
    assert result.id_number == "A01-23-456789"
    assert result.first_name == "MARIA"


def test_any_store_failure_becomes_lookup_error():
    store = MagicMock()
    store.find_by_exact_field.side_effect = ConnectionError("network down")
    service = IDLookupService(store)

    result = service.lookup("A01-23-456789")
    assert result.verification_status == VerificationStatus.LOOKUP_ERROR
    assert result.lookup_error == "network down"
    assert result.id_number == "A01-23-456789"

    report = service.verify_authenticity(service.parser.parse("A01-23-456789"))
    assert report.verification_status == AuthenticityStatus.VERIFICATION_ERROR
    assert report.error == "network down"


def test_sql_record_store_wraps_database_errors():
    db = MagicMock()
    db.query.side_effect = OperationalError("SELECT", {}, Exception("no such table"))

    with pytest.raises(RecordLookupError):
        SqlRecordStore(db).find_by_exact_field("id_number", "A01-23-456789")

    result = IDLookupService(SqlRecordStore(db)).lookup("A01-23-456789")
    assert result.verification_status == VerificationStatus.LOOKUP_ERROR


def test_sql_record_store_rejects_unknown_field(db_session):
    with pytest.raises(ValueError):
        SqlRecordStore(db_session).find_by_exact_field("password", "x")


def test_get_all_records_for_id(db_session):
    add_record(db_session, id_number="12-3456789-0", first_name="A", created_at=datetime(2023, 1, 1))
    add_record(db_session, id_number="12-3456789-0", first_name="B", created_at=datetime(2024, 1, 1))
    add_record(db_session, id_number="99-9999999-9", first_name="C")

    records = IDLookupService(SqlRecordStore(db_session)).get_all_records_for_id("12-3456789-0")
    assert [r.first_name for r in records] == ["B", "A"]


def test_build_photo_url_needs_storage_config(monkeypatch):
    monkeypatch.delenv("STORAGE_ENDPOINT", raising=False)
    monkeypatch.delenv("STORAGE_BUCKET_ID", raising=False)
    assert build_photo_url("photo123") is None


def test_build_photo_url_without_photo(storage_env):
    assert build_photo_url(None) is None


def test_database_flag_requires_found_status():
    with pytest.raises(ValidationError):
        LookupResult(verification_status=VerificationStatus.NEW_ID, is_from_database=True)


def test_verify_authenticity_matches(db_session):
    add_record(db_session, id_number="A01-23-456789", first_name="Juan", last_name="Dela Cruz",
               birthday="01/15/1990")
    service = IDLookupService(SqlRecordStore(db_session))

    report = service.verify_authenticity(service.parser.parse(
        "A01-23-456789\nDELA CRUZ, JUAN P\n01/15/1990"
    ))
    assert report.verification_status == AuthenticityStatus.VERIFIED
    assert report.is_known_id is True
    assert report.is_valid is True
    assert report.database_record.first_name == "Juan"


def test_verify_authenticity_reports_discrepancies(db_session):
    add_record(db_session, id_number="A01-23-456789", first_name="MARIA", last_name="DELA CRUZ",
               birthday="02/20/1985")
    service = IDLookupService(SqlRecordStore(db_session))

    report = service.verify_authenticity(service.parser.parse(
        "A01-23-456789\nDELA CRUZ, JUAN P\n01/15/1990"
    ))
    assert report.verification_status == AuthenticityStatus.DISCREPANCY_FOUND
    assert report.is_valid is False
    assert {d.field for d in report.discrepancies} == {"first_name", "birthday"}


def test_verify_authenticity_unknown_and_error():
    service = IDLookupService(CountingRecordStore())
    assert service.verify_authenticity(service.parser.parse("A01-23-456789")).verification_status \
        == AuthenticityStatus.UNKNOWN_ID
    assert service.verify_authenticity(service.parser.parse("JUAN DELA CRUZ")).verification_status \
        == AuthenticityStatus.UNKNOWN_ID

    broken = IDLookupService(BrokenRecordStore())
    report = broken.verify_authenticity(broken.parser.parse("A01-23-456789"))
    assert report.verification_status == AuthenticityStatus.VERIFICATION_ERROR
    assert report.error == "connection refused"
