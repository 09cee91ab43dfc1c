import json
from datetime import datetime

import pytest

from models import ScannedRecord
from record_service import RecordService


@pytest.fixture
def records(db_session):
    db_session.add_all([
        ScannedRecord(id_type="Philippine Driver's License", id_number="A01-23-456789",
                      first_name="JUAN", last_name="DELA CRUZ", middle_initial="P",
                      birthday="01/15/1990", created_at=datetime(2024, 1, 10, 9, 0)),
        ScannedRecord(id_type="SSS ID", id_number="12-3456789-0",
                      first_name="MARIA", last_name="SANTOS", created_at=datetime(2024, 2, 1, 9, 0)),
        ScannedRecord(id_type=None, id_number="XYZ-999999",
                      first_name="ANA", last_name="REYES", created_at=datetime(2024, 3, 1, 9, 0)),
    ])
    db_session.commit()
    return RecordService(db_session)


def test_history_is_newest_first(records):
    history = records.get_history()
    assert [r.first_name for r in history] == ["ANA", "MARIA", "JUAN"]
    assert len(records.get_history(limit=2)) == 2


def test_search_is_case_insensitive(records):
    assert [r.last_name for r in records.search("santos")] == ["SANTOS"]
    assert [r.first_name for r in records.search("a01-23")] == ["JUAN"]
    assert [r.first_name for r in records.search("sss")] == ["MARIA"]


def test_search_blank_term(records):
    assert records.search("") == []
    assert records.search("   ") == []


def test_statistics(records):
    stats = records.get_statistics()
    assert stats.total_scans == 3
    assert stats.id_type_breakdown == {
        "Philippine Driver's License": 1,
        "SSS ID": 1,
        "Unknown": 1,
    }
    assert stats.first_scan == datetime(2024, 1, 10, 9, 0)
    assert stats.last_scan == datetime(2024, 3, 1, 9, 0)
    assert stats.recent_scans[0].first_name == "ANA"


def test_statistics_empty(db_session):
    stats = RecordService(db_session).get_statistics()
    assert stats.total_scans == 0
    assert stats.first_scan is None
    assert stats.recent_scans == []


def test_export_json(records):
    rows = json.loads(records.export("json"))
    assert len(rows) == 3
    assert rows[-1]["idNumber"] == "A01-23-456789"
    assert rows[-1]["middleInitial"] == "P"
    assert rows[-1]["createdAt"] == "2024-01-10T09:00:00"


def test_export_csv(records):
    lines = records.export("CSV").splitlines()
    assert lines[0] == "id,idType,idNumber,firstName,lastName,middleInitial,birthday,createdAt"
    assert len(lines) == 4
    # Missing values export as empty cells
    assert ",XYZ-999999,ANA,REYES,,," in lines[1]


def test_export_nothing(db_session):
    service = RecordService(db_session)
    assert service.export("csv") == ""
    assert json.loads(service.export("json")) == []


def test_export_unknown_format(records):
    with pytest.raises(ValueError):
        records.export("xml")
