"""
Scanned record history, search, statistics and export
"""
import csv
import io
import json
import logging
from typing import Dict, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from models import ScannedRecord
from schemas import StatisticsResponse, StoredRecordResponse

logger = logging.getLogger(__name__)

EXPORT_FORMATS = ("json", "csv")
EXPORT_COLUMNS = (
    "id", "idType", "idNumber", "firstName", "lastName", "middleInitial", "birthday", "createdAt",
)


class RecordService:
    """Read-only views over the scanned_records table"""

    def __init__(self, db: Session):
        self.db = db

    def _newest_first(self):
        return self.db.query(ScannedRecord).order_by(ScannedRecord.created_at.desc(), ScannedRecord.id.desc())

    def get_history(self, limit: int = 50) -> List[ScannedRecord]:
        return self._newest_first().limit(limit).all()

    def search(self, term: str) -> List[ScannedRecord]:
        """Case-insensitive substring match on names, ID number and ID type"""
        term = (term or "").strip().lower()
        if not term:
            return []

        pattern = f"%{term}%"
        return self._newest_first().filter(
            or_(
                func.lower(ScannedRecord.first_name).like(pattern),
                func.lower(ScannedRecord.last_name).like(pattern),
                func.lower(ScannedRecord.id_number).like(pattern),
                func.lower(ScannedRecord.id_type).like(pattern),
            )
        ).all()

    def get_statistics(self) -> StatisticsResponse:
        scans = self._newest_first().all()

        id_types: Dict[str, int] = {}
        for scan in scans:
            id_type = scan.id_type or "Unknown"
            id_types[id_type] = id_types.get(id_type, 0) + 1

        return StatisticsResponse(
            total_scans=len(scans),
            recent_scans=[StoredRecordResponse.model_validate(s) for s in scans[:5]],
            id_type_breakdown=id_types,
            first_scan=scans[-1].created_at if scans else None,
            last_scan=scans[0].created_at if scans else None,
        )

    def export(self, format: str = "json") -> str:
        """
        Export every record as JSON or CSV.

        Raises:
            ValueError: unsupported format
        """
        format = (format or "").lower()
        if format not in EXPORT_FORMATS:
            raise ValueError(f"Unsupported export format: {format}. Allowed: {', '.join(EXPORT_FORMATS)}")

        rows = [self._export_row(record) for record in self._newest_first().all()]
        logger.info(f"Exporting {len(rows)} records as {format}")

        if format == "csv":
            return self._to_csv(rows)
        return json.dumps(rows, indent=2)

    def _export_row(self, record: ScannedRecord) -> Dict[str, Optional[str]]:
        return {
            "id": record.id,
            "idType": record.id_type,
            "idNumber": record.id_number,
            "firstName": record.first_name,
            "lastName": record.last_name,
            "middleInitial": record.middle_initial,
            "birthday": record.birthday,
            "createdAt": record.created_at.isoformat() if record.created_at else None,
        }

    def _to_csv(self, rows: List[Dict]) -> str:
        if not rows:
            return ""
        buffer = io.StringIO()
        writer = csv.DictWriter(buffer, fieldnames=EXPORT_COLUMNS, lineterminator="\n")
        writer.writeheader()
        for row in rows:
            writer.writerow({key: "" if value is None else value for key, value in row.items()})
        return buffer.getvalue()
