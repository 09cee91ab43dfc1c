"""
ID Data Parser - Philippine and US IDs from scanned QR/barcode text

Scanned payloads come in a few shapes:
ANSI 636014040002DL00410278ZC03190024DLDAQD12345678
DCSDELA CRUZ
DCTJUAN
DBB01151990

or a line-oriented text dump of a Philippine card:
REPUBLIC OF THE PHILIPPINES
A01-23-456789
DELA CRUZ, JUAN P
01/15/1990

The parser picks one strategy by priority, extracts what it can, and lets the
ID-number shape decide the final ID type.
"""
import re
import logging
from typing import Dict, List, Optional, Union

from config import (
    AAMVA_FIELDS,
    DATE_FORMATS,
    DRIVERS_LICENSE_KEYWORDS,
    GENERIC_ID_TYPE,
    PH_DRIVERS_LICENSE,
    UNKNOWN_ID_TYPE,
    US_DRIVERS_LICENSE,
    US_LICENSE_MARKERS,
)
from id_classifier import detect_id_type
from schemas import ParsedIdRecord, ParsedDataValidation, ScanSource

logger = logging.getLogger(__name__)

LINE_SPLIT = re.compile(r"[\n\r]+")
US_FIELD_SPLIT = re.compile(r"[,\n\r]+")
AAMVA_SUBFILE = re.compile(r"DL(?=" + "|".join(AAMVA_FIELDS) + r")")

# Philippine driver's license numbers
DL_NUMBER = re.compile(r"^[A-Z]\d{2}-\d{2}-\d{6}")
DL_NUMBER_ALT = re.compile(r"^[A-Z]\d{8,11}$")

# Other Philippine IDs
NATIONAL_ID_NUMBER = re.compile(r"^\d{4}-\d{4}-\d{4}")
SSS_NUMBER = re.compile(r"^\d{2}-\d{7}-\d")
GENERIC_PH_NUMBER = re.compile(r"^[A-Z]{1,3}\d{8,12}$")
GENERIC_PH_PREFIX = re.compile(r"^[A-Z]{1,3}\d{8,12}")

CAPS_NAME_TOKEN = re.compile(r"^[A-Z]+\.?$")

# Generic fallback - loose on purpose
# A label may sit right against the number ("ID12345678"); otherwise the
# token stands alone. Tokens without a digit are words, not IDs.
GENERIC_ID = re.compile(
    r"(?:(?:ID|NUMBER|#)\s*:?\s*|(?<![A-Z0-9\-]))((?=[A-Z\-]*\d)[A-Z0-9\-]{6,20})(?![A-Z0-9\-])",
    re.IGNORECASE,
)
GENERIC_NAME = re.compile(r"\bNAME\s*:?\s*([A-Z][A-Z\s,\.]*)", re.IGNORECASE)
GENERIC_BIRTHDATE = re.compile(
    r"(?:BIRTH|DOB|BIRTHDAY)?\s*:?\s*(\d{1,2}[/\-]\d{1,2}[/\-]\d{4})", re.IGNORECASE
)

RECORD_FIELDS = ("id_number", "first_name", "last_name", "middle_initial", "birthday")


class _RecordBuilder:
    """Collects parsed fields; a field that is already set is never overwritten."""

    def __init__(self, id_type: Optional[str] = None):
        self.id_type = id_type
        self._values: Dict[str, str] = {}
        self._info: List[str] = []

    def has(self, field: str) -> bool:
        return field in self._values

    def set(self, field: str, value: Optional[str]) -> bool:
        if field not in RECORD_FIELDS:
            raise KeyError(field)
        if self.has(field) or not value:
            return False
        self._values[field] = value
        return True

    def add_info(self, line: str):
        self._info.append(line)

    def tag(self, id_type: str):
        if not self.id_type:
            self.id_type = id_type

    def build(self) -> ParsedIdRecord:
        values = self._values
        parse_success = bool(
            values.get("id_number") or values.get("first_name") or values.get("last_name")
        )
        # The ID-number shape is authoritative over anything guessed while parsing
        if values.get("id_number"):
            id_type = detect_id_type(values["id_number"])
        elif parse_success:
            id_type = self.id_type or UNKNOWN_ID_TYPE
        else:
            # Neither number nor name: birthday and residue text are still kept
            id_type = UNKNOWN_ID_TYPE

        return ParsedIdRecord(
            id_type=id_type,
            additional_info="\n".join(self._info) or None,
            parse_success=parse_success,
            **values,
        )


def _split_lines(data: str) -> List[str]:
    return [line.strip() for line in LINE_SPLIT.split(data) if line.strip()]


def _find_date(line: str) -> Optional[str]:
    for date_format in DATE_FORMATS:
        match = date_format.search(line)
        if match:
            return match.group(0)
    return None


class IDParser:
    """
    Classifies a raw scanned string and extracts name, birthday and ID number.
    Stateless: one instance can be shared by any number of callers.
    """

    def parse(self, raw_data: Union[str, None], scan_source: ScanSource = ScanSource.QR) -> ParsedIdRecord:
        """
        Parse scanned ID text - priority-ordered, first matching strategy wins
        """
        if not raw_data or not isinstance(raw_data, str):
            return ParsedIdRecord()

        data = raw_data.strip()
        lines = _split_lines(data)
        if not lines:
            return ParsedIdRecord()

        if any(marker in data for marker in US_LICENSE_MARKERS):
            strategy = "us_license"
            builder = self._parse_us_license(data)
        elif self._looks_like_drivers_license(data, lines[0]):
            strategy = "ph_drivers_license"
            builder = self._parse_drivers_license(lines)
        elif (
            NATIONAL_ID_NUMBER.match(data)
            or SSS_NUMBER.match(data)
            or GENERIC_PH_PREFIX.match(data)
        ):
            strategy = "ph_other_id"
            builder = self._parse_other_id(lines)
        else:
            strategy = "generic"
            builder = self._parse_generic(lines)

        record = builder.build()
        logger.debug(
            f"Parsed {scan_source.value if isinstance(scan_source, ScanSource) else scan_source} "
            f"scan with {strategy} strategy: {record.id_type} (success={record.parse_success})"
        )
        return record

    def _looks_like_drivers_license(self, data: str, first_line: str) -> bool:
        if any(keyword in data for keyword in DRIVERS_LICENSE_KEYWORDS):
            return True
        return bool(DL_NUMBER.match(data) or DL_NUMBER_ALT.match(first_line))

    def _parse_us_license(self, data: str) -> _RecordBuilder:
        """AAMVA PDF417 payload: element ID followed by value"""
        builder = _RecordBuilder(US_DRIVERS_LICENSE)

        for field in US_FIELD_SPLIT.split(data):
            token = field.strip()
            # First element shares a line with the header and "DL" subfile designator
            if token[:3] not in AAMVA_FIELDS:
                subfile = AAMVA_SUBFILE.search(token)
                if subfile:
                    token = token[subfile.end():]

            code = token[:3]
            target = AAMVA_FIELDS.get(code)
            value = token[3:].strip()
            if not target or not value:
                continue

            if target == "middle_initial":
                value = value[0]
            elif target == "birthday" and len(value) == 8 and value.isdigit():
                # MMDDYYYY
                value = f"{value[0:2]}/{value[2:4]}/{value[4:8]}"

            builder.set(target, value)

        return builder

    def _parse_drivers_license(self, lines: List[str]) -> _RecordBuilder:
        """Philippine driver's license text dump, one field per line"""
        builder = _RecordBuilder()

        for line in lines:
            if not builder.has("id_number") and (DL_NUMBER.match(line) or DL_NUMBER_ALT.match(line)):
                builder.set("id_number", line)
                builder.tag(PH_DRIVERS_LICENSE)
                continue

            if not builder.has("birthday"):
                birthday = _find_date(line)
                if birthday:
                    builder.set("birthday", birthday)
                    continue

            # Philippine format: "LASTNAME, FIRSTNAME MIDDLEINITIAL"
            if not builder.has("last_name") and "," in line:
                if self._set_comma_name(builder, line, middle_from_last=True):
                    continue

            # "FIRSTNAME [MIDDLEINITIAL] LASTNAME", all caps
            if not builder.has("first_name"):
                parts = line.split()
                if 2 <= len(parts) <= 3 and all(CAPS_NAME_TOKEN.match(p) for p in parts):
                    builder.set("first_name", parts[0].rstrip("."))
                    if len(parts) == 3:
                        builder.set("middle_initial", parts[1].rstrip(".")[:1])
                    builder.set("last_name", parts[-1].rstrip("."))
                    continue

            # Header lines not consumed above are kept as residue
            if any(keyword in line for keyword in DRIVERS_LICENSE_KEYWORDS):
                builder.tag(PH_DRIVERS_LICENSE)
                builder.add_info(line)

        return builder

    def _parse_other_id(self, lines: List[str]) -> _RecordBuilder:
        """National ID, SSS and other number-first Philippine IDs"""
        builder = _RecordBuilder()

        for line in lines:
            if not builder.has("id_number"):
                if NATIONAL_ID_NUMBER.match(line):
                    builder.set("id_number", line)
                    builder.tag("Philippine National ID")
                    continue
                if SSS_NUMBER.match(line):
                    builder.set("id_number", line)
                    builder.tag("SSS ID")
                    continue
                if GENERIC_PH_NUMBER.match(line):
                    builder.set("id_number", line)
                    continue

            if not builder.has("birthday"):
                birthday = _find_date(line)
                if birthday:
                    builder.set("birthday", birthday)
                    continue

            if not builder.has("last_name") and "," in line:
                self._set_comma_name(builder, line, middle_from_last=False)

        return builder

    def _parse_generic(self, lines: List[str]) -> _RecordBuilder:
        """Loose fallback; each line gives at most one field, the rest is kept as info"""
        builder = _RecordBuilder(GENERIC_ID_TYPE)

        for line in lines:
            if not builder.has("birthday"):
                match = GENERIC_BIRTHDATE.search(line)
                if match:
                    builder.set("birthday", match.group(1))
                    continue

            if not builder.has("id_number"):
                match = GENERIC_ID.search(line)
                if match:
                    builder.set("id_number", match.group(1))
                    continue

            if not builder.has("first_name"):
                match = GENERIC_NAME.search(line)
                if match and self._set_labelled_name(builder, match.group(1)):
                    continue

            builder.add_info(line)

        return builder

    def _set_comma_name(self, builder: _RecordBuilder, line: str, middle_from_last: bool) -> bool:
        name_parts = [part.strip() for part in line.split(",")]
        if len(name_parts) < 2 or not name_parts[0]:
            return False

        builder.set("last_name", name_parts[0])
        given = name_parts[1].split()
        if given:
            builder.set("first_name", given[0])
            if len(given) > 1:
                middle = given[-1] if middle_from_last else given[1]
                builder.set("middle_initial", middle[0])
        return True

    def _set_labelled_name(self, builder: _RecordBuilder, text: str) -> bool:
        if "," in text:
            return self._set_comma_name(builder, text, middle_from_last=True)

        parts = [p.strip(".") for p in re.split(r"[\s,]+", text) if p.strip(".")]
        if not parts:
            return False
        builder.set("first_name", parts[0])
        if len(parts) >= 2:
            builder.set("last_name", parts[-1])
        if len(parts) >= 3:
            builder.set("middle_initial", parts[1][0])
        return True


_parser = IDParser()


def parse_id_data(raw_data: Union[str, None], scan_source: ScanSource = ScanSource.QR) -> ParsedIdRecord:
    """Parse scanned text with the shared parser"""
    return _parser.parse(raw_data, scan_source)


def format_name(first_name: Optional[str], middle_initial: Optional[str], last_name: Optional[str]) -> str:
    """Display name, e.g. "JUAN P. DELA CRUZ" """
    parts = []
    if first_name:
        parts.append(first_name)
    if middle_initial:
        parts.append(middle_initial + ".")
    if last_name:
        parts.append(last_name)
    return " ".join(parts)


def validate_parsed_data(record) -> ParsedDataValidation:
    """Check a parsed (or looked-up) record has the minimum required information"""
    has_basic_info = bool(record.id_number or record.first_name or record.last_name)
    photo = getattr(record, "photo_url", None) or getattr(record, "photo_id", None)

    filled = [
        record.id_number,
        record.first_name,
        record.last_name,
        record.middle_initial,
        record.birthday,
        photo,
    ]
    completeness = sum(1 for value in filled if value) / len(filled)

    missing = [
        label
        for label, value in (
            ("ID Number", record.id_number),
            ("First Name", record.first_name),
            ("Last Name", record.last_name),
            ("Birthday", record.birthday),
        )
        if not value
    ]

    return ParsedDataValidation(
        is_valid=has_basic_info,
        completeness=completeness,
        missing_fields=missing,
    )
