"""
ID Type Classifier
Detects the type of a Philippine (or other) ID purely from the shape of its ID number.
"""

import re
from typing import List, Optional, Tuple
import logging

from config import ID_TYPE_RULES, UNKNOWN_ID_TYPE, IdTypeRule

logger = logging.getLogger(__name__)


class IDTypeClassifier:
    """Classify ID numbers against the ordered shape table."""

    def __init__(self, rules: Tuple[IdTypeRule, ...] = ID_TYPE_RULES):
        """Compile the rule table once."""
        self.rules: List[Tuple[str, List[re.Pattern], Tuple[str, ...]]] = [
            (rule.name, [re.compile(p) for p in rule.patterns], rule.keywords)
            for rule in rules
        ]

    def classify(self, id_number: Optional[str]) -> str:
        """
        Detect the ID type from the ID number shape.

        Args:
            id_number: ID number as extracted or stored

        Returns:
            ID type name, "Unknown ID Type" when nothing matches
        """
        if not id_number or not isinstance(id_number, str):
            return UNKNOWN_ID_TYPE

        clean_id = id_number.strip().upper()
        if not clean_id:
            return UNKNOWN_ID_TYPE

        for name, patterns, keywords in self.rules:
            if any(p.fullmatch(clean_id) for p in patterns):
                return name
            if any(k in clean_id for k in keywords):
                return name

        logger.debug(f"No ID type rule matched {clean_id!r}")
        return UNKNOWN_ID_TYPE


_classifier = IDTypeClassifier()


def detect_id_type(id_number: Optional[str]) -> str:
    """Shape-based ID type detection with the default rule table"""
    return _classifier.classify(id_number)


def supported_id_types() -> List[IdTypeRule]:
    return list(ID_TYPE_RULES)
