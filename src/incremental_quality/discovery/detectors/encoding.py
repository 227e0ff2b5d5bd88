"""Encoding issue detector.

Flags values that look like character-encoding damage:
- the Unicode replacement character U+FFFD
- mojibake: UTF-8 bytes decoded as Latin-1/CP1252 ("Ã©", "â€™", "Â")
- runs of non-ASCII characters that decode cleanly once re-read as UTF-8
"""

from __future__ import annotations

import re

import pandas as pd

from incremental_quality.analysis.statistics import is_blank
from incremental_quality.core.models.base import Severity
from incremental_quality.discovery.detectors.base import PatternDetector
from incremental_quality.discovery.models import DetectedPattern, PatternType

REPLACEMENT_CHAR = "\ufffd"
MOJIBAKE_MARKERS = ("Ã", "â€", "Â")
_NON_ASCII_RUN = re.compile(r"[^\x00-\x7f]{3,}")

ENCODING_CONFIDENCE = 0.85
EXAMPLE_MAX_LENGTH = 50


def repair_mojibake(value: str) -> str | None:
    """Re-read a Latin-1/CP1252 decoded string as UTF-8.

    Returns the repaired text, or None when the value does not round-trip.
    """
    for codec in ("cp1252", "latin-1"):
        try:
            repaired = value.encode(codec).decode("utf-8")
        except (UnicodeEncodeError, UnicodeDecodeError):
            continue
        if repaired != value:
            return repaired
    return None


def has_mojibake(value: str) -> bool:
    return any(marker in value for marker in MOJIBAKE_MARKERS)


def has_encoding_issue(value: object) -> bool:
    """Whether a cell shows replacement characters or mojibake."""
    if is_blank(value) or not isinstance(value, str):
        return False
    return REPLACEMENT_CHAR in value or has_mojibake(value) or _is_corrupted_run(value)


def _is_corrupted_run(value: str) -> bool:
    return _NON_ASCII_RUN.search(value) is not None and repair_mojibake(value) is not None


def _truncate(value: str, max_length: int = EXAMPLE_MAX_LENGTH) -> str:
    return value if len(value) <= max_length else value[:max_length] + "..."


def _severity_for(ratio: float) -> Severity:
    if ratio >= 0.5:
        return Severity.CRITICAL
    if ratio >= 0.2:
        return Severity.HIGH
    if ratio >= 0.05:
        return Severity.MEDIUM
    return Severity.LOW


_SUGGESTED_FIX = {
    Severity.CRITICAL: "Re-import data with correct encoding (UTF-8 recommended)",
    Severity.HIGH: "Detect source encoding and convert to UTF-8",
    Severity.MEDIUM: "Try encoding detection and conversion, verify results",
    Severity.LOW: "Document encoding and consider conversion if needed",
}


class EncodingIssueDetector(PatternDetector):
    """Detector for character encoding damage.

    Severity follows the affected share: >= 50% Critical, >= 20% High,
    >= 5% Medium, otherwise Low.
    """

    detector_id = "encoding_issue"
    pattern_type = PatternType.ENCODING_ISSUE
    description = "Detects replacement characters and mojibake"

    def is_applicable(self, column: pd.Series) -> bool:
        return any(isinstance(v, str) and not v.isascii() for v in column.tolist())

    def detect(self, column: pd.Series, column_name: str) -> list[DetectedPattern]:
        values = column.tolist()
        total = len(values)

        replacement = mojibake = corrupted = 0
        affected: list[str] = []
        for value in values:
            if is_blank(value) or not isinstance(value, str):
                continue
            flags = (
                REPLACEMENT_CHAR in value,
                has_mojibake(value),
                _is_corrupted_run(value),
            )
            replacement += flags[0]
            mojibake += flags[1]
            corrupted += flags[2]
            if any(flags):
                affected.append(value)

        if not self.meets_threshold(len(affected), total):
            return []

        ratio = len(affected) / total
        severity = _severity_for(ratio)
        parts = []
        if mojibake:
            parts.append(f"{mojibake} mojibake")
        if replacement:
            parts.append(f"{replacement} replacement chars")
        if corrupted:
            parts.append(f"{corrupted} encoding corruptions")

        return [
            self.create_pattern(
                column_name=column_name,
                description=f"Character encoding issues: {', '.join(parts)}",
                severity=severity,
                occurrences=len(affected),
                total=total,
                confidence=ENCODING_CONFIDENCE,
                examples=[_truncate(v) for v in dict.fromkeys(affected)],
                suggested_fix=_SUGGESTED_FIX[severity],
                details={
                    "mojibake": mojibake,
                    "replacement_chars": replacement,
                    "corrupted_runs": corrupted,
                },
            )
        ]
