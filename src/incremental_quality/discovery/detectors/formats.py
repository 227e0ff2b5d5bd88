"""Format variation detector.

Three checks run over a column, each producing at most one pattern:

- dates: values are matched against the configured date shapes. Shapes
  shared by several formats (dd/MM/yyyy and MM/dd/yyyy) are resolved per
  column to the format that parses the most values.
- numbers: thousand separators, comma decimals and space-grouped digits
  mixed within a mostly numeric column.
- booleans: more than one true/false spelling in a mostly boolean column.
"""

from __future__ import annotations

import re
from collections import Counter
from collections.abc import Iterable
from datetime import date, datetime

import pandas as pd

from incremental_quality.analysis.statistics import is_missing, parse_number
from incremental_quality.core.config import DateFormat
from incremental_quality.core.models.base import Severity
from incremental_quality.discovery.detectors.base import PatternDetector
from incremental_quality.discovery.models import DetectedPattern, PatternType

# Share of present values a column needs to count as numeric or boolean
DOMINANT_TYPE_RATIO = 0.7

NUMBER_FORMAT_CONFIDENCE = 0.85
BOOLEAN_FORMAT_CONFIDENCE = 0.90

TRUE_TOKENS = frozenset({"true", "yes", "y", "1", "on"})
FALSE_TOKENS = frozenset({"false", "no", "n", "0", "off"})

_THOUSANDS = re.compile(r"^[+-]?\d{1,3}(,\d{3})+(\.\d+)?$")
_COMMA_DECIMAL = re.compile(r"^[+-]?\d{1,3}(\.\d{3})*,\d+$")
_SPACE_GROUPED = re.compile(r"^[+-]?\d{1,3}( \d{3})+([.,]\d+)?$")


# --- dates ---


def match_date_format(value: str, formats: list[DateFormat]) -> DateFormat | None:
    """First configured date format whose shape matches the trimmed value."""
    text = value.strip()
    for fmt in formats:
        if fmt.matches(text):
            return fmt
    return None


def parse_date(value: str, fmt: DateFormat) -> date | None:
    """Parse a trimmed value with one format; None when it is not a calendar date."""
    try:
        return datetime.strptime(value.strip(), fmt.strptime).date()
    except ValueError:
        return None


def resolve_date_formats(
    values: Iterable[str], formats: list[DateFormat]
) -> dict[str, DateFormat]:
    """Choose one format per date shape for a column.

    Formats sharing a regex compete on the number of column values they
    parse; ties go to the format listed first.

    Returns:
        Mapping of regex pattern to the chosen format
    """
    shapes: dict[str, list[DateFormat]] = {}
    for fmt in formats:
        shapes.setdefault(fmt.pattern, []).append(fmt)

    texts = [v.strip() for v in values]
    resolved: dict[str, DateFormat] = {}
    for pattern, candidates in shapes.items():
        if len(candidates) == 1:
            resolved[pattern] = candidates[0]
            continue
        shaped = [t for t in texts if candidates[0].matches(t)]
        scores = [sum(1 for t in shaped if parse_date(t, f) is not None) for f in candidates]
        best = max(range(len(candidates)), key=lambda i: (scores[i], -i))
        resolved[pattern] = candidates[best]
    return resolved


def classify_date(
    value: str, formats: list[DateFormat], resolved: dict[str, DateFormat]
) -> DateFormat | None:
    """Format a value is written in, given the column's resolved shapes.

    The resolved format is preferred; another format of the same shape is
    used when only it parses the value. A shape match that no format can
    parse still reports the resolved format.
    """
    shape = match_date_format(value, formats)
    if shape is None:
        return None
    preferred = resolved.get(shape.pattern, shape)
    if parse_date(value, preferred) is not None:
        return preferred
    for fmt in formats:
        if fmt.pattern == shape.pattern and parse_date(value, fmt) is not None:
            return fmt
    return preferred


# --- numbers and booleans ---


def number_format_kind(value: str) -> str | None:
    """Notation of a numeric value: plain, thousands, comma_decimal or space_grouped."""
    text = value.strip()
    if parse_number(text) is not None:
        return "plain"
    if _THOUSANDS.match(text):
        return "thousands"
    if _COMMA_DECIMAL.match(text):
        return "comma_decimal"
    if _SPACE_GROUPED.match(text):
        return "space_grouped"
    return None


def normalize_number_text(value: str) -> str | None:
    """Rewrite a formatted number with no grouping and a dot decimal.

    Returns None for values that are plain already or not numbers.
    """
    text = value.strip()
    kind = number_format_kind(text)
    if kind == "thousands":
        return text.replace(",", "")
    if kind == "comma_decimal":
        return text.replace(".", "").replace(",", ".")
    if kind == "space_grouped":
        return text.replace(" ", "").replace(",", ".")
    return None


def parse_boolean(value: str) -> bool | None:
    token = value.strip().lower()
    if token in TRUE_TOKENS:
        return True
    if token in FALSE_TOKENS:
        return False
    return None


class FormatVariationDetector(PatternDetector):
    """Detector for mixed date, number and boolean formats within one column.

    Date formula: confidence = matched / total rows
    Number and boolean patterns carry fixed confidences (0.85 and 0.90).
    """

    detector_id = "format_variation"
    pattern_type = PatternType.FORMAT_VARIATION
    description = "Detects columns mixing date, number or boolean formats"

    def detect(self, column: pd.Series, column_name: str) -> list[DetectedPattern]:
        indicators = self.config.missing_indicator_set
        values = column.tolist()
        total = len(values)
        present = [str(v).strip() for v in values if not is_missing(v, indicators)]

        patterns = [
            self._detect_dates(present, total, column_name),
            self._detect_numbers(present, total, column_name),
            self._detect_booleans(present, total, column_name),
        ]
        return [p for p in patterns if p is not None]

    def _detect_dates(
        self, present: list[str], total: int, column_name: str
    ) -> DetectedPattern | None:
        formats = self.config.date_formats
        resolved = resolve_date_formats(present, formats)

        format_counts: Counter[str] = Counter()
        examples: dict[str, str] = {}
        unparsed = 0
        for value in present:
            fmt = classify_date(value, formats, resolved)
            if fmt is None:
                continue
            format_counts[fmt.name] += 1
            examples.setdefault(fmt.name, value)
            if parse_date(value, fmt) is None:
                unparsed += 1

        matched = sum(format_counts.values())
        if len(format_counts) < 2 or not self.meets_threshold(matched, total):
            return None

        dominant, _ = format_counts.most_common(1)[0]
        summary = ", ".join(f"{name} ({count})" for name, count in format_counts.most_common())

        return self.create_pattern(
            column_name=column_name,
            description=f"{len(format_counts)} date formats detected: {summary}",
            severity=Severity.LOW,
            occurrences=matched,
            total=total,
            confidence=matched / total,
            examples=[f"{name}: {example}" for name, example in examples.items()],
            suggested_fix="Convert all to ISO-8601 (yyyy-MM-dd)",
            details={
                "variation_kind": "date",
                "formats": dict(format_counts),
                "dominant_format": dominant,
                "unparsed_dates": unparsed,
            },
        )

    def _detect_numbers(
        self, present: list[str], total: int, column_name: str
    ) -> DetectedPattern | None:
        kinds = [number_format_kind(v) for v in present]
        numeric = [k for k in kinds if k is not None]
        if not present or len(numeric) / len(present) <= DOMINANT_TYPE_RATIO:
            return None

        kind_counts = Counter(numeric)
        formatted = len(numeric) - kind_counts.get("plain", 0)
        if len(kind_counts) < 2 or not self.meets_threshold(formatted, total):
            return None

        examples = [v for v, k in zip(present, kinds, strict=True) if k not in (None, "plain")]
        summary = ", ".join(f"{kind} ({count})" for kind, count in kind_counts.most_common())

        return self.create_pattern(
            column_name=column_name,
            description=f"Number format variations: {summary}",
            severity=Severity.LOW,
            occurrences=formatted,
            total=total,
            confidence=NUMBER_FORMAT_CONFIDENCE,
            examples=list(dict.fromkeys(examples)),
            suggested_fix="Remove thousand separators, standardize decimal point to dot (.)",
            details={"variation_kind": "number", "number_formats": dict(kind_counts)},
        )

    def _detect_booleans(
        self, present: list[str], total: int, column_name: str
    ) -> DetectedPattern | None:
        if not present:
            return None
        numeric = sum(1 for v in present if parse_number(v) is not None)
        if numeric / len(present) > DOMINANT_TYPE_RATIO:
            return None

        booleans = [v for v in present if parse_boolean(v) is not None]
        if len(booleans) / len(present) <= DOMINANT_TYPE_RATIO:
            return None

        spellings = Counter(v.upper() for v in booleans)
        # A plain true/false pair is not a variation
        if len(spellings) <= 2:
            return None

        nonstandard = [v for v in booleans if v not in ("true", "false")]
        if not self.meets_threshold(len(nonstandard), total):
            return None

        return self.create_pattern(
            column_name=column_name,
            description=f"Boolean format variations: {', '.join(list(spellings)[:5])}",
            severity=Severity.LOW,
            occurrences=len(nonstandard),
            total=total,
            confidence=BOOLEAN_FORMAT_CONFIDENCE,
            examples=list(dict.fromkeys(nonstandard)),
            suggested_fix="Convert all booleans to true/false",
            details={"variation_kind": "boolean", "spellings": dict(spellings)},
        )
