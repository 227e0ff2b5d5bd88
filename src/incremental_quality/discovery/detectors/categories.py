"""Category variation detector.

Finds spelling variants of the same category in low-cardinality text
columns:
- case variations ("Seoul", "SEOUL", "seoul")
- near duplicates by Levenshtein similarity ("Seoul", "Seuol")

The canonical spelling of a group is its most frequent one; affected rows
are the rows holding any other spelling.
"""

from __future__ import annotations

from collections import Counter

import pandas as pd
from rapidfuzz.distance import Levenshtein

from incremental_quality.analysis.statistics import is_missing
from incremental_quality.core.models.base import Severity
from incremental_quality.discovery.detectors.base import PatternDetector
from incremental_quality.discovery.detectors.formats import match_date_format, number_format_kind
from incremental_quality.discovery.models import DetectedPattern, PatternType

CASE_CONFIDENCE = 0.95
SIMILARITY_CONFIDENCE = 0.80


class CategoryVariationDetector(PatternDetector):
    """Detector for inconsistent category spellings.

    Applies to text columns (less than half of the present values numeric or
    date-shaped) with at most category_max_distinct distinct trimmed values.
    """

    detector_id = "category_variation"
    pattern_type = PatternType.CATEGORY_VARIATION
    description = "Detects case variations and near-duplicate categories"

    def _present(self, column: pd.Series) -> list[str]:
        indicators = self.config.missing_indicator_set
        return [str(v).strip() for v in column.tolist() if not is_missing(v, indicators)]

    def is_applicable(self, column: pd.Series) -> bool:
        present = self._present(column)
        if not present:
            return False
        shaped = sum(
            1
            for v in present
            if number_format_kind(v) is not None
            or match_date_format(v, self.config.date_formats) is not None
        )
        if shaped / len(present) >= 0.5:
            return False
        return len(set(present)) <= self.config.category_max_distinct

    def detect(self, column: pd.Series, column_name: str) -> list[DetectedPattern]:
        total = len(column)
        spellings = Counter(self._present(column))
        if not spellings or len(spellings) > self.config.category_max_distinct:
            return []

        # Group spellings by case-insensitive key, most frequent spelling first
        groups: dict[str, Counter[str]] = {}
        for spelling, count in spellings.most_common():
            groups.setdefault(spelling.upper(), Counter())[spelling] = count

        patterns: list[DetectedPattern] = []

        case_pattern = self._detect_case_variations(column_name, groups, total)
        if case_pattern is not None:
            patterns.append(case_pattern)

        similar_pattern = self._detect_similar_categories(column_name, groups, total)
        if similar_pattern is not None:
            patterns.append(similar_pattern)

        return patterns

    def _detect_case_variations(
        self, column_name: str, groups: dict[str, Counter[str]], total: int
    ) -> DetectedPattern | None:
        mapping: dict[str, str] = {}
        affected = 0
        examples: list[str] = []
        for group in groups.values():
            if len(group) < 2:
                continue
            canonical = group.most_common(1)[0][0]
            for spelling, count in group.items():
                if spelling != canonical:
                    mapping[spelling] = canonical
                    affected += count
            examples.append(", ".join(group))

        if not self.meets_threshold(affected, total):
            return None

        variant_groups = len(examples)
        return self.create_pattern(
            column_name=column_name,
            description=f"Case variations in {variant_groups} categories",
            severity=Severity.LOW,
            occurrences=affected,
            total=total,
            confidence=CASE_CONFIDENCE,
            examples=examples,
            suggested_fix="Normalize each category to its most frequent spelling",
            details={"variation_kind": "case", "mapping": mapping},
        )

    def _detect_similar_categories(
        self, column_name: str, groups: dict[str, Counter[str]], total: int
    ) -> DetectedPattern | None:
        threshold = self.config.category_similarity_threshold

        # Most frequent groups become canonical first
        ordered = sorted(groups.items(), key=lambda kv: -sum(kv[1].values()))
        roots: list[tuple[str, str]] = []  # (key, canonical spelling)
        mapping: dict[str, str] = {}
        affected = 0
        examples: list[str] = []

        for key, group in ordered:
            match = next(
                (
                    (root_key, canonical)
                    for root_key, canonical in roots
                    if Levenshtein.normalized_similarity(key, root_key) >= threshold
                ),
                None,
            )
            if match is None:
                roots.append((key, group.most_common(1)[0][0]))
                continue

            _, canonical = match
            for spelling, count in group.items():
                mapping[spelling] = canonical
                affected += count
            examples.append(f"{group.most_common(1)[0][0]} ~ {canonical}")

        if not self.meets_threshold(affected, total):
            return None

        return self.create_pattern(
            column_name=column_name,
            description=f"{len(examples)} similar category pairs (potential typos)",
            severity=Severity.MEDIUM,
            occurrences=affected,
            total=total,
            confidence=SIMILARITY_CONFIDENCE,
            examples=examples,
            suggested_fix="Review similar categories and merge if typos, keep separate if distinct",
            details={"variation_kind": "similarity", "mapping": mapping},
        )
