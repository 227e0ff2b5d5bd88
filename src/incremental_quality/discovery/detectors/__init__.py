"""Pattern detectors.

Built-in detectors, in execution order:
- MissingValueDetector: nulls, blanks and missing indicators
- TypeInconsistencyDetector: mixed numeric/text columns
- FormatVariationDetector: mixed date, number or boolean formats
- OutlierDetector: z-score outliers in numeric columns
- CategoryVariationDetector: case variants and near-duplicate categories
- EncodingIssueDetector: replacement characters and mojibake
- WhitespaceDetector: surrounding or repeated whitespace
"""

from incremental_quality.core.config import DetectionConfig
from incremental_quality.discovery.detectors.base import DetectorRegistry, PatternDetector
from incremental_quality.discovery.detectors.categories import CategoryVariationDetector
from incremental_quality.discovery.detectors.encoding import (
    EncodingIssueDetector,
    has_encoding_issue,
    repair_mojibake,
)
from incremental_quality.discovery.detectors.formats import (
    FormatVariationDetector,
    classify_date,
    match_date_format,
    normalize_number_text,
    parse_boolean,
    parse_date,
    resolve_date_formats,
)
from incremental_quality.discovery.detectors.missing import MissingValueDetector
from incremental_quality.discovery.detectors.outliers import OutlierDetector
from incremental_quality.discovery.detectors.types import TypeInconsistencyDetector
from incremental_quality.discovery.detectors.whitespace import (
    WhitespaceDetector,
    has_whitespace_issue,
)

BUILTIN_DETECTORS: list[type[PatternDetector]] = [
    MissingValueDetector,
    TypeInconsistencyDetector,
    FormatVariationDetector,
    OutlierDetector,
    CategoryVariationDetector,
    EncodingIssueDetector,
    WhitespaceDetector,
]


def register_builtin_detectors(
    registry: DetectorRegistry, config: DetectionConfig | None = None
) -> None:
    """Register all built-in detectors on a registry."""
    for detector_class in BUILTIN_DETECTORS:
        registry.register(detector_class(config))


def create_default_registry(config: DetectionConfig | None = None) -> DetectorRegistry:
    """Registry holding every built-in detector."""
    registry = DetectorRegistry()
    register_builtin_detectors(registry, config)
    return registry


__all__ = [
    "BUILTIN_DETECTORS",
    "CategoryVariationDetector",
    "DetectorRegistry",
    "EncodingIssueDetector",
    "FormatVariationDetector",
    "MissingValueDetector",
    "OutlierDetector",
    "PatternDetector",
    "TypeInconsistencyDetector",
    "WhitespaceDetector",
    "create_default_registry",
    "has_encoding_issue",
    "has_whitespace_issue",
    "classify_date",
    "match_date_format",
    "normalize_number_text",
    "parse_boolean",
    "parse_date",
    "register_builtin_detectors",
    "repair_mojibake",
    "resolve_date_formats",
]
