"""Rule application engine.

Applies approved preprocessing rules to a raw dataset. Each rule type maps
to a handler that rewrites the affected column(s) according to the action
bound during review (parameters["action"]) or the rule type's default.

Handlers return the new frame and the number of rows they changed, plus
optional details carried into the result (dates report values they could
not convert). A failing handler produces a failed RuleApplicationResult; the pass continues
unless continue_on_failure is False.
"""

from __future__ import annotations

import math
import re
import time
from collections import Counter
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import numpy as np
import pandas as pd

from incremental_quality.analysis.statistics import is_missing, numeric_values, parse_number
from incremental_quality.application.models import BulkApplicationResult, RuleApplicationResult
from incremental_quality.core.config import DetectionConfig
from incremental_quality.core.logging import (
    get_logger,
    record_operation_timing,
    record_rules_applied,
)
from incremental_quality.discovery.detectors.encoding import (
    REPLACEMENT_CHAR,
    has_encoding_issue,
    repair_mojibake,
)
from incremental_quality.discovery.detectors.formats import (
    classify_date,
    normalize_number_text,
    parse_boolean,
    parse_date,
    resolve_date_formats,
)
from incremental_quality.discovery.models import PreprocessingRule, RuleType
from incremental_quality.hitl.models import ActionType

logger = get_logger(__name__)

ISO_DATE = "%Y-%m-%d"

# Cell-level cleanup runs before value-level decisions
APPLICATION_ORDER: dict[RuleType, int] = {
    RuleType.ENCODING_NORMALIZATION: 0,
    RuleType.WHITESPACE_NORMALIZATION: 1,
    RuleType.CASE_NORMALIZATION: 2,
    RuleType.CATEGORY_MAPPING: 3,
    RuleType.UNKNOWN_CATEGORY_MAPPING: 3,
    RuleType.DATE_FORMAT_STANDARDIZATION: 4,
    RuleType.NUMERIC_FORMAT_STANDARDIZATION: 5,
    RuleType.BOOLEAN_FORMAT_STANDARDIZATION: 5,
    RuleType.TYPE_CONVERSION: 6,
    RuleType.MISSING_VALUE_STRATEGY: 7,
    RuleType.OUTLIER_HANDLING: 8,
    RuleType.DUPLICATE_HANDLING: 9,
    RuleType.BUSINESS_LOGIC_DECISION: 10,
}

_MISSING_STRATEGIES: dict[str, ActionType] = {
    "impute_mean": ActionType.FILL_MEAN,
    "impute_median": ActionType.FILL_MEDIAN,
    "impute_mode": ActionType.FILL_MODE,
    "drop": ActionType.DROP_ROWS,
}

_WHITESPACE_RUN = re.compile(r"\s+")


class RuleSkipped(Exception):
    """Raised by a handler that deliberately leaves the data untouched."""


@runtime_checkable
class RuleApplier(Protocol):
    """Applies approved rules to the full dataset."""

    def apply(
        self, data: pd.DataFrame, rules: Sequence[PreprocessingRule]
    ) -> BulkApplicationResult: ...


def format_number(value: float) -> str:
    """Render a float the way numeric cells are written back."""
    if value.is_integer() and abs(value) < 1e15:
        return str(int(value))
    return repr(value)


def _to_number(value: Any) -> float | None:
    if isinstance(value, str):
        value = normalize_number_text(value) or value
    return parse_number(value)


def changed_cells(before: pd.Series, after: pd.Series) -> int:
    return sum(
        1
        for a, b in zip(before.tolist(), after.tolist(), strict=True)
        if a != b and not (a is None and b is None)
    )


def write_output(frame: pd.DataFrame, path: Path | str, chunk_size: int | None = None) -> Path:
    """Write a cleaned frame as CSV, creating parent directories."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    frame.to_csv(target, index=False, chunksize=chunk_size)
    logger.info("cleaned_dataset_written", path=str(target), rows=len(frame))
    return target


# New frame and rows changed, optionally with details for the result
type HandlerOutput = tuple[pd.DataFrame, int] | tuple[pd.DataFrame, int, dict[str, Any]]
type Handler = Callable[[pd.DataFrame, PreprocessingRule], HandlerOutput]


class DataFrameRuleApplier:
    """pandas implementation of RuleApplier."""

    def __init__(
        self,
        continue_on_failure: bool = True,
        config: DetectionConfig | None = None,
    ):
        self.continue_on_failure = continue_on_failure
        self.config = config or DetectionConfig()
        self._handlers: dict[RuleType, Handler] = {
            RuleType.WHITESPACE_NORMALIZATION: self._normalize_whitespace,
            RuleType.DATE_FORMAT_STANDARDIZATION: self._standardize_dates,
            RuleType.ENCODING_NORMALIZATION: self._normalize_encoding,
            RuleType.CASE_NORMALIZATION: self._map_categories,
            RuleType.CATEGORY_MAPPING: self._map_categories,
            RuleType.UNKNOWN_CATEGORY_MAPPING: self._map_categories,
            RuleType.NUMERIC_FORMAT_STANDARDIZATION: self._standardize_numbers,
            RuleType.BOOLEAN_FORMAT_STANDARDIZATION: self._standardize_booleans,
            RuleType.MISSING_VALUE_STRATEGY: self._handle_missing,
            RuleType.OUTLIER_HANDLING: self._handle_outliers,
            RuleType.TYPE_CONVERSION: self._convert_type,
            RuleType.DUPLICATE_HANDLING: self._drop_duplicates,
            RuleType.BUSINESS_LOGIC_DECISION: self._skip_business_rule,
        }

    def apply(
        self, data: pd.DataFrame, rules: Sequence[PreprocessingRule]
    ) -> BulkApplicationResult:
        """Apply rules in dependency order.

        Args:
            data: Full raw dataset; not modified
            rules: Approved rules

        Returns:
            BulkApplicationResult with per-rule outcomes and the cleaned frame
        """
        start = time.time()
        frame = data.copy()
        ordered = sorted(rules, key=lambda r: APPLICATION_ORDER.get(r.rule_type, 99))
        results: list[RuleApplicationResult] = []
        stopped_early = False

        for rule in ordered:
            frame, result = self._apply_rule(frame, rule)
            results.append(result)
            if not result.success and not self.continue_on_failure:
                stopped_early = True
                logger.warning(
                    "rule_application_stopped",
                    rule_id=rule.id,
                    remaining=len(ordered) - len(results),
                )
                break

        bulk = BulkApplicationResult(
            results=results,
            rows_before=len(data),
            rows_after=len(frame),
            stopped_early=stopped_early,
            duration_seconds=time.time() - start,
            frame=frame,
        )
        record_rules_applied(bulk.applied_count)
        record_operation_timing("apply_rules", bulk.duration_seconds)
        logger.info(
            "rules_applied",
            applied=bulk.applied_count,
            skipped=bulk.skipped_count,
            failed=bulk.failed_count,
            rows_before=bulk.rows_before,
            rows_after=bulk.rows_after,
        )
        return bulk

    def _apply_rule(
        self, frame: pd.DataFrame, rule: PreprocessingRule
    ) -> tuple[pd.DataFrame, RuleApplicationResult]:
        start = time.time()
        action = rule.parameters.get("action")
        base: dict[str, Any] = {
            "rule_id": rule.id,
            "rule_type": rule.rule_type,
            "column_names": list(rule.column_names),
            "action": action,
        }

        handler = self._handlers.get(rule.rule_type)
        try:
            if handler is None:
                raise ValueError(f"No handler for rule type {rule.rule_type.value}")
            if action == ActionType.REJECT.value:
                raise RuleSkipped("rejected during review")
            output = handler(frame, rule)
        except RuleSkipped as e:
            logger.info("rule_skipped", rule_id=rule.id, reason=str(e))
            return frame, RuleApplicationResult(
                **base,
                success=True,
                skipped=True,
                message=str(e),
                duration_seconds=time.time() - start,
            )
        except Exception as e:
            logger.warning("rule_application_failed", rule_id=rule.id, error=str(e))
            return frame, RuleApplicationResult(
                **base,
                success=False,
                error=str(e),
                duration_seconds=time.time() - start,
            )

        new_frame, rows = output[0], output[1]
        details = output[2] if len(output) > 2 else {}
        logger.debug("rule_applied", rule_id=rule.id, rows_affected=rows)
        return new_frame, RuleApplicationResult(
            **base,
            success=True,
            rows_affected=rows,
            message=rule.transformation,
            details=details,
            duration_seconds=time.time() - start,
        )

    # --- helpers ---

    @staticmethod
    def _column(frame: pd.DataFrame, rule: PreprocessingRule) -> str:
        if not rule.column_names:
            raise ValueError(f"Rule {rule.id} names no column")
        name = rule.column_names[0]
        if name not in frame.columns:
            raise KeyError(f"Column '{name}' not found in dataset")
        return name

    @staticmethod
    def _action(rule: PreprocessingRule, default: ActionType) -> ActionType:
        raw = rule.parameters.get("action")
        if raw is None:
            return default
        try:
            return ActionType(raw)
        except ValueError as e:
            raise ValueError(f"Unknown action '{raw}' for rule {rule.id}") from e

    def _rewrite(
        self, frame: pd.DataFrame, name: str, fn: Callable[[Any], Any]
    ) -> tuple[pd.DataFrame, int]:
        before = frame[name]
        after = pd.Series(
            [v if v is None else fn(v) for v in before.tolist()],
            index=before.index,
            dtype=object,
        )
        frame = frame.copy()
        frame[name] = after
        return frame, changed_cells(before, after)

    # --- auto-resolvable rules ---

    def _normalize_whitespace(
        self, frame: pd.DataFrame, rule: PreprocessingRule
    ) -> tuple[pd.DataFrame, int]:
        name = self._column(frame, rule)
        trim = rule.parameters.get("trim", True)
        collapse = rule.parameters.get("collapse_spaces", True)

        def clean(value: Any) -> Any:
            if not isinstance(value, str):
                return value
            text = value.strip() if trim else value
            return _WHITESPACE_RUN.sub(" ", text) if collapse else text

        return self._rewrite(frame, name, clean)

    def _standardize_dates(
        self, frame: pd.DataFrame, rule: PreprocessingRule
    ) -> HandlerOutput:
        name = self._column(frame, rule)
        detected = rule.parameters.get("formats")
        # Formats seen during discovery first; the rest remain as fallbacks
        formats = sorted(
            self.config.date_formats,
            key=lambda f: 0 if not detected or f.name in detected else 1,
        )
        present = [v for v in frame[name].tolist() if isinstance(v, str) and v.strip()]
        resolved = resolve_date_formats(present, formats)
        unconverted: list[str] = []
        used: set[str] = set()

        def to_iso(value: Any) -> Any:
            if not isinstance(value, str):
                return value
            fmt = classify_date(value, formats, resolved)
            if fmt is None:
                return value
            parsed = parse_date(value, fmt)
            if parsed is None:
                # Shape matched but not a calendar date
                unconverted.append(value)
                return value
            used.add(fmt.name)
            return parsed.strftime(ISO_DATE)

        frame, rows = self._rewrite(frame, name, to_iso)
        if unconverted:
            logger.warning(
                "dates_not_converted",
                rule_id=rule.id,
                column=name,
                count=len(unconverted),
                examples=unconverted[:3],
            )
        details = {
            "converted_formats": sorted(used),
            "unconverted": len(unconverted),
        }
        return frame, rows, details

    def _normalize_encoding(
        self, frame: pd.DataFrame, rule: PreprocessingRule
    ) -> tuple[pd.DataFrame, int]:
        name = self._column(frame, rule)

        def repair(value: Any) -> Any:
            if not isinstance(value, str) or not has_encoding_issue(value):
                return value
            text = repair_mojibake(value) or value
            return text.replace(REPLACEMENT_CHAR, "")

        return self._rewrite(frame, name, repair)

    def _map_categories(
        self, frame: pd.DataFrame, rule: PreprocessingRule
    ) -> tuple[pd.DataFrame, int]:
        name = self._column(frame, rule)
        action = self._action(rule, ActionType.MERGE_CATEGORIES)
        if action in (ActionType.KEEP_CATEGORIES, ActionType.KEEP_AS_IS):
            return frame, 0

        mapping: dict[str, str] = rule.parameters.get("mapping") or {}
        if not mapping:
            raise ValueError(f"Rule {rule.id} has no category mapping")

        if action == ActionType.MERGE_PRESERVE:
            frame = frame.copy()
            position = frame.columns.get_loc(name) + 1
            frame.insert(position, f"{name}_original", frame[name].astype(object))

        def canonical(value: Any) -> Any:
            key = str(value).strip()
            return mapping.get(key, value)

        return self._rewrite(frame, name, canonical)

    def _standardize_numbers(
        self, frame: pd.DataFrame, rule: PreprocessingRule
    ) -> tuple[pd.DataFrame, int]:
        name = self._column(frame, rule)

        def plain_number(value: Any) -> Any:
            if not isinstance(value, str):
                return value
            return normalize_number_text(value) or value

        return self._rewrite(frame, name, plain_number)

    def _standardize_booleans(
        self, frame: pd.DataFrame, rule: PreprocessingRule
    ) -> tuple[pd.DataFrame, int]:
        name = self._column(frame, rule)

        def true_false(value: Any) -> Any:
            if not isinstance(value, str):
                return value
            flag = parse_boolean(value)
            if flag is None:
                return value
            return "true" if flag else "false"

        return self._rewrite(frame, name, true_false)

    # --- review-required rules ---

    def _default_missing_action(self, rule: PreprocessingRule) -> ActionType:
        strategy = rule.parameters.get("strategy", "impute_median")
        return _MISSING_STRATEGIES.get(strategy, ActionType.FILL_MEDIAN)

    def _handle_missing(
        self, frame: pd.DataFrame, rule: PreprocessingRule
    ) -> tuple[pd.DataFrame, int]:
        name = self._column(frame, rule)
        action = self._action(rule, self._default_missing_action(rule))
        indicators = self.config.missing_indicator_set
        values = frame[name].tolist()
        mask = pd.Series(
            [is_missing(v, indicators) for v in values], index=frame.index, dtype=bool
        )
        missing = int(mask.sum())
        if missing == 0 or action == ActionType.KEEP_AS_IS:
            return frame, 0

        if action in (ActionType.DROP_ROWS, ActionType.DELETE_ROWS):
            return frame.loc[~mask].copy(), missing

        present = [v for v, m in zip(values, mask.tolist(), strict=True) if not m]
        fill = self._fill_value(rule, action, present)

        frame = frame.copy()
        column = frame[name].astype(object)
        column[mask] = fill
        frame[name] = column
        return frame, missing

    @staticmethod
    def _fill_value(rule: PreprocessingRule, action: ActionType, present: list[Any]) -> Any:
        if action == ActionType.FILL_CONSTANT:
            if "constant_value" not in rule.parameters:
                raise ValueError("fill_constant requires a constant_value")
            constant = rule.parameters["constant_value"]
            return format_number(float(constant)) if isinstance(constant, int | float) else constant

        numbers = numeric_values(present)
        if action in (ActionType.FILL_MEAN, ActionType.FILL_MEDIAN) and numbers:
            stat = np.mean(numbers) if action == ActionType.FILL_MEAN else np.median(numbers)
            return format_number(float(stat))

        if action in (ActionType.FILL_MEAN, ActionType.FILL_MEDIAN, ActionType.FILL_MODE):
            if not present:
                raise ValueError("No present values to impute from")
            return Counter(str(v).strip() for v in present).most_common(1)[0][0]

        raise ValueError(f"Action {action.value} does not apply to missing values")

    def _outlier_bounds(self, rule: PreprocessingRule, numbers: list[float]) -> tuple[float, float]:
        lower = rule.parameters.get("lower_bound")
        upper = rule.parameters.get("upper_bound")
        if lower is not None and upper is not None:
            return float(lower), float(upper)
        if not numbers:
            raise ValueError("No numeric values to bound")
        threshold = float(rule.parameters.get("std_threshold", self.config.outlier_std_threshold))
        mean = float(np.mean(numbers))
        std = float(np.std(numbers))
        return mean - threshold * std, mean + threshold * std

    def _handle_outliers(
        self, frame: pd.DataFrame, rule: PreprocessingRule
    ) -> tuple[pd.DataFrame, int]:
        name = self._column(frame, rule)
        action = self._action(rule, ActionType.CAP_OUTLIERS)
        if action == ActionType.KEEP_AS_IS:
            return frame, 0

        parsed = [parse_number(v) for v in frame[name].tolist()]

        if action == ActionType.TRANSFORM:

            def signed_log1p(value: Any) -> Any:
                number = parse_number(value)
                if number is None:
                    return value
                return format_number(math.copysign(math.log1p(abs(number)), number))

            return self._rewrite(frame, name, signed_log1p)

        lower, upper = self._outlier_bounds(rule, [p for p in parsed if p is not None])
        outside = pd.Series(
            [p is not None and (p < lower or p > upper) for p in parsed],
            index=frame.index,
            dtype=bool,
        )

        if action == ActionType.REMOVE_OUTLIERS:
            return frame.loc[~outside].copy(), int(outside.sum())

        if action == ActionType.CAP_OUTLIERS:

            def cap(value: Any) -> Any:
                number = parse_number(value)
                if number is None or lower <= number <= upper:
                    return value
                return format_number(float(np.clip(number, lower, upper)))

            return self._rewrite(frame, name, cap)

        raise ValueError(f"Action {action.value} does not apply to outliers")

    def _convert_type(
        self, frame: pd.DataFrame, rule: PreprocessingRule
    ) -> tuple[pd.DataFrame, int]:
        name = self._column(frame, rule)
        majority = rule.parameters.get("majority_type", "numeric")
        default = ActionType.TO_NUMERIC if majority == "numeric" else ActionType.TO_TEXT
        action = self._action(rule, default)

        if action == ActionType.KEEP_MIXED:
            return frame, 0

        if action == ActionType.TO_NUMERIC:
            # Non-numeric cells become null
            return self._rewrite(frame, name, _to_number)

        if action == ActionType.TO_TEXT:
            return self._rewrite(frame, name, lambda v: str(v).strip())

        if action == ActionType.SPLIT_COLUMN:
            values = frame[name].tolist()
            numbers = [None if v is None else _to_number(v) for v in values]
            texts = [
                v if v is not None and n is None else None
                for v, n in zip(values, numbers, strict=True)
            ]
            frame = frame.copy()
            position = frame.columns.get_loc(name)
            frame = frame.drop(columns=[name])
            frame.insert(position, f"{name}_numeric", pd.Series(numbers, index=frame.index, dtype=object))
            frame.insert(position + 1, f"{name}_text", pd.Series(texts, index=frame.index, dtype=object))
            return frame, sum(1 for v in values if v is not None)

        raise ValueError(f"Action {action.value} does not apply to type conversion")

    def _drop_duplicates(
        self, frame: pd.DataFrame, rule: PreprocessingRule
    ) -> tuple[pd.DataFrame, int]:
        action = self._action(rule, ActionType.DROP_ROWS)
        if action == ActionType.KEEP_AS_IS:
            return frame, 0
        subset = [c for c in rule.column_names if c in frame.columns] or None
        deduplicated = frame.drop_duplicates(subset=subset, keep="first")
        return deduplicated.copy(), len(frame) - len(deduplicated)

    def _skip_business_rule(
        self, frame: pd.DataFrame, rule: PreprocessingRule
    ) -> tuple[pd.DataFrame, int]:
        custom = rule.parameters.get("custom_logic")
        if custom:
            raise RuleSkipped(f"custom handling recorded for manual follow-up: {custom}")
        raise RuleSkipped("business decision recorded; no transformation inferred")
