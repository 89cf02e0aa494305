"""Suggestion rule engine for player-facing bowing cues.

Rules are evaluated against a flat (or nested) mapping of metrics computed for
the current frame and return the matched cues, most important first. Rules can
be provided as Python objects (dict/list) or loaded from a JSON file.

Rule shape (JSON / dict):
    {
      "rule_id": "bow_not_straight",
      "priority": 60,
      "severity": "warning",
      "feedback_text": "Focus on keeping the bow parallel to the bridge ...",
      "condition": {"metric": "straightness", "op": "<", "value": 70, "unit": "score"}
    }

Condition operators:
  - Comparisons: >, <, >=, <=, ==, !=
  - Range checks: "range" / "between" / "in_range" (inclusive)
  - Logic: {"all": [..]} (AND), {"any": [..]} (OR), {"not": {...}}

Metric lookup:
  - If the exact `metric` key exists in the provided mapping, that value is used.
  - Otherwise, `metric` is treated as a dotted path into nested dicts
    (e.g. `bow_arm.wrist_angle`).
  - Optional metric aliases map friendlier names to canonical keys.

Boolean flags are passed as 1.0/0.0; `True`/`False` themselves are not
numeric here and never match.
"""

from __future__ import annotations

import json
import math
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional, Sequence, Tuple

_SEVERITY_RANK = {"info": 0, "warning": 1, "critical": 2}
_RANGE_OPS = {"range", "between", "in_range"}


BOWING_RULES_CONFIG: dict[str, object] = {
    "version": 1,
    "metric_aliases": {
        "bow_speed": ["speed"],
        "bow_straightness": ["straightness"],
    },
    "rules": [
        {
            "rule_id": "bow_not_straight",
            "priority": 60,
            "severity": "warning",
            "feedback_text": "Focus on keeping the bow parallel to the bridge for a straighter stroke",
            "condition": {"metric": "straightness", "op": "<", "value": 70, "unit": "score"},
        },
        {
            "rule_id": "bow_change_rough",
            "priority": 50,
            "severity": "warning",
            "feedback_text": "Work on smoother bow changes - think of a figure-8 motion at the frog and tip",
            "condition": {"metric": "bow_change_smooth", "op": "==", "value": 0},
        },
        {
            "rule_id": "bow_speed_fast",
            "priority": 40,
            "severity": "info",
            "feedback_text": "Your bow speed is quite fast - consider using more bow with controlled speed",
            "condition": {"metric": "speed", "op": ">", "value": 500, "unit": "px/s"},
        },
        {
            "rule_id": "bow_speed_slow",
            "priority": 30,
            "severity": "info",
            "feedback_text": "Your bow speed is slow - try using more arm weight and bow speed for better tone",
            "condition": {
                "all": [
                    {"metric": "speed", "op": "<", "value": 50, "unit": "px/s"},
                    {"metric": "is_moving", "op": "==", "value": 1},
                ]
            },
        },
        {
            "rule_id": "near_frog",
            "priority": 20,
            "severity": "info",
            "feedback_text": "You're playing near the frog - use arm weight rather than pressure",
            "condition": {"metric": "stick_position_index", "op": "range", "min": 0, "max": 1},
        },
        {
            "rule_id": "near_tip",
            "priority": 10,
            "severity": "info",
            "feedback_text": "You're playing near the tip - use slightly more bow speed to compensate",
            "condition": {"metric": "stick_position_index", "op": "range", "min": 3, "max": 4},
        },
    ],
}


def _technique_rule(rule_id: str, priority: int, text: str, condition: dict[str, object]) -> dict[str, object]:
    return {
        "rule_id": rule_id,
        "priority": priority,
        "severity": "warning",
        "feedback_text": text,
        "condition": condition,
    }


TECHNIQUE_RULES_CONFIG: dict[str, object] = {
    "version": 1,
    "metric_aliases": {},
    "rules": [
        _technique_rule(
            "shoulders_tense",
            150,
            "Try to relax your shoulders. Tension can affect your bowing and cause fatigue.",
            {"metric": "posture.shoulders_tense", "op": "==", "value": 1},
        ),
        _technique_rule(
            "shoulders_uneven",
            145,
            "Keep your shoulders level. Uneven shoulders can affect your posture and playing.",
            {"metric": "posture.shoulder_level_abs", "op": ">", "value": 0.15},
        ),
        _technique_rule(
            "head_tilted",
            140,
            "Keep your head in a neutral position. Excessive tilting can cause neck strain.",
            {"metric": "posture.head_tilted", "op": "==", "value": 1},
        ),
        _technique_rule(
            "head_forward",
            135,
            "Avoid leaning your head too far forward. This can cause neck and back strain.",
            {"metric": "posture.head_forward", "op": "==", "value": 1},
        ),
        _technique_rule(
            "spine_not_upright",
            130,
            "Maintain an upright spine. Good posture is the foundation of good technique.",
            {"metric": "posture.spine_alignment", "op": "<", "value": 70},
        ),
        _technique_rule(
            "bow_elbow_too_high",
            125,
            "Lower your bow elbow slightly. It should be relaxed, not lifted.",
            {"metric": "bow_arm.elbow_too_high", "op": "==", "value": 1},
        ),
        _technique_rule(
            "bow_elbow_too_low",
            120,
            "Raise your bow elbow a bit. Keeping it too low restricts bow movement.",
            {"metric": "bow_arm.elbow_too_low", "op": "==", "value": 1},
        ),
        _technique_rule(
            "bow_wrist_stiff",
            115,
            "Allow more flexibility in your bow wrist. A flexible wrist enables smooth bow changes.",
            {"metric": "bow_arm.wrist_angle", "op": "<", "value": 140, "unit": "degrees"},
        ),
        _technique_rule(
            "bow_not_straight",
            110,
            "Focus on keeping your bow straight and parallel to the bridge.",
            {"metric": "bow_arm.bow_straightness", "op": "<", "value": 60},
        ),
        _technique_rule(
            "thumb_too_high",
            105,
            "Lower your left thumb slightly. It should be relaxed and opposite your first or second finger.",
            {"metric": "left_hand.thumb_too_high", "op": "==", "value": 1},
        ),
        _technique_rule(
            "thumb_too_low",
            100,
            "Raise your left thumb a bit. It shouldn't collapse below the neck.",
            {"metric": "left_hand.thumb_too_low", "op": "==", "value": 1},
        ),
        _technique_rule(
            "left_wrist_bent",
            95,
            "Keep your left wrist relatively straight. Excessive bending limits finger movement.",
            {"not": {"metric": "left_hand.wrist_angle", "op": "range", "min": 140, "max": 185, "unit": "degrees"}},
        ),
        _technique_rule(
            "no_chin_contact",
            90,
            "Make sure your chin is resting on the chin rest for stability.",
            {"metric": "instrument.chin_contact", "op": "==", "value": 0},
        ),
        _technique_rule(
            "scroll_too_high",
            85,
            "Lower the violin scroll slightly. The violin should be roughly horizontal.",
            {"metric": "instrument.scroll_too_high", "op": "==", "value": 1},
        ),
        _technique_rule(
            "scroll_too_low",
            80,
            "Raise the violin scroll. A drooping scroll makes playing in higher positions difficult.",
            {"metric": "instrument.scroll_too_low", "op": "==", "value": 1},
        ),
    ],
}

DEFAULT_RULES_CONFIG = BOWING_RULES_CONFIG


def _load_jsonish(value: Any) -> dict:
    if isinstance(value, Mapping):
        return dict(value)
    path = Path(value)
    payload = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        raise ValueError(f"Expected a JSON object in {path}.")
    return payload


def _coerce_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        num = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(num):
        return None
    return num


def _normalize_aliases(raw: Any) -> dict[str, list[str]]:
    aliases: dict[str, list[str]] = {}
    if not isinstance(raw, Mapping):
        return aliases
    for key, value in raw.items():
        if not key:
            continue
        if isinstance(value, str):
            targets = [value.strip()] if value.strip() else []
        elif isinstance(value, Sequence):
            targets = [item.strip() for item in value if isinstance(item, str) and item.strip()]
        else:
            targets = []
        if targets:
            aliases[str(key)] = targets
    return aliases


def load_rules_config(rules_config: Any | None = None) -> dict[str, object]:
    """Load/normalize a rules config.

    Accepted inputs:
      - None: the built-in bowing rules.
      - Path/str: JSON file path.
      - dict: either a full config (with "rules") or a single rule object.
      - list: a list of rule objects.
    """
    if rules_config is None:
        return dict(BOWING_RULES_CONFIG)

    if isinstance(rules_config, (str, Path)):
        loaded = _load_jsonish(rules_config)
        if "rules" not in loaded:
            raise ValueError("Rules config JSON must include a top-level 'rules' list.")
        return loaded

    if isinstance(rules_config, list):
        return {"version": 1, "metric_aliases": {}, "rules": list(rules_config)}

    if isinstance(rules_config, Mapping):
        cfg = dict(rules_config)
        if "rules" in cfg:
            return cfg
        if "rule_id" in cfg and "condition" in cfg:
            return {"version": 1, "metric_aliases": {}, "rules": [cfg]}
        raise ValueError("Unsupported rules_config mapping; expected {'rules': [...]} or a single rule object.")

    raise ValueError("Unsupported rules_config type; expected None, path, dict, or list.")


def _lookup_metric(metrics: Mapping[str, Any], metric_key: str) -> Any:
    if metric_key in metrics:
        return metrics[metric_key]

    # Dotted path into nested dicts.
    current: Any = metrics
    for part in metric_key.split("."):
        if not part or not isinstance(current, Mapping) or part not in current:
            return None
        current = current[part]
    return current


def _metric_candidates(metric: str, aliases: Mapping[str, Sequence[str]]) -> list[str]:
    if not metric:
        return []
    candidates = [metric]
    for item in aliases.get(metric, ()):
        if item not in candidates:
            candidates.append(item)
    return candidates


def _coerce_range(condition: Mapping[str, Any]) -> Tuple[Optional[float], Optional[float]]:
    value = condition.get("value")
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes)) and len(value) == 2:
        return _coerce_float(value[0]), _coerce_float(value[1])
    return _coerce_float(condition.get("min")), _coerce_float(condition.get("max"))


def _compare(op: str, observed: float, condition: Mapping[str, Any]) -> bool:
    if op in _RANGE_OPS:
        lo, hi = _coerce_range(condition)
        if lo is None or hi is None:
            return False
        low, high = (lo, hi) if lo <= hi else (hi, lo)
        return low <= observed <= high

    target = _coerce_float(condition.get("value"))
    if target is None:
        return False
    if op in {">", "gt"}:
        return observed > target
    if op in {"<", "lt"}:
        return observed < target
    if op in {">=", "gte"}:
        return observed >= target
    if op in {"<=", "lte"}:
        return observed <= target
    if op in {"==", "eq"}:
        return observed == target
    if op in {"!=", "ne"}:
        return observed != target
    return False


def _eval_atomic_condition(
    condition: Mapping[str, Any],
    metrics: Mapping[str, Any],
    *,
    aliases: Mapping[str, Sequence[str]],
) -> tuple[bool, dict[str, object], list[dict[str, object]]]:
    metric = str(condition.get("metric") or "").strip()
    op = str(condition.get("op") or "").strip().lower() or "=="
    unit = condition.get("unit")

    resolved_metric: Optional[str] = None
    observed: Optional[float] = None
    for candidate in _metric_candidates(metric, aliases):
        num = _coerce_float(_lookup_metric(metrics, candidate))
        if num is not None:
            resolved_metric, observed = candidate, num
            break

    if observed is None:
        detail = {
            "type": "atomic",
            "metric": metric,
            "op": op,
            "observed": None,
            "result": False,
            "error": "metric_missing_or_non_numeric",
        }
        return False, detail, []

    result = _compare(op, observed, condition)
    target: object
    if op in _RANGE_OPS:
        lo, hi = _coerce_range(condition)
        target = {"min": lo, "max": hi}
    else:
        target = condition.get("value")

    detail = {
        "type": "atomic",
        "metric": metric,
        "resolved_metric": resolved_metric,
        "op": op,
        "target": target,
        "unit": unit,
        "observed": observed,
        "result": result,
    }
    atomic = [{"metric": metric, "resolved_metric": resolved_metric, "observed": observed, "target": target}]
    return result, detail, atomic


def _eval_condition(
    condition: Any,
    metrics: Mapping[str, Any],
    *,
    aliases: Mapping[str, Sequence[str]],
) -> tuple[bool, dict[str, object], list[dict[str, object]]]:
    if not isinstance(condition, Mapping):
        return False, {"type": "invalid", "result": False, "error": "condition_not_a_mapping"}, []

    for logic in ("all", "any"):
        if logic not in condition:
            continue
        raw = condition.get(logic)
        if not isinstance(raw, Sequence) or isinstance(raw, (str, bytes)):
            return False, {"type": logic, "result": False, "error": f"{logic}_must_be_a_list"}, []
        details: list[dict[str, object]] = []
        atoms: list[dict[str, object]] = []
        results: list[bool] = []
        for item in raw:
            ok, detail, atomic = _eval_condition(item, metrics, aliases=aliases)
            details.append(detail)
            atoms.extend(atomic)
            results.append(ok)
        combine = all if logic == "all" else any
        out = bool(results) and combine(results)
        return out, {"type": logic, logic: details, "result": out}, atoms

    if "not" in condition:
        ok, detail, atomic = _eval_condition(condition.get("not"), metrics, aliases=aliases)
        # A missing metric inside `not` must not turn into a match.
        if detail.get("error"):
            return False, {"type": "not", "not": detail, "result": False}, atomic
        return not ok, {"type": "not", "not": detail, "result": not ok}, atomic

    if "metric" in condition:
        return _eval_atomic_condition(condition, metrics, aliases=aliases)

    return False, {"type": "invalid", "result": False, "error": "unknown_condition_shape"}, []


def evaluate_rules(metrics: Any, rules_config: Any | None = None) -> list[dict[str, object]]:
    """Evaluate rules against metrics and return matched feedback entries.

    Entries are ordered by descending priority, then severity, then rule id.
    """
    values = _load_jsonish(metrics)
    cfg = load_rules_config(rules_config)

    aliases = _normalize_aliases(cfg.get("metric_aliases"))
    rules_raw = cfg.get("rules", [])
    if not isinstance(rules_raw, list):
        raise ValueError("rules_config['rules'] must be a list.")

    matches: list[dict[str, object]] = []
    for rule in rules_raw:
        if not isinstance(rule, Mapping):
            continue
        rule_id = str(rule.get("rule_id") or "").strip()
        feedback_text = str(rule.get("feedback_text") or rule.get("text") or "").strip()
        condition = rule.get("condition")
        if not rule_id or not feedback_text or condition is None:
            continue

        ok, detail, atomic = _eval_condition(condition, values, aliases=aliases)
        if not ok:
            continue

        metric_value: object = None
        if len(atomic) == 1:
            metric_value = atomic[0].get("observed")
        elif atomic:
            metric_value = {a.get("resolved_metric") or a.get("metric"): a.get("observed") for a in atomic}

        priority_raw = _coerce_float(rule.get("priority"))
        matches.append(
            {
                "rule_id": rule_id,
                "feedback_text": feedback_text,
                "condition_matched": detail,
                "metric_value": metric_value,
                "priority": int(priority_raw) if priority_raw is not None else 0,
                "severity": str(rule.get("severity") or "info").strip().lower() or "info",
            }
        )

    matches.sort(
        key=lambda m: (
            -int(m.get("priority") or 0),
            -_SEVERITY_RANK.get(str(m.get("severity")), 0),
            str(m.get("rule_id")),
        )
    )
    return matches


def suggestion_texts(matches: Iterable[Mapping[str, object]], limit: int | None = 3) -> list[str]:
    """Return the unique feedback texts of `matches` in order, truncated to `limit`."""
    texts: list[str] = []
    for match in matches:
        if limit is not None and len(texts) >= limit:
            break
        text = str(match.get("feedback_text") or "").strip()
        if text and text not in texts:
            texts.append(text)
    return texts


__all__ = [
    "BOWING_RULES_CONFIG",
    "TECHNIQUE_RULES_CONFIG",
    "DEFAULT_RULES_CONFIG",
    "load_rules_config",
    "evaluate_rules",
    "suggestion_texts",
]
