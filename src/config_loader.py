import os
from typing import Optional

import yaml

from ocr_models import DEFAULT_CRITERIA, MatchingCriteria


DEFAULTS = {
    "criteria": {
        "amount_tolerance": DEFAULT_CRITERIA.amount_tolerance,
        "date_tolerance": DEFAULT_CRITERIA.date_tolerance,
        "minimum_score": DEFAULT_CRITERIA.minimum_score,
    },
    "thresholds": {"auto": 0.9, "assist_min": 0.7},
    "max_candidates": 3,
}

CRITERIA_KEYS = ("amount_tolerance", "date_tolerance", "minimum_score")


def _default_path() -> str:
    return os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "config", "matching.yml")


def load_matching_config(path: Optional[str] = None) -> dict:
    path = path or os.getenv("MATCHING_CONFIG") or _default_path()
    try:
        with open(path, "r", encoding="utf-8") as f:
            cfg = yaml.safe_load(f) or {}
    except FileNotFoundError:
        return {k: (dict(v) if isinstance(v, dict) else v) for k, v in DEFAULTS.items()}

    if not isinstance(cfg, dict):
        raise ValueError(f"matching config must be a mapping: {path}")

    merged = {k: (dict(v) if isinstance(v, dict) else v) for k, v in DEFAULTS.items()}
    for k, v in cfg.items():
        if k == "criteria":
            # criteria は3項目セットで置き換える（既定値との部分マージはしない）
            missing = [key for key in CRITERIA_KEYS if key not in (v or {})]
            if missing:
                raise ValueError(f"criteria must define all of {CRITERIA_KEYS}; missing {missing}")
            merged[k] = {key: v[key] for key in CRITERIA_KEYS}
        elif isinstance(v, dict) and isinstance(merged.get(k), dict):
            mv = dict(merged[k])
            mv.update(v)
            merged[k] = mv
        else:
            merged[k] = v
    return merged


def criteria_from_config(cfg: dict) -> MatchingCriteria:
    c = cfg.get("criteria")
    if not c:
        return DEFAULT_CRITERIA
    return MatchingCriteria(
        amount_tolerance=float(c["amount_tolerance"]),
        # 3.7 などを切り捨てないよう、そのまま渡して MatchingCriteria に検証させる
        date_tolerance=c["date_tolerance"],
        minimum_score=float(c["minimum_score"]),
    )
