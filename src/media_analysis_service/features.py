"""Turn a processed breakdown into a flat feature mapping."""

from __future__ import annotations

from typing import Any, Dict, Iterable, Mapping

from .schemas import JobResult

_NAMED_GROUPS = (
    ("keywords", "Keyword_"),
    ("topics", "Topic_"),
    ("labels", "Label_"),
    ("faces", "Face_"),
    ("brands", "Brand_"),
)


def _confidence(item: Mapping[str, Any]) -> float:
    value = item.get("confidence")
    try:
        return float(value) if value is not None else 1.0
    except (TypeError, ValueError):
        return 1.0


def _named_features(items: Iterable[Mapping[str, Any]], prefix: str) -> Dict[str, float]:
    features: Dict[str, float] = {}
    for item in items or []:
        name = str(item.get("name") or "").strip()
        if not name:
            continue
        key = prefix + name
        features[key] = max(features.get(key, 0.0), _confidence(item))
    return features


def _duration(payload: Mapping[str, Any], insights: Mapping[str, Any]) -> float | None:
    raw = payload.get("durationInSeconds")
    if raw is None:
        raw = (insights.get("duration") or {}).get("seconds")
    try:
        return float(raw) if raw is not None else None
    except (TypeError, ValueError):
        return None


def extract_features(job: JobResult) -> Dict[str, Any]:
    payload = job.payload
    insights = payload.get("summarizedInsights") or {}

    features: Dict[str, Any] = {}
    for group, prefix in _NAMED_GROUPS:
        features.update(_named_features(insights.get(group) or [], prefix))

    duration = _duration(payload, insights)
    if duration is not None:
        features["DurationSeconds"] = duration

    sentiments = insights.get("sentiments") or []
    for sentiment in sentiments:
        key = sentiment.get("sentimentKey")
        if key:
            features[f"Sentiment_{key}"] = float(sentiment.get("seenDurationRatio") or 0.0)

    return {"id": job.id, "features": features}
