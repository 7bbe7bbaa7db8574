"""Tests for breakdown featurization."""

from __future__ import annotations

from media_analysis_service.features import extract_features
from media_analysis_service.schemas import JobResult


def test_extract_features_flattens_insights():
    job = JobResult(
        id="j1",
        state="Processed",
        payload={
            "durationInSeconds": "42.5",
            "summarizedInsights": {
                "keywords": [{"name": "goal", "confidence": 0.4}, {"name": "goal", "confidence": 0.9}],
                "topics": [{"name": "Football"}],
                "labels": [{"name": ""}, {"name": "stadium", "confidence": "bad"}],
                "faces": [{"name": "Jane Doe", "confidence": 0.7}],
                "brands": [{"name": "Acme", "confidence": 0.6}],
                "sentiments": [{"sentimentKey": "Positive", "seenDurationRatio": 0.25}],
            },
        },
    )

    result = extract_features(job)

    assert result["id"] == "j1"
    assert result["features"] == {
        "Keyword_goal": 0.9,
        "Topic_Football": 1.0,
        "Label_stadium": 1.0,
        "Face_Jane Doe": 0.7,
        "Brand_Acme": 0.6,
        "DurationSeconds": 42.5,
        "Sentiment_Positive": 0.25,
    }


def test_extract_features_handles_sparse_payload():
    job = JobResult(id="j2", state="Processed", payload={"summarizedInsights": {"duration": {"seconds": 10}}})

    assert extract_features(job) == {"id": "j2", "features": {"DurationSeconds": 10.0}}


def test_extract_features_on_empty_payload():
    assert extract_features(JobResult(id="j3")) == {"id": "j3", "features": {}}
