"""Band scores and feedback structures.

Speaking is assessed on four criteria, each scored from 0.0 to 9.0 in
half-band steps. The overall band is the mean of the four criteria,
rounded to the nearest half band (x.25 rounds up to x.5, x.75 to the
next whole band).
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Iterable

CRITERIA = (
    "fluency_coherence",
    "lexical_resource",
    "grammar_accuracy",
    "pronunciation",
)

# Short keys used in the band_scores block of complete-test feedback
SHORT_KEYS = {
    "fluency_coherence": "fluency",
    "lexical_resource": "lexical",
    "grammar_accuracy": "grammar",
    "pronunciation": "pronunciation",
}

MIN_BAND = 0.0
MAX_BAND = 9.0


class BandScoreError(ValueError):
    """A score is missing or not a number."""


def round_band(value: float) -> float:
    """Round to the nearest half band and clamp to [0.0, 9.0].

    Raises:
        BandScoreError: If the value is infinite or NaN
    """
    value = float(value)
    if not math.isfinite(value):
        raise BandScoreError(f"Band score must be a finite number, got {value}")
    rounded = math.floor(value * 2 + 0.5) / 2
    return min(MAX_BAND, max(MIN_BAND, rounded))


def overall_band(scores: Iterable[float]) -> float:
    """Mean of the criterion scores, rounded to a band.

    Raises:
        BandScoreError: If no scores are given
    """
    values = [float(s) for s in scores]
    if not values:
        raise BandScoreError("Cannot compute an overall band without scores")
    return round_band(sum(values) / len(values))


def _coerce_score(value: Any, name: str) -> float:
    if isinstance(value, bool) or value is None:
        raise BandScoreError(f"Missing score: {name}")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise BandScoreError(f"Invalid score for {name}: {value!r}") from None
    if not math.isfinite(number):
        raise BandScoreError(f"Invalid score for {name}: {value!r}")
    return round_band(number)


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, list):
        return "\n".join(f"- {item}" for item in value)
    return str(value)


@dataclass
class FeedbackResult:
    """Scores and feedback for a single response."""

    fluency_coherence_score: float
    lexical_resource_score: float
    grammar_accuracy_score: float
    pronunciation_score: float
    overall_band_score: float
    general_feedback: str = ""
    fluency_coherence_feedback: str = ""
    lexical_resource_feedback: str = ""
    grammar_accuracy_feedback: str = ""
    pronunciation_feedback: str = ""
    model_answer: str = ""

    @property
    def criterion_scores(self) -> dict[str, float]:
        return {name: getattr(self, f"{name}_score") for name in CRITERIA}

    @classmethod
    def from_llm(cls, data: dict[str, Any]) -> FeedbackResult:
        """Normalize a model JSON answer.

        Criterion scores are required. The overall band is recomputed from
        them when absent or invalid. All scores are snapped to half bands.

        Raises:
            BandScoreError: If a criterion score is missing or not numeric
        """
        scores = {name: _coerce_score(data.get(f"{name}_score"), name) for name in CRITERIA}

        try:
            overall = _coerce_score(data.get("overall_band_score"), "overall_band")
        except BandScoreError:
            overall = overall_band(scores.values())

        return cls(
            fluency_coherence_score=scores["fluency_coherence"],
            lexical_resource_score=scores["lexical_resource"],
            grammar_accuracy_score=scores["grammar_accuracy"],
            pronunciation_score=scores["pronunciation"],
            overall_band_score=overall,
            general_feedback=_text(data.get("general_feedback")),
            fluency_coherence_feedback=_text(data.get("fluency_coherence_feedback")),
            lexical_resource_feedback=_text(data.get("lexical_resource_feedback")),
            grammar_accuracy_feedback=_text(data.get("grammar_accuracy_feedback")),
            pronunciation_feedback=_text(data.get("pronunciation_feedback")),
            model_answer=_text(data.get("model_answer")),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "fluency_coherence_score": self.fluency_coherence_score,
            "lexical_resource_score": self.lexical_resource_score,
            "grammar_accuracy_score": self.grammar_accuracy_score,
            "pronunciation_score": self.pronunciation_score,
            "overall_band_score": self.overall_band_score,
            "general_feedback": self.general_feedback,
            "fluency_coherence_feedback": self.fluency_coherence_feedback,
            "lexical_resource_feedback": self.lexical_resource_feedback,
            "grammar_accuracy_feedback": self.grammar_accuracy_feedback,
            "pronunciation_feedback": self.pronunciation_feedback,
            "model_answer": self.model_answer,
        }


@dataclass
class TestFeedback:
    """Overall feedback for a whole test."""

    __test__ = False

    feedback: FeedbackResult
    strengths: str = ""
    areas_for_improvement: str = ""
    study_advice: str = ""

    @property
    def band_scores(self) -> dict[str, float]:
        scores = {SHORT_KEYS[name]: value for name, value in self.feedback.criterion_scores.items()}
        scores["overall"] = self.feedback.overall_band_score
        return scores

    @classmethod
    def from_llm(cls, data: dict[str, Any]) -> TestFeedback:
        """Normalize the feedback block of a complete-test answer.

        Criterion scores may come either as top-level ``*_score`` fields or
        inside ``band_scores``; top-level fields win.

        Raises:
            BandScoreError: If a criterion score cannot be found
        """
        merged = dict(data)
        band_scores = data.get("band_scores") or {}
        if isinstance(band_scores, dict):
            for name, short in SHORT_KEYS.items():
                if merged.get(f"{name}_score") is None and short in band_scores:
                    merged[f"{name}_score"] = band_scores[short]
            if merged.get("overall_band_score") is None:
                merged["overall_band_score"] = band_scores.get("overall", data.get("band_score"))

        return cls(
            feedback=FeedbackResult.from_llm(merged),
            strengths=_text(data.get("strengths")),
            areas_for_improvement=_text(data.get("areas_for_improvement")),
            study_advice=_text(data.get("study_advice")),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result = self.feedback.to_dict()
        result["band_score"] = self.feedback.overall_band_score
        result["band_scores"] = self.band_scores
        result["strengths"] = self.strengths
        result["areas_for_improvement"] = self.areas_for_improvement
        result["study_advice"] = self.study_advice
        return result


@dataclass
class QuestionFeedback:
    """Band and comment for one question of a complete test."""

    band_score: float
    feedback: str = ""
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_llm(cls, data: Any) -> QuestionFeedback:
        """Normalize one questionFeedback entry.

        A bare string is accepted as feedback without a score.
        """
        if isinstance(data, str):
            return cls(band_score=MIN_BAND, feedback=data)
        if not isinstance(data, dict):
            raise BandScoreError(f"Invalid question feedback: {data!r}")

        band = _coerce_score(data.get("band_score"), "band_score")
        extra = {k: v for k, v in data.items() if k not in ("band_score", "feedback")}
        return cls(band_score=band, feedback=_text(data.get("feedback")), extra=extra)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {**self.extra, "band_score": self.band_score, "feedback": self.feedback}


def default_test_feedback() -> TestFeedback:
    """Neutral feedback used when the model returns no feedback block."""
    return TestFeedback(
        feedback=FeedbackResult(
            fluency_coherence_score=MIN_BAND,
            lexical_resource_score=MIN_BAND,
            grammar_accuracy_score=MIN_BAND,
            pronunciation_score=MIN_BAND,
            overall_band_score=MIN_BAND,
            general_feedback="Feedback could not be generated for this test. Please try again.",
        ),
    )
