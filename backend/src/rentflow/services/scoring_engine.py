"""Deterministic application scoring engine.

Pure-function module: NO database access, NO network.

Computes a compatibility score (higher is better) and a risk score (lower is
better) from four weighted factor groups, both starting from a fixed baseline:
    - Income-to-rent ratio      (40%)
    - Employment stability      (25%)
    - Rental history            (20%)
    - References & narrative    (15%)  references 10, cover letter 5

Each group contributes a compatibility delta and a mirrored risk delta. Every
contribution is recorded in ``factors`` so a manager can see exactly why an
application scored the way it did.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from rentflow.domain.enums import ScoreBand

# ── Weights ──────────────────────────────────────────────────────────────────

W_INCOME = 40
W_EMPLOYMENT = 25
W_RENTAL_HISTORY = 20
W_REFERENCES = 10
W_COVER_LETTER = 5

# Both scores start here before any factor is applied.
DEFAULT_BASELINE = 50

SCORE_MIN = 0
SCORE_MAX = 100

COVER_LETTER_MIN_CHARS = 100
MIN_REFERENCES = 2

# (min_ratio, compat_delta, risk_delta, detail), checked top-down
INCOME_BANDS: tuple[tuple[float, int, int, str], ...] = (
    (3.5, 20, -15, "Excellent income-to-rent ratio (3.5x or higher)"),
    (3.0, 15, -10, "Good income-to-rent ratio (3x)"),
    (2.5, 8, -5, "Adequate income-to-rent ratio (2.5x)"),
)
INCOME_WORST = (-10, 15, "Below recommended income-to-rent ratio")

EMPLOYMENT_BANDS: tuple[tuple[float, int, int, str], ...] = (
    (2, 12, -8, "Stable employment (2+ years)"),
    (1, 6, -4, "Recent employment (1+ year)"),
)
EMPLOYMENT_WORST = (0, 5, "New employment (less than 1 year)")

RENTAL_HISTORY_BANDS: tuple[tuple[float, int, int, str], ...] = (
    (2, 10, -5, "Long-term rental history"),
    (1, 5, -2, "Rental history provided"),
)
RENTAL_HISTORY_NONE = (0, 0, "No rental history provided")


@dataclass(frozen=True)
class ApplicationInput:
    """Everything the scorer needs, detached from ORM rows."""

    monthly_income: float
    monthly_rent: Optional[float]
    employment_years: float = 0
    previous_rental_years: float = 0
    reference_count: int = 0
    cover_letter_length: int = 0
    employment_status: Optional[str] = None


@dataclass(frozen=True)
class ScoreFactor:
    factor: str
    weight: int
    compatibility_delta: int
    risk_delta: int
    detail: str

    def as_dict(self) -> dict:
        return {
            "factor": self.factor,
            "weight": self.weight,
            "compatibility_delta": self.compatibility_delta,
            "risk_delta": self.risk_delta,
            "detail": self.detail,
        }


@dataclass(frozen=True)
class ScoreResult:
    compatibility_score: int
    risk_score: int
    factors: list[ScoreFactor] = field(default_factory=list)

    @property
    def band(self) -> ScoreBand:
        return band_for(self.compatibility_score)

    def factors_as_dicts(self) -> list[dict]:
        return [f.as_dict() for f in self.factors]


# ── Helpers ──────────────────────────────────────────────────────────────────

def _clamp(value: int) -> int:
    return max(SCORE_MIN, min(SCORE_MAX, value))


def income_to_rent_ratio(monthly_income: float, monthly_rent: Optional[float]) -> Optional[float]:
    """Return income / rent, or ``None`` when rent is missing or zero."""
    if not monthly_rent or monthly_rent <= 0:
        return None
    return (monthly_income or 0) / monthly_rent


def _income_factor(app: ApplicationInput) -> ScoreFactor:
    ratio = income_to_rent_ratio(app.monthly_income, app.monthly_rent)
    if ratio is not None:
        for min_ratio, compat, risk, detail in INCOME_BANDS:
            if ratio >= min_ratio:
                return ScoreFactor("income_to_rent_ratio", W_INCOME, compat, risk, detail)
    compat, risk, detail = INCOME_WORST
    if ratio is None:
        detail = "Monthly rent unavailable; income ratio scored in the lowest band"
    return ScoreFactor("income_to_rent_ratio", W_INCOME, compat, risk, detail)


def _employment_factor(app: ApplicationInput) -> ScoreFactor:
    years = app.employment_years or 0
    for min_years, compat, risk, detail in EMPLOYMENT_BANDS:
        if years >= min_years:
            return ScoreFactor("employment_stability", W_EMPLOYMENT, compat, risk, detail)
    compat, risk, detail = EMPLOYMENT_WORST
    return ScoreFactor("employment_stability", W_EMPLOYMENT, compat, risk, detail)


def _rental_history_factor(app: ApplicationInput) -> ScoreFactor:
    years = app.previous_rental_years or 0
    for min_years, compat, risk, detail in RENTAL_HISTORY_BANDS:
        if years >= min_years:
            return ScoreFactor("rental_history", W_RENTAL_HISTORY, compat, risk, detail)
    compat, risk, detail = RENTAL_HISTORY_NONE
    return ScoreFactor("rental_history", W_RENTAL_HISTORY, compat, risk, detail)


def _references_factor(app: ApplicationInput) -> ScoreFactor:
    if (app.reference_count or 0) >= MIN_REFERENCES:
        return ScoreFactor("references", W_REFERENCES, 5, -3, "Multiple references provided")
    return ScoreFactor("references", W_REFERENCES, 0, 0, "Fewer than two references")


def _cover_letter_factor(app: ApplicationInput) -> ScoreFactor:
    if (app.cover_letter_length or 0) > COVER_LETTER_MIN_CHARS:
        return ScoreFactor("cover_letter", W_COVER_LETTER, 3, -2, "Detailed cover letter")
    return ScoreFactor("cover_letter", W_COVER_LETTER, 0, 0, "No detailed cover letter")


# ── Public API ───────────────────────────────────────────────────────────────

def score(app: ApplicationInput, baseline: int = DEFAULT_BASELINE) -> ScoreResult:
    """Score an application. Same input always yields the same result."""
    factors = [
        _income_factor(app),
        _employment_factor(app),
        _rental_history_factor(app),
        _references_factor(app),
        _cover_letter_factor(app),
    ]
    compatibility = baseline + sum(f.compatibility_delta for f in factors)
    risk = baseline + sum(f.risk_delta for f in factors)
    return ScoreResult(
        compatibility_score=_clamp(compatibility),
        risk_score=_clamp(risk),
        factors=factors,
    )


def band_for(compatibility_score: int) -> ScoreBand:
    """Presentation band for a compatibility score. Never stored."""
    if compatibility_score >= 75:
        return ScoreBand.HIGHLY_RECOMMENDED
    if compatibility_score >= 60:
        return ScoreBand.RECOMMENDED
    if compatibility_score >= 45:
        return ScoreBand.CONSIDER_WITH_CAUTION
    return ScoreBand.NOT_RECOMMENDED


def analyze(app: ApplicationInput, compatibility_score: int) -> dict:
    """Human-readable analysis block shown next to the scores."""
    ratio = income_to_rent_ratio(app.monthly_income, app.monthly_rent)
    employment_years = app.employment_years or 0
    rental_years = app.previous_rental_years or 0

    if employment_years >= 2:
        stability = "Stable"
    elif employment_years >= 1:
        stability = "Recent"
    else:
        stability = "New"

    if rental_years >= 2:
        history = "Long-term"
    elif rental_years > 0:
        history = "Short-term"
    else:
        history = "None provided"

    return {
        "income_to_rent_ratio": round(ratio, 2) if ratio is not None else None,
        "income_verification": "Provided" if (app.monthly_income or 0) > 0 else "Missing",
        "employment_stability": stability,
        "rental_history": history,
        "reference_count": app.reference_count or 0,
        "recommendation": band_for(compatibility_score).value,
    }
