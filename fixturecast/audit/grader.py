"""
Result grading: settle pending forecasts against finished fixtures.

Outcome rules:
- actual: full-time score; when level, the extra-time score; when still
  level, the penalty shootout; otherwise a draw
- predicted: argmax of the 1X2 probabilities; any tie at the maximum is
  graded as a draw prediction

A forecast is won when predicted == actual. Grading is deterministic and a
forecast is graded at most once (the store update is conditional on
pending).
"""

import logging
from typing import Any, Iterable, Optional

from fixturecast.etl.base import STATUS_FINISHED
from fixturecast.etl.store import FixtureStore
from fixturecast.models import Prediction
from fixturecast.telemetry import record_grade

logger = logging.getLogger(__name__)

HOME = "home"
DRAW = "draw"
AWAY = "away"


def _winner(home: Optional[int], away: Optional[int]) -> Optional[str]:
    if home is None or away is None:
        return None
    if home > away:
        return HOME
    if home < away:
        return AWAY
    return DRAW


def actual_outcome(fixture: Any) -> Optional[str]:
    """home/draw/away for a finished fixture, None when the score is missing."""
    result = _winner(fixture.home_goals, fixture.away_goals)
    if result != DRAW:
        return result

    for home_attr, away_attr in (("home_et_goals", "away_et_goals"), ("home_pen_goals", "away_pen_goals")):
        decided = _winner(getattr(fixture, home_attr, None), getattr(fixture, away_attr, None))
        if decided in (HOME, AWAY):
            return decided
    return DRAW


def predicted_outcome(one_x_two: Optional[dict]) -> Optional[str]:
    """Argmax of a 1X2 triple; a tie at the maximum resolves to draw."""
    if not isinstance(one_x_two, dict):
        return None
    probs = {k: one_x_two.get(k) for k in (HOME, DRAW, AWAY)}
    if any(not isinstance(v, (int, float)) or isinstance(v, bool) for v in probs.values()):
        return None

    best = max(probs.values())
    leaders = [k for k, v in probs.items() if v == best]
    if len(leaders) > 1:
        return DRAW
    return leaders[0]


class ResultGrader:
    """Grades pending forecasts of finished fixtures."""

    def __init__(self, store: Optional[FixtureStore] = None):
        self.store = store

    def grade(self, fixture: Any, forecasts: Iterable[Prediction]) -> list[tuple[Prediction, str]]:
        """
        Decide won/lost for each gradable forecast of a fixture.

        Returns nothing for fixtures that are not finished or lack a score.
        Already graded forecasts and forecasts without a full 1X2 triple are
        skipped.
        """
        if fixture.status != STATUS_FINISHED:
            return []
        actual = actual_outcome(fixture)
        if actual is None:
            return []

        decisions = []
        for forecast in forecasts:
            if forecast.status != "pending":
                continue
            predicted = predicted_outcome(forecast.one_x_two)
            if predicted is None:
                logger.warning(f"[GRADER] Forecast {forecast.id} has no usable oneXTwo, skipping")
                continue
            decisions.append((forecast, "won" if predicted == actual else "lost"))
        return decisions

    async def run(self, limit: Optional[int] = None) -> dict:
        """Grade every pending forecast attached to a finished fixture."""
        if self.store is None:
            raise RuntimeError("ResultGrader.run requires a store")

        summary = {"fixtures": 0, "graded": 0, "won": 0, "lost": 0, "skipped": 0, "errors": 0}
        fixtures = await self.store.find_finished_fixtures_with_pending_forecasts(limit=limit)

        for fixture in fixtures:
            try:
                forecasts = await self.store.find_forecasts_by_fixture(fixture.id)
                decisions = self.grade(fixture, forecasts)
                if not decisions:
                    continue
                summary["fixtures"] += 1
                for forecast, status in decisions:
                    if await self.store.mark_forecast_graded(forecast.id, status):
                        summary["graded"] += 1
                        summary[status] += 1
                        record_grade(status)
                    else:
                        # Graded concurrently by another run
                        summary["skipped"] += 1
            except Exception as e:
                summary["errors"] += 1
                logger.error(f"[GRADER] Error grading match {fixture.id}: {e}")
                continue

        logger.info(
            f"[GRADER] Complete: fixtures={summary['fixtures']} graded={summary['graded']} "
            f"won={summary['won']} lost={summary['lost']}"
        )
        return summary
