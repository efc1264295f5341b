"""Tests for result grading."""

from types import SimpleNamespace

import pytest

from fixturecast.audit.grader import AWAY, DRAW, HOME, ResultGrader, actual_outcome, predicted_outcome
from fixturecast.etl.store import to_canonical
from fixturecast.llm.forecast_schema import ForecastPayload

pytestmark = pytest.mark.anyio


def finished(home, away, et=(None, None), pen=(None, None), status="finished"):
    return SimpleNamespace(
        status=status,
        home_goals=home,
        away_goals=away,
        home_et_goals=et[0],
        away_et_goals=et[1],
        home_pen_goals=pen[0],
        away_pen_goals=pen[1],
    )


def pending(forecast_id, home, draw, away, status="pending"):
    return SimpleNamespace(
        id=forecast_id,
        status=status,
        one_x_two={"home": home, "draw": draw, "away": away},
    )


def payload(bucket, home, draw, away):
    return ForecastPayload.model_validate(
        {
            "oneXTwo": {"home": home, "draw": draw, "away": away},
            "doubleChance": {"homeOrDraw": 0.8, "homeOrAway": 0.8, "drawOrAway": 0.4},
            "over05": 0.9,
            "over15": 0.7,
            "over25": 0.5,
            "bttsYes": 0.5,
            "bttsNo": 0.5,
            "confidence": 95.0,
            "bucket": bucket,
        }
    )


class TestActualOutcome:
    def test_full_time(self):
        assert actual_outcome(finished(2, 1)) == HOME
        assert actual_outcome(finished(0, 3)) == AWAY
        assert actual_outcome(finished(1, 1)) == DRAW

    def test_extra_time_decides(self):
        assert actual_outcome(finished(1, 1, et=(1, 0))) == HOME

    def test_penalties_decide(self):
        assert actual_outcome(finished(1, 1, et=(0, 0), pen=(3, 4))) == AWAY

    def test_missing_score(self):
        assert actual_outcome(finished(None, 1)) is None


class TestPredictedOutcome:
    def test_argmax(self):
        assert predicted_outcome({"home": 0.6, "draw": 0.25, "away": 0.15}) == HOME
        assert predicted_outcome({"home": 0.1, "draw": 0.2, "away": 0.7}) == AWAY
        assert predicted_outcome({"home": 0.3, "draw": 0.4, "away": 0.3}) == DRAW

    def test_tie_at_maximum_is_draw(self):
        assert predicted_outcome({"home": 0.4, "draw": 0.2, "away": 0.4}) == DRAW
        assert predicted_outcome({"home": 0.45, "draw": 0.45, "away": 0.1}) == DRAW

    def test_unusable(self):
        assert predicted_outcome(None) is None
        assert predicted_outcome({"home": 0.5, "draw": 0.5}) is None
        assert predicted_outcome({"home": "0.5", "draw": 0.2, "away": 0.3}) is None
        assert predicted_outcome({"home": True, "draw": 0.2, "away": 0.3}) is None


class TestGrade:
    def test_won_and_lost(self):
        decisions = ResultGrader().grade(
            finished(2, 0),
            [pending(1, 0.6, 0.2, 0.2), pending(2, 0.2, 0.2, 0.6)],
        )
        assert [(f.id, status) for f, status in decisions] == [(1, "won"), (2, "lost")]

    def test_home_favourite_won_then_lost(self):
        forecast = pending(1, 0.6, 0.2, 0.2)
        assert ResultGrader().grade(finished(2, 1), [forecast])[0][1] == "won"
        assert ResultGrader().grade(finished(2, 3), [forecast])[0][1] == "lost"

    def test_draw_prediction_wins_on_draw(self):
        decisions = ResultGrader().grade(finished(1, 1), [pending(1, 0.4, 0.2, 0.4)])
        assert decisions[0][1] == "won"

    def test_unfinished_fixture_not_graded(self):
        assert ResultGrader().grade(finished(1, 0, status="live"), [pending(1, 0.6, 0.2, 0.2)]) == []

    def test_already_graded_skipped(self):
        decisions = ResultGrader().grade(finished(1, 0), [pending(1, 0.6, 0.2, 0.2, status="won")])
        assert decisions == []

    def test_deterministic(self):
        fixture = finished(0, 1)
        forecasts = [pending(1, 0.3, 0.3, 0.4)]
        first = [(f.id, s) for f, s in ResultGrader().grade(fixture, forecasts)]
        second = [(f.id, s) for f, s in ResultGrader().grade(fixture, forecasts)]
        assert first == second == [(1, "won")]


class TestRun:
    async def test_grades_pending_forecasts_once(self, store, make_raw):
        match, _ = await store.upsert_fixture(to_canonical(make_raw()))
        await store.upsert_forecast(match.id, payload("vip", 0.6, 0.25, 0.15))
        await store.upsert_forecast(match.id, payload("big10", 0.1, 0.2, 0.7))
        await store.upsert_fixture(to_canonical(make_raw(status="FT", home_goals=3, away_goals=1)))

        summary = await ResultGrader(store).run()
        assert summary == {"fixtures": 1, "graded": 2, "won": 1, "lost": 1, "skipped": 0, "errors": 0}

        rows = {r.bucket: r.status for r in await store.find_forecasts_by_fixture(match.id)}
        assert rows == {"vip": "won", "big10": "lost"}

        again = await ResultGrader(store).run()
        assert again["graded"] == 0
        assert again["fixtures"] == 0

    async def test_pending_on_unfinished_fixture_untouched(self, store, make_raw):
        match, _ = await store.upsert_fixture(to_canonical(make_raw()))
        await store.upsert_forecast(match.id, payload("vip", 0.6, 0.25, 0.15))

        summary = await ResultGrader(store).run()
        assert summary["graded"] == 0
        rows = await store.find_forecasts_by_fixture(match.id)
        assert rows[0].status == "pending"

    async def test_home_favourite_graded_from_stored_result(self, store, make_raw):
        won_match, _ = await store.upsert_fixture(to_canonical(make_raw(external_id="1")))
        lost_match, _ = await store.upsert_fixture(to_canonical(make_raw(external_id="2")))
        for match in (won_match, lost_match):
            await store.upsert_forecast(match.id, payload("vip", 0.6, 0.2, 0.2))
        await store.upsert_fixture(to_canonical(make_raw(external_id="1", status="FT", home_goals=2, away_goals=1)))
        await store.upsert_fixture(to_canonical(make_raw(external_id="2", status="FT", home_goals=2, away_goals=3)))

        summary = await ResultGrader(store).run()
        assert (summary["won"], summary["lost"]) == (1, 1)
        assert (await store.find_forecasts_by_fixture(won_match.id))[0].status == "won"
        assert (await store.find_forecasts_by_fixture(lost_match.id))[0].status == "lost"

    async def test_only_fixtures_with_pending_forecasts_loaded(self, store, make_raw):
        settled, _ = await store.upsert_fixture(to_canonical(make_raw(external_id="1")))
        await store.upsert_forecast(settled.id, payload("vip", 0.6, 0.25, 0.15))
        await store.upsert_fixture(to_canonical(make_raw(external_id="1", status="FT", home_goals=1, away_goals=0)))
        await store.upsert_fixture(to_canonical(make_raw(external_id="2", status="FT", home_goals=0, away_goals=0)))

        assert [m.id for m in await store.find_finished_fixtures_with_pending_forecasts()] == [settled.id]
        await ResultGrader(store).run()
        assert await store.find_finished_fixtures_with_pending_forecasts() == []

    async def test_requires_store(self):
        with pytest.raises(RuntimeError):
            await ResultGrader().run()
