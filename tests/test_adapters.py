"""Tests for provider adapters and the canonical status vocabulary."""

import pytest

from fixturecast.etl.api_football import APIFootballAdapter
from fixturecast.etl.base import canonical_status
from fixturecast.etl.football_data import FootballDataAdapter
from fixturecast.etl.goalserve import GoalserveAdapter


def goalserve_match(**overrides) -> dict:
    match = {
        "id": "3456789",
        "date": "19.09.2019",
        "time": "15:30",
        "status": "FT",
        "season": "2019/2020",
        "stage": {"name": "Regular Season", "id": "12"},
        "venue": "Santiago Bernabeu",
        "hometeam": {"name": "Real Madrid", "id": "9001", "score": "2", "ft_score": "[2-1]"},
        "awayteam": {"name": "Barcelona", "id": "9002", "score": "1", "ft_score": "[2-1]"},
        "goals": {"goal": {"team": "hometeam", "minute": "10", "player": "Benzema", "score": "[1-0]"}},
    }
    match.update(overrides)
    return match


class TestCanonicalStatus:
    @pytest.mark.parametrize("raw", ["FT", "AET", "Pen.", "FINISHED", "ft"])
    def test_finished(self, raw):
        assert canonical_status(raw) == "finished"

    @pytest.mark.parametrize("raw", ["Postp.", "POSTPONED", "PST"])
    def test_postponed(self, raw):
        assert canonical_status(raw) == "postponed"

    @pytest.mark.parametrize("raw", ["Canc.", "CANCELLED", "ABD"])
    def test_cancelled(self, raw):
        assert canonical_status(raw) == "cancelled"

    @pytest.mark.parametrize("raw", ["67", "45+2", "HT", "IN_PLAY", "1H"])
    def test_live(self, raw):
        assert canonical_status(raw) == "live"

    @pytest.mark.parametrize("raw", ["15:30", "NS", None, ""])
    def test_scheduled(self, raw):
        assert canonical_status(raw) == "scheduled"

    def test_timed_and_tba(self):
        assert canonical_status("TIMED") == "upcoming"
        assert canonical_status("TBA") == "tba"
        assert canonical_status("TBD") == "tba"


class TestGoalserveAdapter:
    def test_category_list_with_match_list(self):
        payload = {
            "scores": {
                "category": [
                    {"name": "Spain: La Liga", "ccountry": "Spain", "matches": {"match": [goalserve_match()]}},
                    {"name": "England: Premier League", "matches": {"match": goalserve_match(id="3456790")}},
                ]
            }
        }
        fixtures = GoalserveAdapter().parse(payload)

        assert len(fixtures) == 2
        first = fixtures[0]
        assert first.source == "goalserve"
        assert first.external_id == "3456789"
        assert first.static_id == 3456789
        assert first.league == "Spain: La Liga"
        assert first.country == "Spain"
        assert first.date == "19.09.2019"
        assert first.time == "15:30"
        assert first.stage == "Regular Season"
        assert first.home.name == "Real Madrid"
        assert first.home.external_id == "9001"
        assert (first.home_goals, first.away_goals) == (2, 1)
        assert first.payload["goals"][0]["player"] == "Benzema"
        assert first.payload["stage_id"] == 12

    def test_single_category_object_and_bare_matches(self):
        payload = {"scores": {"category": {"name": "Cup", "matches": [goalserve_match()]}}}
        fixtures = GoalserveAdapter().parse(payload)
        assert len(fixtures) == 1
        assert fixtures[0].league == "Cup"

    def test_at_prefixed_attributes(self):
        match = {
            "@id": "77",
            "@date": "01.05.2024",
            "@time": "18:00",
            "@status": "18:00",
            "localteam": {"@name": "Ajax", "@id": "1"},
            "visitorteam": {"@name": "PSV", "@id": "2"},
        }
        payload = {"scores": {"category": {"@name": "Eredivisie", "matches": {"match": match}}}}
        fixtures = GoalserveAdapter().parse(payload)
        assert len(fixtures) == 1
        assert fixtures[0].external_id == "77"
        assert fixtures[0].home.name == "Ajax"
        assert fixtures[0].away.name == "PSV"
        assert fixtures[0].league == "Eredivisie"

    def test_extra_time_and_penalties(self):
        match = goalserve_match(
            hometeam={"name": "A", "ft_score": "1", "et_score": "1", "pen_score": "4"},
            awayteam={"name": "B", "ft_score": "1", "et_score": "1", "pen_score": "3"},
        )
        payload = {"scores": {"category": {"name": "Cup", "matches": {"match": match}}}}
        fixture = GoalserveAdapter().parse(payload)[0]
        assert (fixture.home_goals, fixture.away_goals) == (1, 1)
        assert (fixture.home_et_goals, fixture.away_et_goals) == (1, 1)
        assert (fixture.home_pen_goals, fixture.away_pen_goals) == (4, 3)

    def test_match_level_result_strings(self):
        match = goalserve_match(
            hometeam={"name": "A"},
            awayteam={"name": "B"},
            ft_result="[0-0]",
            penalty="[5-4]",
        )
        payload = {"scores": {"category": {"name": "Cup", "matches": {"match": match}}}}
        fixture = GoalserveAdapter().parse(payload)[0]
        assert (fixture.home_goals, fixture.away_goals) == (0, 0)
        assert (fixture.home_pen_goals, fixture.away_pen_goals) == (5, 4)

    def test_malformed_payload_returns_empty(self):
        assert GoalserveAdapter().parse({"unexpected": True}) == []
        assert GoalserveAdapter().parse("not json") == []
        assert GoalserveAdapter().parse(None) == []

    def test_malformed_fixture_skipped_batch_survives(self):
        payload = {"scores": {"category": {"name": "Cup", "matches": {"match": ["garbage", goalserve_match()]}}}}
        fixtures = GoalserveAdapter().parse(payload)
        assert len(fixtures) == 1
        assert fixtures[0].external_id == "3456789"


class TestFootballDataAdapter:
    def payload(self, **overrides) -> dict:
        match = {
            "id": 436001,
            "utcDate": "2024-05-01T19:00:00Z",
            "status": "FINISHED",
            "stage": "REGULAR_SEASON",
            "matchday": 34,
            "area": {"name": "England"},
            "competition": {"name": "Premier League", "code": "PL"},
            "season": {"startDate": "2023-08-11"},
            "homeTeam": {"id": 57, "name": "Arsenal FC", "shortName": "Arsenal", "tla": "ARS", "crest": "a.png"},
            "awayTeam": {"id": 61, "name": "Chelsea FC", "shortName": "Chelsea", "tla": "CHE", "crest": "c.png"},
            "score": {"winner": "HOME_TEAM", "fullTime": {"home": 5, "away": 0}},
        }
        match.update(overrides)
        return {"matches": [match]}

    def test_parses_match(self):
        fixture = FootballDataAdapter().parse(self.payload())[0]
        assert fixture.source == "football_data"
        assert fixture.external_id == "436001"
        assert fixture.date == "2024-05-01T19:00:00Z"
        assert fixture.status == "FINISHED"
        assert fixture.league == "Premier League"
        assert fixture.country == "England"
        assert fixture.season == "2023"
        assert fixture.home.code == "ARS"
        assert fixture.home.logo_url == "a.png"
        assert fixture.away.short_name == "Chelsea"
        assert (fixture.home_goals, fixture.away_goals) == (5, 0)

    def test_regular_time_preferred_over_cumulative_full_time(self):
        score = {
            "fullTime": {"home": 3, "away": 2},
            "regularTime": {"home": 1, "away": 1},
            "extraTime": {"home": 2, "away": 1},
        }
        fixture = FootballDataAdapter().parse(self.payload(score=score))[0]
        assert (fixture.home_goals, fixture.away_goals) == (1, 1)
        assert (fixture.home_et_goals, fixture.away_et_goals) == (2, 1)

    def test_error_payload_returns_empty(self):
        assert FootballDataAdapter().parse({"errorCode": 403, "message": "restricted"}) == []


class TestAPIFootballAdapter:
    def item(self, **overrides) -> dict:
        item = {
            "fixture": {
                "id": 868001,
                "date": "2024-05-01T18:00:00+00:00",
                "timestamp": 1714586400,
                "status": {"short": "NS", "elapsed": None},
                "venue": {"name": "Anfield", "city": "Liverpool"},
            },
            "league": {"id": 39, "name": "Premier League", "country": "England", "season": 2023, "round": "Regular Season - 35"},
            "teams": {
                "home": {"id": 40, "name": "Liverpool", "logo": "l.png"},
                "away": {"id": 50, "name": "Manchester City", "logo": "m.png"},
            },
            "goals": {"home": None, "away": None},
            "score": {"fulltime": {"home": None, "away": None}},
        }
        item.update(overrides)
        return item

    def test_parses_fixture(self):
        fixture = APIFootballAdapter().parse({"errors": [], "response": [self.item()]})[0]
        assert fixture.source == "api_football"
        assert fixture.external_id == "868001"
        assert fixture.date == "2024-05-01T18:00:00+00:00"
        assert fixture.status == "NS"
        assert fixture.season == "2023"
        assert fixture.stage == "Regular Season - 35"
        assert fixture.home.external_id == "40"
        assert fixture.away.logo_url == "m.png"
        assert fixture.payload["venue"]["name"] == "Anfield"
        assert fixture.home_goals is None

    def test_timestamp_fallback_when_date_missing(self):
        item = self.item()
        item["fixture"]["date"] = None
        fixture = APIFootballAdapter().parse({"response": [item]})[0]
        assert fixture.date == "1714586400"

    def test_timestamp_fallback_when_date_malformed(self):
        item = self.item()
        item["fixture"]["date"] = "not-a-date"
        fixture = APIFootballAdapter().parse({"response": [item]})[0]
        assert fixture.date == "1714586400"

    def test_iso_date_preferred_when_valid(self):
        fixture = APIFootballAdapter().parse({"response": [self.item()]})[0]
        assert fixture.date == "2024-05-01T18:00:00+00:00"

    def test_extra_time_and_penalties(self):
        item = self.item(
            goals={"home": 2, "away": 2},
            score={
                "fulltime": {"home": 1, "away": 1},
                "extratime": {"home": 1, "away": 1},
                "penalty": {"home": 3, "away": 4},
            },
        )
        fixture = APIFootballAdapter().parse({"response": [item]})[0]
        assert (fixture.home_goals, fixture.away_goals) == (1, 1)
        assert (fixture.home_pen_goals, fixture.away_pen_goals) == (3, 4)

    def test_errors_field_returns_empty(self):
        payload = {"errors": {"token": "Error/Missing application key"}, "response": [self.item()]}
        assert APIFootballAdapter().parse(payload) == []
