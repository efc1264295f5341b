"""Goalserve soccer feed adapter (primary provider)."""

import logging
import re
from typing import Any, Optional

from fixturecast.etl.base import ProviderAdapter, RawFixture, RawTeam, as_list, to_int, to_str

logger = logging.getLogger(__name__)

_SCORE_PAIR_RE = re.compile(r"(\d+)\s*[-:]\s*(\d+)")


def _attr(obj: Any, key: str) -> Any:
    """Goalserve JSON exposes XML attributes either bare or '@'-prefixed."""
    if not isinstance(obj, dict):
        return None
    value = obj.get(key)
    if value is None:
        value = obj.get(f"@{key}")
    return value


def _score_pair(value: Any) -> tuple[Optional[int], Optional[int]]:
    """'[2-1]' / '2-1' / '2:1' -> (2, 1); anything else -> (None, None)."""
    if value is None:
        return None, None
    m = _SCORE_PAIR_RE.search(str(value))
    if not m:
        return None, None
    return int(m.group(1)), int(m.group(2))


def _team(obj: Any) -> RawTeam:
    return RawTeam(
        name=to_str(_attr(obj, "name")),
        external_id=to_str(_attr(obj, "id")),
        logo_url=to_str(_attr(obj, "logo")),
    )


def _entries(container: Any, key: str) -> list:
    """{'goal': [...]} / {'goal': {...}} / [...] -> list of dicts."""
    if isinstance(container, dict) and key in container:
        return as_list(container[key])
    return [c for c in as_list(container) if isinstance(c, dict)]


class GoalserveAdapter(ProviderAdapter):
    """
    Parses the Goalserve `soccernew` JSON feed.

    Shape (every container may be a single object or a list):
        {"scores": {"category": [{"name", "id", "matches": {"match": [...]}}]}}

    Older payloads put the match list directly under `matches`.
    """

    SOURCE = "goalserve"

    def _iter_fixtures(self, payload: Any) -> list[Any]:
        if not isinstance(payload, dict):
            raise ValueError(f"expected object, got {type(payload).__name__}")
        scores = payload.get("scores")
        if not isinstance(scores, dict):
            raise ValueError("missing 'scores'")

        items = []
        for category in as_list(scores.get("category")):
            if not isinstance(category, dict):
                continue
            matches = category.get("matches")
            if isinstance(matches, dict) and "match" in matches:
                match_list = as_list(matches["match"])
            else:
                match_list = as_list(matches)
            for match in match_list:
                items.append((category, match))
        return items

    def _parse_fixture(self, item: Any) -> Optional[RawFixture]:
        category, m = item
        if not isinstance(m, dict):
            raise ValueError("match entry is not an object")

        home_obj = _attr(m, "hometeam") or _attr(m, "localteam") or {}
        away_obj = _attr(m, "awayteam") or _attr(m, "visitorteam") or {}
        home, away = _team(home_obj), _team(away_obj)

        static_id = to_int(_attr(m, "static_id")) or to_int(_attr(m, "id"))
        stage = _attr(m, "stage")

        # Regular-time goals: explicit ft_score wins over the running score
        home_goals = to_int(_attr(home_obj, "ft_score"))
        away_goals = to_int(_attr(away_obj, "ft_score"))
        if home_goals is None or away_goals is None:
            home_goals, away_goals = _score_pair(_attr(m, "ft_result"))
        if home_goals is None or away_goals is None:
            home_goals, away_goals = to_int(_attr(home_obj, "score")), to_int(_attr(away_obj, "score"))

        home_et = to_int(_attr(home_obj, "et_score"))
        away_et = to_int(_attr(away_obj, "et_score"))
        if home_et is None or away_et is None:
            home_et, away_et = _score_pair(_attr(m, "et_result"))

        home_pen = to_int(_attr(home_obj, "pen_score"))
        away_pen = to_int(_attr(away_obj, "pen_score"))
        if home_pen is None or away_pen is None:
            home_pen, away_pen = _score_pair(_attr(m, "penalty"))

        payload = {
            "fix_id": to_int(_attr(m, "fix_id")) or to_int(_attr(m, "_id")),
            "stage_id": to_int(_attr(stage, "id")) if isinstance(stage, dict) else None,
            "gid": to_int(_attr(category, "gid")),
            "venue": {
                "name": to_str(_attr(m, "venue")),
                "id": to_int(_attr(m, "venue_id")),
                "city": to_str(_attr(m, "venue_city")),
            },
            "halftime": to_str(_attr(_attr(m, "halftime"), "score")),
            "goals": [
                {
                    "team": g.get("team"),
                    "minute": g.get("minute"),
                    "player": g.get("player"),
                    "playerid": to_int(g.get("playerid")),
                    "assist": g.get("assist"),
                    "score": g.get("score"),
                }
                for g in _entries(_attr(m, "goals"), "goal")
            ],
            "lineups": [
                {
                    "number": to_int(p.get("number")),
                    "name": p.get("name"),
                    "booking": p.get("booking"),
                    "id": to_int(p.get("id")),
                    "team": p.get("team"),
                }
                for p in _entries(_attr(m, "lineups"), "player")
            ],
            "substitutions": _entries(_attr(m, "substitutions"), "substitution"),
            "coaches": _entries(_attr(m, "coaches"), "coach"),
            "referees": _entries(_attr(m, "referees"), "referee"),
            "odds": _attr(m, "odds"),
            "stats": _attr(m, "stats"),
        }

        return RawFixture(
            source=self.SOURCE,
            external_id=str(static_id) if static_id is not None else None,
            static_id=static_id,
            league=to_str(_attr(category, "name")),
            country=to_str(_attr(category, "ccountry")) or to_str(_attr(category, "country")),
            season=to_str(_attr(m, "season")),
            stage=to_str(_attr(stage, "name")) if isinstance(stage, dict) else to_str(stage),
            date=to_str(_attr(m, "date")) or to_str(_attr(m, "formatted_date")),
            time=to_str(_attr(m, "time")),
            status=to_str(_attr(m, "status")),
            home=home,
            away=away,
            home_goals=home_goals,
            away_goals=away_goals,
            home_et_goals=home_et,
            away_et_goals=away_et,
            home_pen_goals=home_pen,
            away_pen_goals=away_pen,
            payload=payload,
        )
