"""Provider-agnostic fixture shapes and the adapter contract."""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

logger = logging.getLogger(__name__)


# Canonical lifecycle vocabulary
STATUS_SCHEDULED = "scheduled"
STATUS_UPCOMING = "upcoming"
STATUS_TBA = "tba"
STATUS_LIVE = "live"
STATUS_FINISHED = "finished"
STATUS_POSTPONED = "postponed"
STATUS_CANCELLED = "cancelled"

UPCOMING_STATUSES = (STATUS_SCHEDULED, STATUS_UPCOMING, STATUS_TBA)
TERMINAL_STATUSES = (STATUS_FINISHED, STATUS_CANCELLED)

# Higher rank never regresses to lower rank. Postponed sits with the
# pre-match states because a postponed fixture is normally rescheduled.
STATUS_RANK = {
    STATUS_SCHEDULED: 0,
    STATUS_UPCOMING: 0,
    STATUS_TBA: 0,
    STATUS_POSTPONED: 0,
    STATUS_LIVE: 1,
    STATUS_FINISHED: 2,
    STATUS_CANCELLED: 2,
}

_STATUS_ALIASES = {
    # finished
    "ft": STATUS_FINISHED, "aet": STATUS_FINISHED, "pen": STATUS_FINISHED, "pen.": STATUS_FINISHED,
    "finished": STATUS_FINISHED, "full-time": STATUS_FINISHED, "awarded": STATUS_FINISHED,
    "awd": STATUS_FINISHED, "wo": STATUS_FINISHED,
    # postponed
    "postp.": STATUS_POSTPONED, "postp": STATUS_POSTPONED, "postponed": STATUS_POSTPONED,
    "pst": STATUS_POSTPONED, "susp": STATUS_POSTPONED, "suspended": STATUS_POSTPONED,
    "int": STATUS_POSTPONED, "delayed": STATUS_POSTPONED,
    # cancelled
    "canc.": STATUS_CANCELLED, "canc": STATUS_CANCELLED, "cancl.": STATUS_CANCELLED,
    "cancelled": STATUS_CANCELLED, "canceled": STATUS_CANCELLED, "abd": STATUS_CANCELLED,
    "aban.": STATUS_CANCELLED, "abandoned": STATUS_CANCELLED,
    # live
    "ht": STATUS_LIVE, "live": STATUS_LIVE, "in_play": STATUS_LIVE, "paused": STATUS_LIVE,
    "1h": STATUS_LIVE, "2h": STATUS_LIVE, "et": STATUS_LIVE, "bt": STATUS_LIVE, "p": STATUS_LIVE,
    "break time": STATUS_LIVE, "penalties": STATUS_LIVE,
    # pre-match
    "ns": STATUS_SCHEDULED, "scheduled": STATUS_SCHEDULED, "timed": STATUS_UPCOMING,
    "upcoming": STATUS_UPCOMING, "tba": STATUS_TBA, "tbd": STATUS_TBA,
}

_KICKOFF_TIME_RE = re.compile(r"^\d{1,2}:\d{2}$")
_MINUTE_RE = re.compile(r"^\d{1,3}(\+\d{1,2})?'?$")


def canonical_status(raw: Optional[str]) -> str:
    """
    Map a provider status string to the canonical vocabulary.

    Goalserve reports the kickoff time ("15:30") for pre-match fixtures and
    the running minute ("67", "45+2") for live ones.
    """
    if raw is None:
        return STATUS_SCHEDULED
    value = str(raw).strip()
    if not value:
        return STATUS_SCHEDULED
    if _KICKOFF_TIME_RE.match(value):
        return STATUS_SCHEDULED
    if _MINUTE_RE.match(value):
        return STATUS_LIVE
    return _STATUS_ALIASES.get(value.lower(), STATUS_SCHEDULED)


class MalformedFixture(ValueError):
    """A single fixture that cannot be canonicalized (skipped, never fatal)."""


def as_list(value: Any) -> list:
    """Provider fields may be a single object, a list, or absent."""
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def to_int(value: Any) -> Optional[int]:
    """Lenient int conversion for numeric fields sent as strings ("2", "", "?")."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        text = str(value).strip()
        return int(float(text)) if text else None
    except (TypeError, ValueError):
        return None


def to_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass
class RawTeam:
    """Team descriptor as seen by one provider."""

    name: Optional[str]
    external_id: Optional[str] = None
    logo_url: Optional[str] = None
    short_name: Optional[str] = None
    code: Optional[str] = None
    country: Optional[str] = None


@dataclass
class RawFixture:
    """Fixture parsed from one provider payload, before canonicalization."""

    source: str
    home: RawTeam
    away: RawTeam
    date: Optional[str]  # Raw date string (any supported encoding)
    time: Optional[str] = None  # Raw time-of-day ("HH:MM") when separate
    status: Optional[str] = None  # Raw provider status
    external_id: Optional[str] = None
    static_id: Optional[int] = None
    league: Optional[str] = None
    country: Optional[str] = None
    season: Optional[str] = None
    stage: Optional[str] = None
    home_goals: Optional[int] = None
    away_goals: Optional[int] = None
    home_et_goals: Optional[int] = None
    away_et_goals: Optional[int] = None
    home_pen_goals: Optional[int] = None
    away_pen_goals: Optional[int] = None
    payload: dict = field(default_factory=dict)

    @property
    def label(self) -> str:
        """Short identifier for log lines."""
        return f"{self.source}:{self.external_id or '-'} {self.home.name} vs {self.away.name}"


class ProviderAdapter(ABC):
    """
    Pure parser from one provider's payload shape to RawFixture objects.

    Adapters never perform I/O. A malformed payload yields an empty list and
    a malformed fixture is skipped; neither raises.
    """

    SOURCE: str = ""

    def parse(self, payload: Any) -> list[RawFixture]:
        """Parse a fetched payload, skipping fixtures that fail to parse."""
        try:
            items = self._iter_fixtures(payload)
        except Exception as e:
            logger.warning(f"[ADAPTER] source={self.SOURCE} malformed payload: {e}")
            return []

        fixtures: list[RawFixture] = []
        skipped = 0
        for item in items:
            try:
                fixture = self._parse_fixture(item)
            except Exception as e:
                skipped += 1
                logger.warning(f"[ADAPTER] source={self.SOURCE} skipping fixture: {e}")
                continue
            if fixture is not None:
                fixtures.append(fixture)

        if skipped:
            logger.info(f"[ADAPTER] source={self.SOURCE} parsed={len(fixtures)} skipped={skipped}")
        return fixtures

    @abstractmethod
    def _iter_fixtures(self, payload: Any) -> list[Any]:
        """Return the raw per-fixture items (each later fed to _parse_fixture)."""
        pass

    @abstractmethod
    def _parse_fixture(self, item: Any) -> Optional[RawFixture]:
        """Parse one raw item; raise or return None to skip it."""
        pass
