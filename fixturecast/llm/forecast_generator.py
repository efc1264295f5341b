"""
Forecast generation via the oracle, with model fallback and validation.

Flow per fixture:
1. Select head-to-head records (unordered team pair, most recent first)
2. Build the prompt: fixture identity, league, kickoff, H2H lines and the
   output contract
3. Walk the configured models; each gets a RetryPolicy budget. A response
   is unwrapped (code fences, prose), parsed and validated object by object.
   Invalid objects are dropped; zero valid objects fails the attempt.
4. Drop forecasts below FORECAST_MIN_CONFIDENCE
5. Clamp every probability into [0, 1]

The generator has no side effects: persisting forecasts is the caller's job.
"""

import json
import logging
import re
from typing import Any, Iterable, Optional, Protocol

from pydantic import ValidationError

from fixturecast.config import ConfigurationError, Settings, get_settings
from fixturecast.etl.name_normalization import team_pair
from fixturecast.llm.forecast_schema import BUCKETS, ForecastPayload, clamp_probabilities
from fixturecast.llm.gemini_client import GeminiError
from fixturecast.telemetry import record_forecasts, record_llm_request
from fixturecast.utils.retry import RetryPolicy

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)

NO_H2H_LINE = "No direct H2H data available."


class ForecastUnavailable(RuntimeError):
    """Every model exhausted its budget without a valid forecast."""


class InvalidForecastResponse(ValueError):
    """Oracle answered, but nothing in the answer passed validation."""


class Oracle(Protocol):
    async def generate_structured_content(self, prompt: str, model_id: str) -> str: ...

    async def generate_text(self, prompt: str, model_id: str) -> str: ...


def _team_name(team: Any) -> str:
    return getattr(team, "name", None) or "N/A"


def _goals(value: Optional[int]) -> str:
    return "-" if value is None else str(value)


def select_head_to_head(fixture: Any, history: Iterable[Any], limit: int = 10) -> list[Any]:
    """
    Settled records between the fixture's two teams, in either orientation.

    Teams are compared by normalized name, so provider spelling variants of
    the same club still pair up. Most recent first, capped at `limit`.
    """
    pair = team_pair(_team_name(fixture.home_team), _team_name(fixture.away_team))
    matches = [
        h for h in history
        if team_pair(_team_name(h.home_team), _team_name(h.away_team)) == pair
        and h.match_date_utc is not None
    ]
    matches.sort(key=lambda h: h.match_date_utc, reverse=True)
    return matches[:limit]


def build_forecast_prompt(fixture: Any, h2h: list[Any], min_confidence: float = 90.0) -> str:
    """Prompt with fixture context and the strict output contract."""
    kickoff = fixture.match_date_utc.strftime("%Y-%m-%dT%H:%M:%SZ")
    if h2h:
        h2h_lines = "\n".join(
            f"- {h.match_date_utc.strftime('%Y-%m-%d')}: {_team_name(h.home_team)} "
            f"{_goals(h.home_goals)} - {_goals(h.away_goals)} {_team_name(h.away_team)}"
            for h in h2h
        )
    else:
        h2h_lines = NO_H2H_LINE

    buckets = ", ".join(f"'{b}'" for b in BUCKETS)
    return f"""You are an expert football analyst. Output a JSON array of prediction objects for the match.
Match: {_team_name(fixture.home_team)} vs {_team_name(fixture.away_team)}
League: {fixture.league or 'N/A'}
Date (UTC): {kickoff}

Head-to-head (most relevant):
{h2h_lines}

Return a JSON array of prediction objects. Each object must contain:
- oneXTwo: {{ home:number, draw:number, away:number }} // probabilities 0-1
- doubleChance: {{ homeOrDraw:number, homeOrAway:number, drawOrAway:number }}
- over05, over15, over25: numbers 0-1
- bttsYes, bttsNo: numbers 0-1
- confidence: number (0-100) // how confident the model is
- bucket: string (one of {buckets})

Only include predictions with confidence >= {min_confidence:g}. Provide valid JSON only (no markdown fences).
Use decimal probabilities between 0 and 1 (except confidence which is 0-100).
"""


def build_summary_prompt(fixture: Any) -> str:
    return (
        f"Provide a concise summary (2-4 sentences) of key factors for "
        f"{_team_name(fixture.home_team)} vs {_team_name(fixture.away_team)}: recent form, "
        f"head-to-head, home advantage, goal trends. Keep factual and short."
    )


def _balanced_slice(text: str, opener: str, closer: str) -> Optional[str]:
    """First balanced opener..closer span, ignoring brackets inside strings."""
    start = text.find(opener)
    if start < 0:
        return None

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        char = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == opener:
            depth += 1
        elif char == closer:
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    return None


def extract_json(text: Optional[str]) -> Any:
    """
    Parse JSON out of an LLM response.

    Strips markdown fences, then tries the whole text, then the first
    balanced array, then the first balanced object. Returns None when
    nothing parses.
    """
    if not text or not isinstance(text, str):
        return None

    cleaned = _FENCE_RE.sub("", text).strip()
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass

    for opener, closer in (("[", "]"), ("{", "}")):
        candidate = _balanced_slice(cleaned, opener, closer)
        if candidate is None:
            continue
        try:
            return json.loads(candidate)
        except json.JSONDecodeError as e:
            logger.debug(f"[FORECAST] JSON candidate rejected: {e}")

    return None


def validate_forecasts(parsed: Any) -> tuple[list[ForecastPayload], int]:
    """Validate each object independently. Returns (valid, invalid_count)."""
    items = parsed if isinstance(parsed, list) else [parsed]
    valid: list[ForecastPayload] = []
    invalid = 0
    for item in items:
        if not isinstance(item, dict):
            invalid += 1
            continue
        try:
            valid.append(ForecastPayload.model_validate(item))
        except ValidationError as e:
            invalid += 1
            logger.debug(f"[FORECAST] Dropping invalid forecast object: {e.error_count()} errors")
    return valid, invalid


class ForecastGenerator:
    """Oracle-backed forecast generator with model fallback."""

    def __init__(
        self,
        oracle: Oracle,
        settings: Optional[Settings] = None,
        models: Optional[list[str]] = None,
        policy: Optional[RetryPolicy] = None,
    ):
        self.oracle = oracle
        self.settings = settings or get_settings()
        self.models = models if models is not None else self.settings.forecast_models
        self.policy = policy or RetryPolicy(
            max_attempts=self.settings.FORECAST_RETRY_ATTEMPTS,
            base_delay=self.settings.FORECAST_BACKOFF_SECONDS,
            backoff="exponential",
            timeout=self.settings.GEMINI_TIMEOUT_SECONDS,
        )
        self.min_confidence = self.settings.FORECAST_MIN_CONFIDENCE
        self.h2h_limit = self.settings.FORECAST_H2H_LIMIT

    def check_configured(self) -> None:
        if not getattr(self.oracle, "is_configured", True):
            raise ConfigurationError("GEMINI_API_KEY not configured")
        if not self.models:
            raise ConfigurationError("FORECAST_MODELS is empty")

    async def generate(self, fixture: Any, history: Iterable[Any]) -> list[ForecastPayload]:
        """
        Forecasts for one fixture.

        Raises:
            ConfigurationError: oracle credentials or model list missing.
            ForecastUnavailable: every model failed.
        """
        self.check_configured()

        h2h = select_head_to_head(fixture, history, self.h2h_limit)
        prompt = build_forecast_prompt(fixture, h2h, self.min_confidence)

        for model_id in self.models:
            invalid_seen = 0

            async def attempt() -> list[ForecastPayload]:
                nonlocal invalid_seen
                text = await self.oracle.generate_structured_content(prompt, model_id)
                parsed = extract_json(text)
                if parsed is None:
                    record_llm_request(model_id, "invalid", 0)
                    raise InvalidForecastResponse("response did not contain valid JSON")
                valid, invalid = validate_forecasts(parsed)
                invalid_seen += invalid
                if not valid:
                    record_llm_request(model_id, "invalid", 0)
                    raise InvalidForecastResponse(f"no valid forecast objects ({invalid} invalid)")
                return valid

            try:
                forecasts = await self.policy.run(
                    attempt,
                    retry_on=(GeminiError, InvalidForecastResponse),
                    label=f"forecast model={model_id}",
                )
            except (GeminiError, InvalidForecastResponse) as e:
                logger.warning(f"[FORECAST] model={model_id} exhausted: {e}")
                continue

            accepted = [
                clamp_probabilities(f).model_copy(update={"model_id": model_id})
                for f in forecasts
                if f.confidence >= self.min_confidence
            ]
            record_forecasts(
                accepted=len(accepted), filtered=len(forecasts) - len(accepted), invalid=invalid_seen
            )
            logger.info(
                f"[FORECAST] {_team_name(fixture.home_team)} vs {_team_name(fixture.away_team)}: "
                f"model={model_id} valid={len(forecasts)} accepted={len(accepted)} h2h={len(h2h)}"
            )
            return accepted

        raise ForecastUnavailable(f"All models failed ({', '.join(self.models)})")

    async def summarize(self, fixture: Any) -> str:
        """Short analysis text for a fixture, first model that answers wins."""
        self.check_configured()
        prompt = build_summary_prompt(fixture)
        for model_id in self.models:
            try:
                return await self.oracle.generate_text(prompt, model_id)
            except GeminiError as e:
                logger.warning(f"[FORECAST] summary failed for model={model_id}: {e}")
        raise ForecastUnavailable("All models failed to generate summary")
