"""
Outcome schema for oracle forecasts.

Every object the oracle returns is validated against ForecastPayload before
it is used: probabilities must be real numbers (no strings, booleans, NaN or
infinities), confidence must lie in [0, 100] and bucket must be one of
BUCKETS. Probabilities are NOT range-checked here; clamp_probabilities()
pulls them into [0, 1] after validation.
"""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictFloat

BUCKETS = ("vip", "daily2", "value5", "big10")

Bucket = Literal["vip", "daily2", "value5", "big10"]

_CONFIG = ConfigDict(populate_by_name=True, allow_inf_nan=False, extra="ignore")


class OneXTwo(BaseModel):
    model_config = _CONFIG

    home: StrictFloat
    draw: StrictFloat
    away: StrictFloat


class DoubleChance(BaseModel):
    model_config = _CONFIG

    home_or_draw: StrictFloat = Field(alias="homeOrDraw")
    home_or_away: StrictFloat = Field(alias="homeOrAway")
    draw_or_away: StrictFloat = Field(alias="drawOrAway")


class ForecastPayload(BaseModel):
    """One validated forecast object."""

    model_config = _CONFIG

    one_x_two: OneXTwo = Field(alias="oneXTwo")
    double_chance: DoubleChance = Field(alias="doubleChance")
    over05: StrictFloat
    over15: StrictFloat
    over25: StrictFloat
    btts_yes: StrictFloat = Field(alias="bttsYes")
    btts_no: StrictFloat = Field(alias="bttsNo")
    confidence: StrictFloat = Field(ge=0, le=100)
    bucket: Bucket

    # Set by the generator, never read from oracle output
    model_id: Optional[str] = Field(default=None, exclude=True)

    def outcomes(self) -> dict:
        """Outcome block as stored on Prediction.outcomes (camelCase keys)."""
        return self.model_dump(
            by_alias=True,
            include={
                "one_x_two", "double_chance", "over05", "over15", "over25", "btts_yes", "btts_no",
            },
        )


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def clamp_probabilities(payload: ForecastPayload) -> ForecastPayload:
    """Copy of payload with every probability clamped to [0, 1]."""
    return payload.model_copy(
        update={
            "one_x_two": OneXTwo(
                home=_clamp(payload.one_x_two.home),
                draw=_clamp(payload.one_x_two.draw),
                away=_clamp(payload.one_x_two.away),
            ),
            "double_chance": DoubleChance(
                home_or_draw=_clamp(payload.double_chance.home_or_draw),
                home_or_away=_clamp(payload.double_chance.home_or_away),
                draw_or_away=_clamp(payload.double_chance.draw_or_away),
            ),
            "over05": _clamp(payload.over05),
            "over15": _clamp(payload.over15),
            "over25": _clamp(payload.over25),
            "btts_yes": _clamp(payload.btts_yes),
            "btts_no": _clamp(payload.btts_no),
            "confidence": _clamp(payload.confidence, 0.0, 100.0),
        }
    )
