"""
Configuration-Driven Load Options

This module provides Pydantic models for the declarative part of a scenario
(concurrency profile, thresholds, think-time) and YAML loading of profile
files that override a scenario's built-in options.

Example:
    from loadgen_sdk.options import load_options

    options = load_options("examples/profiles/smoke.yaml")
    profile = options.profile()
"""

import math
import re
import random
from pathlib import Path
from typing import Annotated, Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, model_validator

from loadgen_sdk.common.logger import get_logger
from loadgen_sdk.scheduler import FixedProfile, LoadProfile, StagedProfile
from loadgen_sdk.thresholds import ThresholdSpec, parse_threshold

logger = get_logger(__name__)

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")
_UNIT_SECONDS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


def parse_duration(value: Any) -> float:
    """
    Convert a duration to seconds.

    Accepts non-negative numbers (seconds) and strings made of number/unit
    parts such as "500ms", "10s", "2m" or "1h30m".

    Raises:
        ValueError: If the value is not a valid duration.
    """
    if isinstance(value, bool):
        raise ValueError(f"invalid duration {value!r}")
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            raise ValueError(f"invalid duration {value!r}")
        if value < 0:
            raise ValueError(f"duration cannot be negative: {value}")
        return float(value)
    if not isinstance(value, str):
        raise ValueError(f"invalid duration {value!r}")

    text = value.strip().lower().replace(" ", "")
    try:
        seconds = float(text)
    except ValueError:
        seconds = None
    if seconds is not None:
        return parse_duration(seconds)

    total = 0.0
    position = 0
    for match in _DURATION_PART.finditer(text):
        if match.start() != position:
            break
        total += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        position = match.end()
    if position == 0 or position != len(text):
        raise ValueError(f"invalid duration '{value}'")
    return total


Duration = Annotated[float, BeforeValidator(parse_duration)]


class Stage(BaseModel):
    """
    One segment of a staged profile.

    Attributes:
        duration: Stage length in seconds (0 is a discontinuous jump).
        target: VU count reached at the end of the stage.
    """
    model_config = ConfigDict(frozen=True)

    duration: Duration = Field(..., description="Stage duration")
    target: int = Field(..., ge=0, description="Target VU count at the end of the stage")


class ThinkTime(BaseModel):
    """
    Pacing delay between a VU's iterations.

    A bare number or duration string means a fixed delay; with max set the
    delay is drawn uniformly from [min, max].
    """
    model_config = ConfigDict(frozen=True)

    min: Duration = Field(default=0.0, description="Minimum (or fixed) delay")
    max: Optional[Duration] = Field(default=None, description="Maximum delay")

    @model_validator(mode="before")
    @classmethod
    def coerce_scalar(cls, data: Any) -> Any:
        if isinstance(data, (int, float, str)) and not isinstance(data, bool):
            return {"min": data}
        return data

    @model_validator(mode="after")
    def validate_range(self) -> "ThinkTime":
        if self.max is not None and self.max < self.min:
            raise ValueError(f"think_time max ({self.max}) is below min ({self.min})")
        return self

    def sample(self, rng: random.Random) -> float:
        if self.max is None or self.max == self.min:
            return self.min
        return rng.uniform(self.min, self.max)


class ThresholdEntry(BaseModel):
    """Long-form threshold entry, accepting k6 camelCase keys."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    threshold: str
    abort_on_fail: bool = Field(default=False, alias="abortOnFail")
    delay_abort_eval: Duration = Field(default=0.0, alias="delayAbortEval")


class LoadOptions(BaseModel):
    """
    Declarative definition of a run.

    Exactly one profile form is allowed: vus + duration, or stages.

    Attributes:
        vus: Fixed VU count.
        duration: Fixed-mode run length in seconds.
        stages: Ordered ramp stages.
        thresholds: Metric key to list of threshold expressions.
        think_time: Pacing between a VU's iterations.
        graceful_stop: Seconds to wait for in-flight iterations when stopping.
        control_interval: Seconds between scheduler reconciliations.
        seed: Base seed for per-VU random generators.
    """
    model_config = ConfigDict(frozen=True)

    vus: Optional[int] = Field(default=None, ge=0, description="Fixed VU count")
    duration: Optional[Duration] = Field(default=None, description="Fixed-mode duration")
    stages: List[Stage] = Field(default_factory=list, description="Ramp stages")
    thresholds: Dict[str, List[Union[str, ThresholdEntry]]] = Field(
        default_factory=dict, description="Threshold expressions per metric"
    )
    think_time: ThinkTime = Field(default_factory=ThinkTime, description="Think-time between iterations")
    graceful_stop: Duration = Field(default=30.0, description="Drain timeout")
    control_interval: Duration = Field(default=1.0, description="Scheduler tick interval")
    seed: Optional[int] = Field(default=None, description="Random seed")

    @model_validator(mode="after")
    def validate_profile(self) -> "LoadOptions":
        fixed = self.vus is not None or self.duration is not None
        if self.stages and fixed:
            raise ValueError("use either vus+duration or stages, not both")
        if not self.stages and (self.vus is None or self.duration is None):
            raise ValueError("vus and duration are both required when no stages are given")
        if self.control_interval <= 0:
            raise ValueError("control_interval must be positive")
        # Surface threshold syntax errors at load time
        self.threshold_specs()
        return self

    def profile(self) -> LoadProfile:
        if self.stages:
            return StagedProfile([(s.duration, s.target) for s in self.stages])
        return FixedProfile(self.vus, self.duration)

    def threshold_specs(self) -> List[ThresholdSpec]:
        specs: List[ThresholdSpec] = []
        for metric_key, entries in self.thresholds.items():
            for entry in entries:
                if isinstance(entry, str):
                    specs.append(parse_threshold(metric_key, entry))
                else:
                    specs.append(parse_threshold(
                        metric_key,
                        entry.threshold,
                        abort_on_fail=entry.abort_on_fail,
                        delay_abort_eval=entry.delay_abort_eval,
                    ))
        return specs

    def with_fixed_profile(self, vus: int, duration: Any) -> "LoadOptions":
        """Return a copy running a fixed profile instead of this one's."""
        data = self.model_dump()
        data.update(vus=vus, duration=duration, stages=[])
        return LoadOptions(**data)

    def merged_with(self, overrides: Dict[str, Any]) -> "LoadOptions":
        """
        Return a copy with profile-file overrides applied.

        Giving stages drops the fixed profile and vice versa.
        """
        data = self.model_dump()
        if "stages" in overrides:
            data.update(vus=None, duration=None)
        if "vus" in overrides or "duration" in overrides:
            data["stages"] = []
        data.update(overrides)
        return LoadOptions(**data)


def load_options(path: str, base: Optional[LoadOptions] = None) -> LoadOptions:
    """
    Load load options from a YAML profile file.

    Args:
        path: Path to the YAML file.
        base: Options to override; without it the file must be complete.

    Returns:
        Validated LoadOptions object.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        yaml.YAMLError: If the YAML is invalid.
        ValidationError: If the schema validation fails.
    """
    profile_path = Path(path)

    if not profile_path.exists():
        raise FileNotFoundError(f"Profile file not found: {path}")

    logger.info(f"Loading load profile from: {profile_path}")

    try:
        with open(profile_path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)

        if not data:
            raise ValueError("YAML file is empty or contains no data")
        if not isinstance(data, dict):
            raise ValueError("YAML profile must be a mapping")

        options = base.merged_with(data) if base is not None else LoadOptions(**data)

        logger.info(
            f"Loaded load profile: "
            f"{len(options.stages)} stages, "
            f"{len(options.threshold_specs())} thresholds"
        )
        return options

    except yaml.YAMLError as e:
        logger.error(f"Failed to parse YAML file {path}: {e}")
        raise
    except Exception as e:
        logger.error(f"Failed to load profile from {path}: {e}")
        raise
