"""
Settings - one pydantic model per concern, gathered under ``Settings``.

Ranges and cross-field rules are checked at construction, so a bad value
fails at load time rather than in the middle of an interaction.

Example:
    >>> from resilient_agent.config import load_config
    >>> settings = load_config()
    >>> print(settings.resolution.confident_threshold)
    0.7
"""

from typing import Dict, Literal, Optional, Tuple
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_BASE_SCORES: Dict[str, float] = {
    "identifier": 1.0,
    "attribute": 0.95,
    "role": 0.9,
    "text": 0.85,
    "structural": 0.75,
    "fuzzy": 0.7,
}


class ResolutionSettings(BaseModel):
    """
    Selector resolution settings.
    
    Attributes:
        budget_ms: Default overall budget for one resolve() call
        per_strategy_timeout_ms: Upper bound on a single locator's time slice
        confident_threshold: Confidence at which a candidate wins immediately
        acceptable_floor: Lowest confidence accepted once every strategy is exhausted
        base_scores: Base confidence per locator kind
        hidden_factor: Visibility factor for candidates that are not visible
        disabled_factor: Visibility factor for visible but disabled candidates
        partial_match_factor: Multiplier for partial (non-exact) text/attribute matches
        ambiguity_penalty: Multiplier when disambiguation could not separate the top two
        fuzzy_min_similarity: Minimum string similarity for a fuzzy candidate to count
    """
    budget_ms: int = Field(default=5000, ge=50, le=120000)
    per_strategy_timeout_ms: int = Field(default=2000, ge=10, le=60000)
    confident_threshold: float = Field(default=0.7, gt=0.0, le=1.0)
    acceptable_floor: float = Field(default=0.35, ge=0.0, le=1.0)
    base_scores: Dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_BASE_SCORES))
    hidden_factor: float = Field(default=0.3, ge=0.0, le=1.0)
    disabled_factor: float = Field(default=0.6, ge=0.0, le=1.0)
    partial_match_factor: float = Field(default=0.85, ge=0.0, le=1.0)
    ambiguity_penalty: float = Field(default=0.9, ge=0.0, le=1.0)
    fuzzy_min_similarity: float = Field(default=0.5, ge=0.0, le=1.0)
    
    @field_validator("base_scores")
    @classmethod
    def _fill_base_scores(cls, value: Dict[str, float]) -> Dict[str, float]:
        merged = dict(DEFAULT_BASE_SCORES)
        for kind, score in value.items():
            if kind not in DEFAULT_BASE_SCORES:
                raise ValueError(f"Unknown locator kind in base_scores: {kind}")
            if not 0.0 <= score <= 1.0:
                raise ValueError(f"Base score for {kind} must be within [0, 1]")
            merged[kind] = score
        return merged
    
    @model_validator(mode="after")
    def _check_thresholds(self) -> "ResolutionSettings":
        if self.acceptable_floor > self.confident_threshold:
            raise ValueError("acceptable_floor must not exceed confident_threshold")
        return self


class MemorySettings(BaseModel):
    """
    Pattern memory settings.
    
    Attributes:
        dimension: Embedding dimensionality (multiple of 16)
        k: Default number of neighbours for similarity queries
        index: Index structure used for similarity queries
        lsh_tables: Number of hash tables in the LSH index
        lsh_bits: Hyperplanes per table (0 = derive from store size)
        lsh_probe_radius: Hamming radius probed around the query bucket
        lsh_seed: Seed for the random hyperplanes
        rebuild_growth_factor: Rebuild the index when the log grows by this factor
        recall_floor: Minimum top-k overlap with brute force the index is held to
        snapshot_path: Optional file the store loads at start and saves on flush
    """
    dimension: int = Field(default=256, ge=16, le=8192)
    k: int = Field(default=5, ge=1, le=1000)
    index: Literal["lsh", "brute_force"] = "lsh"
    lsh_tables: int = Field(default=16, ge=1, le=64)
    lsh_bits: int = Field(default=0, ge=0, le=24)
    lsh_probe_radius: int = Field(default=1, ge=0, le=2)
    lsh_seed: int = 1729
    rebuild_growth_factor: float = Field(default=2.0, gt=1.0, le=16.0)
    recall_floor: float = Field(default=0.95, ge=0.0, le=1.0)
    snapshot_path: Optional[str] = None
    
    @field_validator("dimension")
    @classmethod
    def _check_dimension(cls, value: int) -> int:
        if value % 16:
            raise ValueError("dimension must be a multiple of 16")
        return value


class HealingSettings(BaseModel):
    """
    Healing settings.
    
    Attributes:
        enabled: Attempt one memory-informed re-resolution after a failure
        similarity_threshold: Minimum similarity for a historical pattern to be used
        max_candidates: How many historical patterns to try
        budget_ms: Resolution budget for each healing attempt
    """
    enabled: bool = True
    similarity_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    max_candidates: int = Field(default=5, ge=1, le=100)
    budget_ms: int = Field(default=3000, ge=50, le=120000)


class BehaviorSettings(BaseModel):
    """
    Human-behaviour emulation settings.
    
    Attributes:
        seed: Profile seed; generated with ``secrets`` when omitted
        typing_delay_mean_ms: Mean inter-keystroke delay
        typing_delay_stddev_ms: Spread of the inter-keystroke delay
        typing_delay_min_ms: Floor for a single inter-keystroke delay
        thinking_probability: Chance of a "thinking" pause after a keystroke
        thinking_pause_ms: Range of a thinking pause
        path_points: Range of intermediate points on a pointer path
        path_jitter_px: Maximum lateral jitter of a path point
        path_curvature: Lateral offset of the Bezier control points, relative to distance
        step_delay_ms: Range of the delay between pointer moves
        dwell_ms: Range of the pause before the terminal pointer event
        scroll_steps: Range of wheel events per scroll
        pointer_start: Where the pointer is assumed to rest at session start
    """
    seed: Optional[int] = None
    typing_delay_mean_ms: float = Field(default=110.0, ge=0.0, le=2000.0)
    typing_delay_stddev_ms: float = Field(default=35.0, ge=0.0, le=1000.0)
    typing_delay_min_ms: float = Field(default=25.0, ge=0.0, le=1000.0)
    thinking_probability: float = Field(default=0.08, ge=0.0, le=1.0)
    thinking_pause_ms: Tuple[float, float] = (200.0, 600.0)
    path_points: Tuple[int, int] = (18, 32)
    path_jitter_px: float = Field(default=2.5, ge=0.0, le=50.0)
    path_curvature: float = Field(default=0.25, ge=0.0, le=1.0)
    step_delay_ms: Tuple[float, float] = (2.0, 8.0)
    dwell_ms: Tuple[float, float] = (80.0, 250.0)
    scroll_steps: Tuple[int, int] = (8, 14)
    pointer_start: Tuple[float, float] = (0.0, 0.0)
    
    @field_validator("thinking_pause_ms", "path_points", "step_delay_ms", "dwell_ms", "scroll_steps")
    @classmethod
    def _check_range(cls, value: tuple) -> tuple:
        low, high = value
        if low < 0 or high < low:
            raise ValueError(f"Invalid range {value}: expected 0 <= low <= high")
        return value


class LoggingSettings(BaseModel):
    """
    Where log records go.
    
    Attributes:
        level: Root logger level
        format: Line format for a plain-text log file
        file: Also write to this file; console only when None
        json_format: Write the file as JSON lines
    """
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: str = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
    file: Optional[str] = None
    json_format: bool = False


def _deep_update(base: dict, updates: dict) -> dict:
    for key, value in updates.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _deep_update(base[key], value)
        else:
            base[key] = value
    return base


class Settings(BaseSettings):
    """
    Every tunable of the agent, grouped by subsystem.
    
    Constructor values beat ``RESILIENT_AGENT__*`` environment variables,
    which beat defaults. ConfigLoader slots a YAML file between the
    environment and the defaults.
    
    Example:
        >>> Settings().memory.k
        5
        >>> Settings(memory=MemorySettings(k=10)).memory.k
        10
    """
    
    model_config = SettingsConfigDict(
        env_prefix="RESILIENT_AGENT__",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )
    
    resolution: ResolutionSettings = Field(default_factory=ResolutionSettings)
    memory: MemorySettings = Field(default_factory=MemorySettings)
    healing: HealingSettings = Field(default_factory=HealingSettings)
    behavior: BehaviorSettings = Field(default_factory=BehaviorSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    
    debug: bool = False
    
    def merge_with(self, overrides: dict) -> "Settings":
        """Copy of these settings with ``overrides`` merged in, nested dicts key by key."""
        return Settings(**_deep_update(self.model_dump(), overrides))
