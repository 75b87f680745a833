"""
Core data model: queries, resolution results, actions, outcomes and patterns.

Everything here is immutable. Corrections to recorded history are new
``ActionPattern`` objects with a ``supersedes`` back-reference.
"""

import base64
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union

import numpy as np

from resilient_agent.exceptions import ActionValidationError, ResilientAgentError
from resilient_agent.interfaces.driver import ElementHandle, Locator, LocatorKind


def _as_locator(value: Union[str, Locator]) -> Locator:
    return value if isinstance(value, Locator) else Locator.parse(value)


@dataclass(frozen=True)
class ElementQuery:
    """
    Caller-supplied description of a target element.
    
    Attributes:
        primary: The locator tried first
        fallbacks: Further locators, tried in the given order
        field_name: Logical field name ("email", "submitButton"); used for
            pattern embeddings. Defaults to the primary locator's value.
    
    Example:
        >>> query = ElementQuery.of("id:submit", "text:Submit", field_name="submit")
    """
    primary: Locator
    fallbacks: Tuple[Locator, ...] = ()
    field_name: Optional[str] = None
    
    def __post_init__(self) -> None:
        if self.primary is None:
            raise ValueError("ElementQuery needs at least one locator")
        object.__setattr__(self, "primary", _as_locator(self.primary))
        object.__setattr__(self, "fallbacks", tuple(_as_locator(loc) for loc in self.fallbacks))
    
    @classmethod
    def of(cls, *locators: Union[str, Locator], field_name: Optional[str] = None) -> "ElementQuery":
        if not locators:
            raise ValueError("ElementQuery needs at least one locator")
        return cls(locators[0], tuple(locators[1:]), field_name)
    
    @property
    def locators(self) -> Tuple[Locator, ...]:
        return (self.primary,) + self.fallbacks
    
    @property
    def field_text(self) -> str:
        """Text the field-name tokens are drawn from."""
        if self.field_name:
            return self.field_name
        if self.primary.name:
            return f"{self.primary.value} {self.primary.name}"
        return self.primary.value
    
    def promote(self, kind: LocatorKind, fallback: Optional[Locator] = None) -> "ElementQuery":
        """
        Reorder so locators of ``kind`` come first.
        
        If the query has no locator of that kind, ``fallback`` (a locator
        of that kind) is put in front instead. Relative order is otherwise
        preserved.
        """
        matching = [loc for loc in self.locators if loc.kind == kind]
        rest = [loc for loc in self.locators if loc.kind != kind]
        if not matching:
            if fallback is None:
                return self
            matching = [fallback]
        ordered = matching + rest
        return ElementQuery(ordered[0], tuple(ordered[1:]), self.field_name)
    
    def to_record(self) -> Dict[str, Any]:
        return {
            "locators": [str(loc) for loc in self.locators],
            "field_name": self.field_name,
        }
    
    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "ElementQuery":
        return cls.of(*record["locators"], field_name=record.get("field_name"))


class ActionKind(str, Enum):
    CLICK = "click"
    TYPE = "type"
    SELECT = "select"
    SCROLL = "scroll"


@dataclass(frozen=True)
class ActionSpec:
    """
    The intended interaction.
    
    Attributes:
        kind: click, type, select or scroll
        payload: Text to type, option to select, or scroll distance in
            pixels (negative scrolls up)
        must_be_visible: Wait for the element to be visible before acting
        must_be_enabled: Wait for the element to be enabled before acting
    """
    kind: ActionKind
    payload: Optional[str] = None
    must_be_visible: bool = True
    must_be_enabled: bool = True
    
    def __post_init__(self) -> None:
        try:
            object.__setattr__(self, "kind", ActionKind(self.kind))
        except ValueError:
            raise ActionValidationError(f"Unknown action kind: {self.kind}", action_kind=str(self.kind))
        if self.kind in (ActionKind.TYPE, ActionKind.SELECT) and not self.payload:
            raise ActionValidationError(
                f"'{self.kind.value}' requires a payload",
                action_kind=self.kind.value,
            )
        if self.kind == ActionKind.SCROLL and self.payload is not None:
            try:
                float(self.payload)
            except ValueError:
                raise ActionValidationError(
                    f"Scroll payload must be a pixel distance, got {self.payload!r}",
                    action_kind=self.kind.value,
                )
    
    @classmethod
    def click(cls, **constraints: bool) -> "ActionSpec":
        return cls(ActionKind.CLICK, **constraints)
    
    @classmethod
    def type(cls, text: str, **constraints: bool) -> "ActionSpec":
        return cls(ActionKind.TYPE, text, **constraints)
    
    @classmethod
    def select(cls, value: str, **constraints: bool) -> "ActionSpec":
        return cls(ActionKind.SELECT, value, **constraints)
    
    @classmethod
    def scroll(cls, pixels: float = 300, **constraints: bool) -> "ActionSpec":
        constraints.setdefault("must_be_enabled", False)
        return cls(ActionKind.SCROLL, str(pixels), **constraints)
    
    @property
    def scroll_distance(self) -> float:
        return float(self.payload) if self.payload is not None else 300.0


@dataclass(frozen=True)
class ContextFingerprint:
    """Where an action happened: domain plus a coarse page-layout hash."""
    domain: str
    layout_hash: str = ""


@dataclass(frozen=True)
class StrategyAttempt:
    """Diagnostics for one locator tried during resolution."""
    index: int
    locator: Locator
    outcome: str
    candidate_count: int = 0
    best_confidence: float = 0.0
    elapsed_ms: float = 0.0
    detail: Optional[str] = None
    
    def __str__(self) -> str:
        text = (
            f"#{self.index} {self.locator}: {self.outcome} "
            f"(candidates={self.candidate_count}, confidence={self.best_confidence:.2f}, "
            f"{self.elapsed_ms:.0f}ms)"
        )
        if self.detail:
            text += f" {self.detail}"
        return text


@dataclass(frozen=True)
class ResolutionResult:
    """
    A resolved element.
    
    Valid only while the driver's generation equals ``generation``; the
    handle is the driver's and is referenced, not copied.
    
    Attributes:
        handle: Opaque driver element handle
        locator: The locator that produced the element
        strategy_index: Position of that locator in the query (0 = primary)
        confidence: Score in [0, 1]
        elapsed_ms: Time spent resolving
        candidate_count: Elements found before disambiguation
        generation: Driver generation when the element was found
        query: The query that was resolved
        trail: Diagnostics of every locator tried
        healed_from: Id of the pattern that informed a healed resolution
        healed_pattern_id: Id of the pattern recorded for the healing
    """
    handle: ElementHandle
    locator: Locator
    strategy_index: int
    confidence: float
    elapsed_ms: float
    candidate_count: int
    generation: int
    query: ElementQuery
    trail: Tuple[StrategyAttempt, ...] = ()
    healed_from: Optional[int] = None
    healed_pattern_id: Optional[int] = None


@dataclass(frozen=True)
class ActionOutcome:
    """
    The result of one resolve-and-interact attempt; the unit recorded to
    pattern memory.
    
    ``error`` carries the typed failure (resolution or interaction) and is
    not persisted; ``failure_reason`` is its persisted text.
    """
    success: bool
    action: ActionSpec
    query: ElementQuery
    context: ContextFingerprint
    resolution: Optional[ResolutionResult] = None
    latency_ms: float = 0.0
    failure_reason: Optional[str] = None
    error: Optional[ResilientAgentError] = None
    healed: bool = False
    timestamp: float = field(default_factory=time.time)
    
    @property
    def locator(self) -> Locator:
        """The locator that produced the element, else the primary one."""
        if self.resolution is not None:
            return self.resolution.locator
        return self.query.primary
    
    def raise_for_error(self) -> None:
        if self.error is not None:
            raise self.error
    
    def to_record(self) -> Dict[str, Any]:
        # Action payloads may hold typed secrets and are never persisted
        record: Dict[str, Any] = {
            "success": self.success,
            "action": self.action.kind.value,
            "query": self.query.to_record(),
            "domain": self.context.domain,
            "layout_hash": self.context.layout_hash,
            "locator": str(self.locator),
            "latency_ms": round(self.latency_ms, 3),
            "failure_reason": self.failure_reason,
            "healed": self.healed,
            "timestamp": self.timestamp,
        }
        if self.resolution is not None:
            record["strategy_index"] = self.resolution.strategy_index
            record["confidence"] = self.resolution.confidence
            record["candidate_count"] = self.resolution.candidate_count
        return record
    
    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "ActionOutcome":
        query = ElementQuery.from_record(record["query"])
        kind = ActionKind(record["action"])
        action = ActionSpec(kind, "<redacted>" if kind in (ActionKind.TYPE, ActionKind.SELECT) else None)
        resolution = None
        if "strategy_index" in record:
            resolution = ResolutionResult(
                handle=None,
                locator=Locator.parse(record["locator"]),
                strategy_index=record["strategy_index"],
                confidence=record["confidence"],
                elapsed_ms=0.0,
                candidate_count=record.get("candidate_count", 0),
                generation=-1,
                query=query,
            )
        return cls(
            success=record["success"],
            action=action,
            query=query,
            context=ContextFingerprint(record["domain"], record.get("layout_hash", "")),
            resolution=resolution,
            latency_ms=record.get("latency_ms", 0.0),
            failure_reason=record.get("failure_reason"),
            healed=record.get("healed", False),
            timestamp=record.get("timestamp", 0.0),
        )


@dataclass(frozen=True)
class ActionPattern:
    """
    A recorded outcome plus its embedding.
    
    Attributes:
        id: Monotonically increasing identifier assigned by the store
        vector: Unit-length float32 embedding (read-only)
        outcome: The recorded outcome
        supersedes: Id of the pattern this one corrects
    """
    id: int
    vector: np.ndarray = field(repr=False, compare=False)
    outcome: ActionOutcome
    supersedes: Optional[int] = None
    
    @property
    def success(self) -> bool:
        return self.outcome.success
    
    @property
    def domain(self) -> str:
        return self.outcome.context.domain
    
    @property
    def locator_kind(self) -> LocatorKind:
        return self.outcome.locator.kind
    
    @property
    def action_kind(self) -> ActionKind:
        return self.outcome.action.kind
    
    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "supersedes": self.supersedes,
            "vector": base64.b64encode(
                np.asarray(self.vector, dtype="<f4").tobytes()
            ).decode("ascii"),
            "outcome": self.outcome.to_record(),
        }
    
    @classmethod
    def from_record(cls, record: Dict[str, Any], dimension: Optional[int] = None) -> "ActionPattern":
        vector = np.frombuffer(base64.b64decode(record["vector"]), dtype="<f4").astype(np.float32)
        if dimension is not None and vector.shape[0] != dimension:
            raise ValueError(
                f"Pattern {record.get('id')} has {vector.shape[0]} dimensions, expected {dimension}"
            )
        vector.setflags(write=False)
        return cls(
            id=int(record["id"]),
            vector=vector,
            outcome=ActionOutcome.from_record(record["outcome"]),
            supersedes=record.get("supersedes"),
        )

