"""
Resolution Strategies - one class per locator kind.

Each strategy asks the driver for the elements a locator matches, then
scores each candidate:

    confidence = base_score(kind) * visibility_factor * match_factor

where ``visibility_factor`` penalises hidden or disabled elements and
``match_factor`` penalises partial or fuzzy matches. Disambiguation among
several candidates prefers (1) visible and enabled, (2) exact matches,
(3) earlier DOM order.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple, Type

from resilient_agent.config.settings import ResolutionSettings
from resilient_agent.interfaces.driver import ElementHandle, IDriver, Locator, LocatorKind


# Words that show the intent of a control; two labels with different
# intents never fuzzy-match ("add to cart" vs "back to products").
ACTION_WORDS = {
    "add", "remove", "back", "next", "continue", "finish", "cancel", "submit",
    "login", "logout", "signup", "register", "checkout", "cart", "delete", "save",
}


def normalize_text(text: Optional[str]) -> str:
    """Lowercase and collapse whitespace."""
    if not text:
        return ""
    return " ".join(text.lower().split())


def simple_ratio(s1: str, s2: str) -> float:
    """In-order character match ratio, 0.0 to 1.0."""
    if s1 == s2:
        return 1.0
    len1, len2 = len(s1), len(s2)
    if len1 == 0 or len2 == 0:
        return 0.0
    if max(len1, len2) / min(len1, len2) > 3:
        return 0.0
    
    matches = 0
    j = 0
    for c in s1:
        for k in range(j, len2):
            if s2[k] == c:
                matches += 1
                j = k + 1
                break
    return (2.0 * matches) / (len1 + len2)


def fuzzy_score(target: str, text: str) -> float:
    """
    Similarity between a wanted label and an element's text.
    
    Returns:
        1.0 for equality, 0.9 when the target is contained in the text,
        0.8 for the reverse, 0.5-0.85 for word overlap, 0.5-0.75 for
        close short strings, else 0.0
    """
    target = normalize_text(target)
    text = normalize_text(text)
    if not text or not target:
        return 0.0
    if target == text:
        return 1.0
    if target in text:
        return 0.9
    if text in target and len(text) > 2:
        return 0.8
    
    text_words = set(re.sub(r"[-_]", " ", text).split())
    target_words = set(re.sub(r"[-_]", " ", target).split())
    
    target_actions = target_words & ACTION_WORDS
    text_actions = text_words & ACTION_WORDS
    if target_actions and text_actions and not (target_actions & text_actions):
        return 0.0
    
    if target_words and text_words:
        overlap = 0.0
        for tw in target_words:
            for ew in text_words:
                if tw in ew or ew in tw:
                    overlap += 1
                    break
                if len(tw) >= 3 and len(ew) >= 3 and tw[:3] == ew[:3]:
                    overlap += 0.7
                    break
        if overlap > 0:
            ratio = overlap / max(len(target_words), len(text_words))
            return 0.5 + (ratio * 0.35)
    
    if len(target) <= 20 and len(text) <= 30:
        ratio = simple_ratio(target, text)
        if ratio > 0.6:
            return 0.5 + (ratio * 0.25)
    
    return 0.0


@dataclass(frozen=True)
class Candidate:
    """A scored element found by one strategy."""
    handle: ElementHandle
    dom_order: int
    visible: bool
    enabled: bool
    exact: bool
    confidence: float
    
    @property
    def actionable(self) -> bool:
        return self.visible and self.enabled


@dataclass(frozen=True)
class StrategyMatch:
    """What one strategy produced for one locator."""
    best: Optional[Candidate]
    candidate_count: int
    ambiguous: bool = False


class ResolutionStrategy(ABC):
    """
    Base class for a locator-kind strategy.
    
    Subclasses only decide how well an element matches (``match_factor``);
    querying, visibility scoring and disambiguation are shared.
    """
    
    kind: LocatorKind
    
    def __init__(self, settings: ResolutionSettings):
        self.settings = settings
    
    @property
    def base_score(self) -> float:
        return self.settings.base_scores[self.kind.value]
    
    @abstractmethod
    async def match_factor(self, driver: IDriver, handle: ElementHandle, locator: Locator) -> float:
        """
        How well ``handle`` matches ``locator``.
        
        Returns:
            1.0 for an exact match, a value in (0, 1) for a partial one,
            0.0 to reject the element
        """
        ...
    
    def visibility_factor(self, visible: bool, enabled: bool) -> float:
        if not visible:
            return self.settings.hidden_factor
        if not enabled:
            return self.settings.disabled_factor
        return 1.0
    
    async def find(self, driver: IDriver, locator: Locator) -> StrategyMatch:
        """
        Find, score and disambiguate the elements a locator matches.
        
        A lone match scores ``base * visibility``. Match quality only
        weighs in when several elements compete.
        """
        handles = await driver.find_elements(locator)
        scored: List[Tuple[ElementHandle, int, bool, bool, float]] = []
        
        for order, handle in enumerate(handles):
            factor = await self.match_factor(driver, handle, locator)
            if factor <= 0.0:
                continue
            visible = await driver.is_visible(handle)
            enabled = await driver.is_enabled(handle) if visible else False
            scored.append((handle, order, visible, enabled, factor))
        
        if not scored:
            return StrategyMatch(best=None, candidate_count=0)
        
        contested = len(scored) > 1
        candidates = [
            Candidate(
                handle=handle,
                dom_order=order,
                visible=visible,
                enabled=enabled,
                exact=factor >= 1.0,
                confidence=min(
                    1.0,
                    self.base_score * self.visibility_factor(visible, enabled) * (factor if contested else 1.0),
                ),
            )
            for handle, order, visible, enabled, factor in scored
        ]
        
        ranked = sorted(
            candidates,
            key=lambda c: (not c.actionable, not c.exact, -c.confidence, c.dom_order),
        )
        best = ranked[0]
        ambiguous = False
        if len(ranked) > 1:
            runner_up = ranked[1]
            ambiguous = (
                runner_up.actionable == best.actionable
                and runner_up.exact == best.exact
            )
            if ambiguous:
                best = Candidate(
                    handle=best.handle,
                    dom_order=best.dom_order,
                    visible=best.visible,
                    enabled=best.enabled,
                    exact=best.exact,
                    confidence=best.confidence * self.settings.ambiguity_penalty,
                )
        return StrategyMatch(best=best, candidate_count=len(candidates), ambiguous=ambiguous)


class IdentifierStrategy(ResolutionStrategy):
    """Element id. The driver's match is exact by construction."""
    kind = LocatorKind.IDENTIFIER
    
    async def match_factor(self, driver, handle, locator):
        return 1.0


class AttributeStrategy(ResolutionStrategy):
    """``attr=value`` equality; containment counts as partial."""
    kind = LocatorKind.ATTRIBUTE
    
    async def match_factor(self, driver, handle, locator):
        name, wanted = locator.attribute_pair()
        actual = await driver.get_attribute(handle, name)
        if actual is None:
            return self.settings.partial_match_factor
        if actual == wanted:
            return 1.0
        return self.settings.partial_match_factor


class RoleStrategy(ResolutionStrategy):
    """ARIA role plus accessible name (aria-label, else text)."""
    kind = LocatorKind.ROLE
    
    async def match_factor(self, driver, handle, locator):
        if not locator.name:
            return 1.0
        wanted = normalize_text(locator.name)
        label = normalize_text(await driver.get_attribute(handle, "aria-label"))
        text = label or normalize_text(await driver.element_text(handle))
        if text == wanted:
            return 1.0
        if wanted in text:
            return self.settings.partial_match_factor
        return 0.0


class TextStrategy(ResolutionStrategy):
    """Visible text; equality is exact, containment is partial."""
    kind = LocatorKind.TEXT
    
    async def match_factor(self, driver, handle, locator):
        wanted = normalize_text(locator.value)
        text = normalize_text(await driver.element_text(handle))
        if text == wanted:
            return 1.0
        if wanted in text:
            return self.settings.partial_match_factor
        return 0.0


class StructuralStrategy(ResolutionStrategy):
    """CSS selector or positional path."""
    kind = LocatorKind.STRUCTURAL
    
    async def match_factor(self, driver, handle, locator):
        return 1.0


class FuzzyStrategy(ResolutionStrategy):
    """Scores the driver's candidate pool by label similarity."""
    kind = LocatorKind.FUZZY
    
    LABEL_ATTRIBUTES = ("aria-label", "placeholder", "title", "name", "value")
    
    async def match_factor(self, driver, handle, locator):
        labels = [await driver.element_text(handle)]
        for attr in self.LABEL_ATTRIBUTES:
            labels.append(await driver.get_attribute(handle, attr))
        score = max(fuzzy_score(locator.value, label or "") for label in labels)
        if score < self.settings.fuzzy_min_similarity:
            return 0.0
        return score


STRATEGY_TYPES: Dict[LocatorKind, Type[ResolutionStrategy]] = {
    LocatorKind.IDENTIFIER: IdentifierStrategy,
    LocatorKind.ATTRIBUTE: AttributeStrategy,
    LocatorKind.ROLE: RoleStrategy,
    LocatorKind.TEXT: TextStrategy,
    LocatorKind.STRUCTURAL: StructuralStrategy,
    LocatorKind.FUZZY: FuzzyStrategy,
}

_missing = set(LocatorKind) - set(STRATEGY_TYPES)
if _missing:
    raise TypeError(f"No resolution strategy for locator kinds: {sorted(k.value for k in _missing)}")


def build_strategies(settings: ResolutionSettings) -> Dict[LocatorKind, ResolutionStrategy]:
    """Instantiate one strategy per locator kind."""
    return {kind: cls(settings) for kind, cls in STRATEGY_TYPES.items()}
