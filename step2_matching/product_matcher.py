#!/usr/bin/env python3
"""
Product Matcher - Match free-text product names from exports to catalog products

POS exports truncate long product names ("Choc Cake" for "Chocolate Cake"),
so names are scored by a cascade of strategies. The first strategy that
produces a score wins; a Levenshtein fallback can lift a weak score.

Verdicts:
- AUTO_MATCH: best score >= min_auto_match_score, apply without asking
- NEEDS_CONFIRMATION: candidates scored >= 50 but none reached the threshold
- NO_MATCH: nothing scored >= 50
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, List, Optional

from rapidfuzz.distance import Levenshtein

import config
from .name_normalizer import clean_text, compact_name, normalize_name, normalize_unit, significant_words

logger = logging.getLogger(__name__)


class MatchVerdict(Enum):
    """How the best candidate should be treated by the caller."""

    AUTO_MATCH = "auto_match"
    NEEDS_CONFIRMATION = "needs_confirmation"
    NO_MATCH = "no_match"


@dataclass
class MatchCandidate:
    id: str
    name: str
    unit: str
    score: float
    strategy: str = ''


@dataclass
class MatchResult:
    query: str
    verdict: MatchVerdict
    match: Optional[MatchCandidate] = None
    possible_matches: List[MatchCandidate] = field(default_factory=list)

    @property
    def best_score(self) -> float:
        return self.possible_matches[0].score if self.possible_matches else 0.0

    @property
    def needs_confirmation(self) -> bool:
        return self.verdict == MatchVerdict.NEEDS_CONFIRMATION


@dataclass
class NameForms:
    """Pre-computed string forms of one name"""
    raw: str
    clean: str
    normalized: str
    compact: str
    words: List[str]

    @classmethod
    def of(cls, text: Optional[str]) -> 'NameForms':
        text = text or ''
        return cls(
            raw=text,
            clean=clean_text(text),
            normalized=normalize_name(text),
            compact=compact_name(text),
            words=significant_words(text),
        )


def _ratio_score(low: float, high: float, matched_len: int, catalog_len: int) -> Optional[float]:
    """Scale into [low, high] by how much of the catalog name was matched"""
    if catalog_len <= 0:
        return None
    ratio = min(matched_len / catalog_len, 1.0)
    return max(low, min(high, low + (high - low) * ratio))


# ---------------------------------------------------------------------------
# Scoring strategies, in priority order
# ---------------------------------------------------------------------------

class ScoringStrategy:
    """score(query, candidate) returns a 0-100 score, or None when the rule does not apply"""

    name = 'base'

    def score(self, query: NameForms, candidate: NameForms) -> Optional[float]:
        raise NotImplementedError


class ExactNameStrategy(ScoringStrategy):
    name = 'exact'

    def score(self, query, candidate):
        if query.normalized and query.normalized == candidate.normalized:
            return 100.0
        return None


class PrefixStrategy(ScoringStrategy):
    """
    Catalog name is a prefix of the input or the input is a prefix of the
    catalog name. Word-by-word truncation counts too: "Choc Cake" is a
    truncation of "Chocolate Cake".
    """

    name = 'prefix'
    low, high = 85.0, 98.0
    min_truncated_word = 3

    def score(self, query, candidate):
        q, c = query.clean, candidate.clean
        if not q or not c:
            return None

        if c.startswith(q) or q.startswith(c):
            return _ratio_score(self.low, self.high, min(len(q), len(c)), len(c))

        if self._is_word_truncation(query.normalized.split(), candidate.normalized.split()):
            return _ratio_score(self.low, self.high, len(query.normalized), len(candidate.normalized))

        return None

    def _is_word_truncation(self, query_words: List[str], catalog_words: List[str]) -> bool:
        if not query_words or len(query_words) > len(catalog_words):
            return False
        for word, catalog_word in zip(query_words, catalog_words):
            if word == catalog_word:
                continue
            if len(word) < self.min_truncated_word or not catalog_word.startswith(word):
                return False
        return True


class CompactPrefixStrategy(ScoringStrategy):
    """Prefix relationship once everything but letters and digits is stripped"""

    name = 'compact_prefix'
    low, high = 80.0, 96.0

    def score(self, query, candidate):
        q, c = query.compact, candidate.compact
        if not q or not c:
            return None
        if c.startswith(q) or q.startswith(c):
            return _ratio_score(self.low, self.high, min(len(q), len(c)), len(c))
        return None


class ContainmentStrategy(ScoringStrategy):
    name = 'containment'

    def score(self, query, candidate):
        q, c = query.clean, candidate.clean
        if not q or not c:
            return None
        if q in c:
            return 75.0
        if c in q:
            return 70.0
        return None


class WordOverlapStrategy(ScoringStrategy):
    """50 + 30 * exact/total + 15 * partial/total over the input's significant words"""

    name = 'word_overlap'

    def score(self, query, candidate):
        total = len(query.words)
        if total == 0:
            return None

        catalog_words = set(candidate.words)
        exact = 0
        partial = 0
        for word in query.words:
            if word in catalog_words:
                exact += 1
            elif any(cw.startswith(word) or word.startswith(cw) for cw in catalog_words):
                partial += 1

        if exact == 0 and partial == 0:
            return None
        return 50.0 + 30.0 * exact / total + 15.0 * partial / total


class LevenshteinStrategy(ScoringStrategy):
    """Edit-distance similarity for typos; only consulted when nothing else reached the floor"""

    name = 'levenshtein'

    def __init__(self, min_length: int = 5, min_similarity: float = 0.6):
        self.min_length = min_length
        self.min_similarity = min_similarity

    def similarity(self, a: str, b: str) -> float:
        max_len = max(len(a), len(b))
        if max_len == 0:
            return 0.0
        return 1.0 - Levenshtein.distance(a, b) / max_len

    def score(self, query, candidate):
        a, b = query.normalized, candidate.normalized
        if len(a) < self.min_length or len(b) < self.min_length:
            return None
        sim = self.similarity(a, b)
        if sim > self.min_similarity:
            return 40.0 + sim * 40.0
        return None


DEFAULT_STRATEGIES = (
    ExactNameStrategy(),
    PrefixStrategy(),
    CompactPrefixStrategy(),
    ContainmentStrategy(),
    WordOverlapStrategy(),
)


def _field(product: Any, key: str) -> str:
    if isinstance(product, dict):
        return str(product.get(key) or '')
    return str(getattr(product, key, '') or '')


class ProductMatcher:
    """Score a free-text name against catalog products"""

    def __init__(self, min_auto_match_score: Optional[float] = None, settings: Optional[dict] = None,
                 strategies: Optional[Iterable[ScoringStrategy]] = None):
        """
        Initialize product matcher

        Args:
            min_auto_match_score: Best score needed to auto-match (default 85)
            settings: Matching settings (defaults to config.MATCHING, usually
                      RuleLoader.get_matching_config())
            strategies: Ordered scoring strategies (defaults to DEFAULT_STRATEGIES)
        """
        self.settings = dict(config.MATCHING)
        self.settings.update(settings or {})
        if min_auto_match_score is not None:
            self.settings['min_auto_match_score'] = min_auto_match_score

        self.min_auto_match_score = float(self.settings['min_auto_match_score'])
        self.confirmation_floor = float(self.settings['confirmation_floor'])
        self.candidate_floor = float(self.settings['candidate_floor'])
        self.max_candidates = int(self.settings['max_candidates'])

        self.strategies = list(strategies) if strategies is not None else list(DEFAULT_STRATEGIES)
        self.fallback = LevenshteinStrategy(
            min_length=int(self.settings['levenshtein_min_length']),
            min_similarity=float(self.settings['levenshtein_min_similarity']),
        )

    def score_name(self, name: str, catalog_name: str) -> float:
        """Score one pair of names"""
        score, _ = self._score_forms(NameForms.of(name), NameForms.of(catalog_name))
        return score

    def _score_forms(self, query: NameForms, candidate: NameForms):
        score = 0.0
        strategy_name = ''
        for strategy in self.strategies:
            result = strategy.score(query, candidate)
            if result is not None:
                score, strategy_name = result, strategy.name
                break

        if score < self.candidate_floor:
            fallback = self.fallback.score(query, candidate)
            if fallback is not None and fallback > score:
                score, strategy_name = fallback, self.fallback.name

        return min(score, 100.0), strategy_name

    def _candidate_pool(self, products: List[Any], unit: Optional[str]) -> List[Any]:
        """Restrict to products sharing the unit hint; never let the filter empty the pool"""
        if not unit:
            return products
        wanted = normalize_unit(unit)
        same_unit = [p for p in products if normalize_unit(_field(p, 'unit')) == wanted]
        if not same_unit:
            logger.debug(f"No catalog products with unit '{unit}', matching against all units")
            return products
        return same_unit

    def find_possible_matches(self, name: str, products: Iterable[Any], unit: Optional[str] = None) -> List[MatchCandidate]:
        """
        Rank catalog products for a name

        Args:
            name: Free-text product name from the export
            products: Product objects or dicts with id, name and unit
            unit: Optional unit hint from the same row

        Returns:
            Candidates scoring >= candidate_floor, best first, at most max_candidates
        """
        query = NameForms.of(name)
        if not query.normalized:
            return []

        candidates = []
        for product in self._candidate_pool(list(products), unit):
            score, strategy_name = self._score_forms(query, NameForms.of(_field(product, 'name')))
            if score >= self.candidate_floor:
                candidates.append(MatchCandidate(
                    id=_field(product, 'id'),
                    name=_field(product, 'name'),
                    unit=_field(product, 'unit'),
                    score=score,
                    strategy=strategy_name,
                ))

        candidates.sort(key=lambda c: c.score, reverse=True)
        return candidates[:self.max_candidates]

    def find_best_match(self, name: str, products: Iterable[Any], unit: Optional[str] = None) -> MatchResult:
        """
        Find the best catalog product for a name and decide whether it can be applied

        Returns:
            MatchResult with verdict, the auto-match (if any) and ranked candidates
        """
        candidates = self.find_possible_matches(name, products, unit)
        if not candidates:
            logger.debug(f"No match for '{name}'")
            return MatchResult(query=name, verdict=MatchVerdict.NO_MATCH)

        best = candidates[0]
        if best.score >= self.min_auto_match_score:
            logger.debug(f"Auto-match: '{name}' -> '{best.name}' ({best.unit}) score={best.score:.2f} via {best.strategy}")
            return MatchResult(query=name, verdict=MatchVerdict.AUTO_MATCH, match=best, possible_matches=candidates)

        band = 'likely truncation' if best.score >= self.confirmation_floor else 'weak'
        logger.debug(f"Needs confirmation ({band}): '{name}' best='{best.name}' score={best.score:.2f}")
        return MatchResult(query=name, verdict=MatchVerdict.NEEDS_CONFIRMATION, possible_matches=candidates)
