"""
Admission gate for discovered links: visited check, exclusion rules and
domain allow-listing.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Pattern, Sequence

from .stats import StatsAggregator
from .visited import VisitedSet
from ..utils.config import extract_domain


@dataclass(frozen=True)
class ExclusionRule:
    """A named pattern; a URL matching it is never crawled."""
    name: str
    pattern: Pattern

    def matches(self, url: str) -> bool:
        return self.pattern.search(url) is not None


def _rule(name: str, pattern: str) -> ExclusionRule:
    return ExclusionRule(name, re.compile(pattern, re.IGNORECASE))


DEFAULT_EXCLUSION_RULES: Sequence[ExclusionRule] = (
    _rule('media', r'\.(jpg|jpeg|png|gif|svg|ico|pdf|zip|tar|gz|mp4|mp3|avi|mov|webp|bmp)$'),
    _rule('assets', r'\.(css|js|woff|woff2|ttf|eot|otf)$'),
    _rule('mailto', r'^mailto:'),
    _rule('tel', r'^tel:'),
    _rule('javascript', r'^javascript:'),
    _rule('fragment', r'^#'),
    _rule('tracking', r'\?.*utm_'),
)


class Verdict(Enum):
    """Outcome of evaluating a URL against the gate."""
    ADMITTED = 'admitted'
    VISITED = 'visited'
    EXCLUDED = 'excluded'
    EXTERNAL = 'external'


class URLGate:
    """
    Decides whether a URL may become a crawl job.

    Evaluation order: already visited (silent reject), exclusion rules
    (``excluded_links`` += 1), then exact host match against the allowed
    domain (``external_links`` += 1). Exclusion rules are independent and
    OR-ed, so their order does not matter.
    """

    def __init__(self, allowed_domain: str, visited: VisitedSet, stats: StatsAggregator,
                 extra_patterns: Iterable[str] = ()):
        self.allowed_domain = allowed_domain.lower()
        self.visited = visited
        self.stats = stats
        self.logger = logging.getLogger(__name__)

        self.rules: List[ExclusionRule] = list(DEFAULT_EXCLUSION_RULES)
        for index, pattern in enumerate(extra_patterns):
            self.rules.append(_rule(f'custom-{index}', pattern))

    def matching_rule(self, url: str) -> Optional[ExclusionRule]:
        for rule in self.rules:
            if rule.matches(url):
                return rule
        return None

    def is_excluded(self, url: str) -> bool:
        return any(rule.matches(url) for rule in self.rules)

    def is_allowed_domain(self, url: str) -> bool:
        try:
            return extract_domain(url) == self.allowed_domain
        except ValueError:
            return False

    def _filter(self, url: str) -> Verdict:
        """Apply exclusion and domain rules, counting rejections."""
        if self.is_excluded(url):
            self.stats.record_excluded()
            self.logger.debug(f"Excluded by pattern: {url}")
            return Verdict.EXCLUDED

        if not self.is_allowed_domain(url):
            self.stats.record_external()
            self.logger.debug(f"Skipping external link: {url}")
            return Verdict.EXTERNAL

        return Verdict.ADMITTED

    def evaluate(self, url: str) -> Verdict:
        """Classify a discovered link without marking it visited."""
        if url in self.visited:
            return Verdict.VISITED
        return self._filter(url)

    def screen(self, url: str) -> bool:
        """Producer-side check: may this link be enqueued?"""
        return self.evaluate(url) is Verdict.ADMITTED

    def admit(self, url: str) -> bool:
        """
        Worker-side check: claim ``url`` for crawling.

        The visited insert is atomic, so exactly one caller wins for a URL.
        """
        if self.evaluate(url) is not Verdict.ADMITTED:
            return False
        return self.visited.add_if_absent(url)
