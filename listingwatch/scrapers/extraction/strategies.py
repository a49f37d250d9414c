"""Ordered extraction strategies evaluated as a chain.

A chain holds ``Strategy`` entries in priority order. Each strategy yields
zero or more raw candidates from a parsed document; the chain returns the
first candidate its ``accept`` predicate allows.
"""

from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Tuple

import structlog
from bs4 import BeautifulSoup

logger = structlog.get_logger(__name__)


def _always(soup: BeautifulSoup) -> bool:
    return True


@dataclass(frozen=True)
class Strategy:
    """One named heuristic: ``applies`` gates it, ``extract`` yields candidates."""

    name: str
    extract: Callable[[BeautifulSoup], Iterable[str]]
    applies: Callable[[BeautifulSoup], bool] = _always


class StrategyChain:
    """First accepted candidate across an ordered list of strategies."""

    def __init__(
        self,
        name: str,
        strategies: List[Strategy],
        accept: Callable[[str], bool] = bool,
        clean: Callable[[str], str] = str.strip,
    ):
        self.name = name
        self.strategies = list(strategies)
        self.accept = accept
        self.clean = clean

    def first(self, soup: BeautifulSoup) -> Optional[Tuple[str, str]]:
        """Run strategies in order.

        Returns:
            (value, strategy_name) for the first accepted candidate, or None
        """
        for strategy in self.strategies:
            if not strategy.applies(soup):
                continue
            for raw in strategy.extract(soup):
                if raw is None:
                    continue
                candidate = self.clean(str(raw))
                if self.accept(candidate):
                    logger.debug(
                        "strategy_matched",
                        chain=self.name,
                        strategy=strategy.name,
                        value=candidate,
                    )
                    return candidate, strategy.name
                logger.debug(
                    "strategy_candidate_rejected",
                    chain=self.name,
                    strategy=strategy.name,
                    value=candidate[:60],
                )
        return None

    def resolve(self, soup: BeautifulSoup) -> Optional[str]:
        result = self.first(soup)
        return result[0] if result else None


def select_texts(*selectors: str) -> Callable[[BeautifulSoup], Iterable[str]]:
    """Extractor yielding the text of every element matching each selector."""

    def _extract(soup: BeautifulSoup) -> Iterable[str]:
        for selector in selectors:
            for element in soup.select(selector):
                text = element.get_text(" ", strip=True)
                if text:
                    yield text

    return _extract


def select_attrs(selector: str, *attrs: str) -> Callable[[BeautifulSoup], Iterable[str]]:
    """Extractor yielding the first present attribute of each match."""

    def _extract(soup: BeautifulSoup) -> Iterable[str]:
        for element in soup.select(selector):
            for attr in attrs:
                value = element.get(attr)
                if value:
                    yield value
                    break

    return _extract
