"""Best-effort structured extraction from page snapshots.

A pipeline is an ordered list of collection strategies plus one rule per
output field. The first strategy that finds at least one candidate element
wins; within each candidate every field is resolved independently, first
matching selector first. Nothing here raises: markup drift degrades the
result, it never fails the request.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from bs4 import BeautifulSoup
from bs4.element import Tag

logger = logging.getLogger(__name__)

Record = Dict[str, Any]
Finder = Callable[[BeautifulSoup], Optional[List[Tag]]]
Fallback = Callable[[Tag, Record], Any]

_DIGITS = re.compile(r"\d+")


@dataclass(frozen=True)
class Strategy:
    name: str
    find: Finder


@dataclass(frozen=True)
class FieldRule:
    """How to resolve one output field inside a candidate element.

    ``parse`` turns the matched text into the field value and returns None
    when the text is unusable, in which case the next selector is tried.
    ``attribute`` reads an attribute instead of the text. ``fallback`` runs
    only when no selector matched, with the fields resolved so far."""

    field: str
    selectors: Tuple[str, ...]
    parse: Optional[Callable[[str], Any]] = None
    attribute: Optional[str] = None
    fallback: Optional[Fallback] = None
    required: bool = False
    default: Any = ""
    many: bool = False


class ExtractionPipeline:
    def __init__(
        self,
        strategies: Sequence[Strategy],
        rules: Sequence[FieldRule],
        limit: Optional[int] = None,
    ) -> None:
        self._strategies = list(strategies)
        self._rules = list(rules)
        self._limit = limit
        self.last_strategy: Optional[str] = None

    @property
    def strategies(self) -> List[Strategy]:
        return list(self._strategies)

    def extract(self, snapshot: Union[str, BeautifulSoup], limit: Optional[int] = None) -> List[Record]:
        """Return the records of the first strategy that finds candidates."""
        self.last_strategy = None
        try:
            soup = snapshot if isinstance(snapshot, BeautifulSoup) else BeautifulSoup(snapshot or "", "html.parser")
        except Exception as exc:  # noqa: BLE001
            logger.warning("Could not parse page snapshot: %s", exc)
            return []

        candidates = self._candidates(soup)
        if not candidates:
            logger.info("No candidate elements found with any strategy")
            return []

        cap = limit if limit is not None else self._limit
        records: List[Record] = []
        for index, element in enumerate(candidates):
            if cap is not None and len(records) >= cap:
                break
            try:
                record = self.extract_element(element)
            except Exception as exc:  # noqa: BLE001
                logger.debug("Error processing candidate %d: %s", index, exc)
                continue
            if record is not None:
                records.append(record)

        logger.info("Extracted %d records using strategy %s", len(records), self.last_strategy)
        return records

    def extract_element(self, element: Tag) -> Optional[Record]:
        """Resolve every field of one candidate; None if no primary field is set."""
        record: Record = {}
        for rule in self._rules:
            value = _resolve(element, rule)
            if _is_empty(value) and rule.fallback is not None:
                value = rule.fallback(element, record)
            record[rule.field] = value

        primary = [r.field for r in self._rules if r.required]
        if primary and all(_is_empty(record.get(name)) for name in primary):
            return None

        # defaults only after the primary-field check
        for rule in self._rules:
            if _is_empty(record[rule.field]):
                record[rule.field] = list(rule.default or ()) if rule.many else rule.default
        return record

    def _candidates(self, soup: BeautifulSoup) -> List[Tag]:
        for position, strategy in enumerate(self._strategies, start=1):
            try:
                found = strategy.find(soup) or []
            except Exception as exc:  # noqa: BLE001
                logger.debug("Strategy %s failed: %s", strategy.name, exc)
                continue
            if found:
                self.last_strategy = strategy.name
                logger.info(
                    "Found %d candidate items using strategy %d (%s)",
                    len(found), position, strategy.name,
                )
                return list(found)
        return []


def _resolve(element: Tag, rule: FieldRule) -> Any:
    for selector in rule.selectors:
        try:
            matches = element.select(selector) if rule.many else [element.select_one(selector)]
        except Exception:  # noqa: BLE001
            # selector syntax the parser does not support
            continue
        values = []
        for match in matches:
            if match is None:
                continue
            raw = match.get(rule.attribute) if rule.attribute else match.get_text(" ", strip=True)
            if isinstance(raw, list):
                raw = " ".join(raw)
            text = (raw or "").strip()
            if not text:
                continue
            value = rule.parse(text) if rule.parse else text
            if not _is_empty(value):
                values.append(value)
        if values:
            return values if rule.many else values[0]
    return None


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == []


# -- selector set helpers ------------------------------------------------


def first_selector(*selectors: str) -> Finder:
    """Strategy finder: elements of the first selector that matches anything."""

    def find(soup: BeautifulSoup) -> Optional[List[Tag]]:
        for selector in selectors:
            items = soup.select(selector)
            if items:
                return items
        return None

    return find


def within_containers(containers: str, items: str) -> Finder:
    """Strategy finder: items inside the first container that has any."""

    def find(soup: BeautifulSoup) -> Optional[List[Tag]]:
        for container in soup.select(containers):
            found = container.select(items)
            if found:
                return found
        return None

    return find


def attribute_scan(keywords: Sequence[str], max_text: int = 500) -> Finder:
    """Strategy finder: any element whose class or data-testid mentions a keyword."""

    def find(soup: BeautifulSoup) -> Optional[List[Tag]]:
        found = []
        for element in soup.find_all(True):
            classes = " ".join(element.get("class") or [])
            testid = element.get("data-testid") or ""
            text = element.get_text(strip=True)
            if not 0 < len(text) < max_text:
                continue
            if any(k in classes or k in testid for k in keywords):
                found.append(element)
        return found or None

    return find


# -- field parsers and fallbacks -----------------------------------------


def parse_count(text: str) -> Optional[int]:
    """First integer in text; '1.2万' style counts are expanded."""
    match = re.search(r"(\d+(?:\.\d+)?)\s*([万wWkK]?)", text)
    if not match:
        return None
    number = float(match.group(1))
    unit = match.group(2).lower()
    if unit in ("万", "w"):
        number *= 10000
    elif unit == "k":
        number *= 1000
    return int(round(number))


def parse_digits(text: str) -> Optional[int]:
    """Concatenate every digit in text, as the engage bar counters read."""
    digits = "".join(_DIGITS.findall(text))
    return int(digits) if digits else None


def short_leaf_text(max_length: int = 50) -> Fallback:
    """Fallback: text of the first leaf element that looks like a username."""

    def fallback(element: Tag, record: Record) -> str:
        for child in element.find_all(True):
            if child.find(True) is not None:
                continue
            text = child.get_text(strip=True)
            if text and len(text) < max_length and " " not in text:
                return text
        return ""

    return fallback


def remaining_text(min_length: int = 10, max_length: int = 1000, consumed: Sequence[str] = ("author",)) -> Fallback:
    """Fallback: whole element text minus the substrings other fields took."""

    def fallback(element: Tag, record: Record) -> str:
        text = element.get_text(" ", strip=True)
        if not min_length < len(text) < max_length:
            return ""
        for name in consumed:
            used = record.get(name)
            if isinstance(used, str) and used:
                if used == text:
                    return ""
                text = text.replace(used, "", 1)
        return " ".join(text.split())

    return fallback
