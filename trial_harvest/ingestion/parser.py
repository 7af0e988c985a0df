"""
Page Parser
===========

Field extraction for the event detail page and the placement detail page.
Every extractor takes a BeautifulSoup tag and returns a typed record, or
``None`` when the markup does not match. Extractors never raise on
unexpected markup.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from urllib.parse import parse_qs, urljoin, urlparse

from bs4 import BeautifulSoup, Tag

from trial_harvest.core.schema import PlacementRecord
from trial_harvest.errors import ParseError

logger = logging.getLogger(__name__)

AG_RUN_RE = re.compile(
    r"^Ag\s*(?P<class_name>FAST|JWW|Colors)?\s*(?P<division>[^(]+)\((?P<height>\d+)"
)
T2B_RUN_RE = re.compile(r"Time 2 Beat(?P<division>[^(]+)\((?P<height>\d+)")
OPEN_WIN_RE = re.compile(r"openWin\('(?P<href>[^']+)")
# (2 ent) / (14 ent) 30 Secs / (13 ent) 20.5 Secs 100 yds
ENTRIES_RE = re.compile(
    r"(?P<entries>\d+)\s*ent\)(?:\s*(?P<seconds>[\d.]+)\s*Sec\w*(?:\s*(?P<yards>[\d.]+)\s*yds)?)?",
    re.IGNORECASE,
)
POINTS_RE = re.compile(r"pts\s+(?P<points>\d+(?:\.\d+)?)", re.IGNORECASE)
TIME_RE = re.compile(r"Time\s+(?P<time>\d+(?:\.\d+)?)", re.IGNORECASE)
LEADING_INT_RE = re.compile(r"\d+")


@dataclass(frozen=True)
class RunNameInfo:
    class_name: str
    division: str | None
    height: int


@dataclass(frozen=True)
class ClassInfo:
    run_name: str
    class_name: str
    division: str | None
    height: int
    class_href: str


@dataclass(frozen=True)
class JudgeInfo:
    judge_name: str
    judge_href: str | None


@dataclass(frozen=True)
class EntriesInfo:
    num_entries: int
    standard_completion_time: float | None
    num_yards: int | None


@dataclass(frozen=True)
class DogInfo:
    registered_name: str
    registration_number: str
    dog_breed: str | None
    dog_handler: str | None


@dataclass(frozen=True)
class PointsInfo:
    points: float | None
    time: float | None


def normalize_space(text: str) -> str:
    """Collapse runs of whitespace and trim."""
    return re.sub(r"\s+", " ", text).strip()


def parse_html(html: str) -> BeautifulSoup:
    """
    Parse an HTML document.

    Raises:
        ParseError: If the document is empty or has no markup at all
    """
    if not html or not html.strip():
        raise ParseError("Empty document")
    soup = BeautifulSoup(html, "lxml")
    if soup.find(True) is None:
        raise ParseError("Document contains no HTML elements")
    return soup


def child_tags(tag: Tag) -> list[Tag]:
    return [c for c in tag.children if isinstance(c, Tag)]


def _to_float(text: str | None) -> float | None:
    if text is None:
        return None
    try:
        return float(text)
    except ValueError:
        return None


def _to_int(text: str | None) -> int | None:
    value = _to_float(text)
    return int(value) if value is not None else None


# ============================================================================
# Event detail page
# ============================================================================


def is_trial_row(row: Tag) -> bool:
    """A trial row has exactly four cells and the second spans four columns."""
    cells = child_tags(row)
    if len(cells) != 4:
        return False
    return cells[1].get("colspan") == "4"


def find_candidate_rows(soup: BeautifulSoup) -> list[Tag]:
    """All table rows on an event page, including rows of nested tables."""
    return soup.find_all("tr")


def parse_run_name(run_name: str) -> RunNameInfo | None:
    """
    Split a run name into class, division and jump height.

    "Ag JWW Master (20\")"        -> JWW / Master / 20
    "Ag Novice A (16\")"          -> Standard / Novice A / 16
    "Time 2 Beat Preferred (12\")" -> T2B / Preferred / 12
    """
    run_name = normalize_space(run_name)
    if run_name.startswith("Ag"):
        match = AG_RUN_RE.search(run_name)
        class_name = (match.group("class_name") or "Standard") if match else None
    elif run_name.startswith("Time 2 Beat"):
        match = T2B_RUN_RE.search(run_name)
        class_name = "T2B"
    else:
        logger.debug(f"Unknown run name: {run_name}")
        return None

    if match is None or class_name is None:
        logger.debug(f"Run name did not match expected pattern: {run_name}")
        return None

    division = match.group("division").strip() or None
    return RunNameInfo(class_name=class_name, division=division, height=int(match.group("height")))


def extract_class_info(cell: Tag, domain: str = "") -> ClassInfo | None:
    """Extract the class name and placement page link from a class cell."""
    link = cell.select_one("a.white")
    if link is None:
        return None
    href_match = OPEN_WIN_RE.search(link.get("href", ""))
    if href_match is None:
        return None
    run_name = normalize_space(link.get_text())
    run_info = parse_run_name(run_name)
    if run_info is None:
        return None
    return ClassInfo(
        run_name=run_name,
        class_name=run_info.class_name,
        division=run_info.division,
        height=run_info.height,
        class_href=urljoin(domain + "/", href_match.group("href")) if domain else href_match.group("href"),
    )


def extract_judge_info(cell: Tag, domain: str = "") -> JudgeInfo | None:
    """Extract the judge's name and profile link from a judge cell."""
    link = cell.select_one("a.white")
    if link is None:
        return None
    judge_name = normalize_space(cell.get_text())
    if not judge_name:
        return None
    href = link.get("href")
    if href and domain:
        href = urljoin(domain + "/", href)
    return JudgeInfo(judge_name=judge_name, judge_href=href or None)


def extract_entries_info(cell: Tag) -> EntriesInfo | None:
    """Extract entry count, standard course time and yardage from an entries cell."""
    text = normalize_space(cell.get_text())
    if not text:
        return None
    match = ENTRIES_RE.search(text)
    if match is None:
        return None
    return EntriesInfo(
        num_entries=int(match.group("entries")),
        standard_completion_time=_to_float(match.group("seconds")),
        num_yards=_to_int(match.group("yards")),
    )


# ============================================================================
# Placement detail page
# ============================================================================


def find_placement_rows(soup: BeautifulSoup) -> list[Tag]:
    """Rows holding a placement: the grandparent of each right-aligned font cell."""
    rows: list[Tag] = []
    seen: set[int] = set()
    for font in soup.select('td[align="right"] > font'):
        row = font.parent.parent if font.parent is not None else None
        if isinstance(row, Tag) and id(row) not in seen:
            seen.add(id(row))
            rows.append(row)
    return rows


def parse_place(text: str) -> int | None:
    """The leading integer of a free-form placement ("1st" -> 1), or None."""
    match = LEADING_INT_RE.search(text or "")
    return int(match.group(0)) if match else None


def extract_dog_info(cell: Tag) -> DogInfo | None:
    """Extract registered name, registration number, breed and handler."""
    link = cell.select_one("a.white")
    if link is None:
        return None
    registered_name = normalize_space(link.get_text())
    query = parse_qs(urlparse(link.get("href", "")).query)
    dog_ids = query.get("dog_id")
    if not registered_name or not dog_ids or not dog_ids[0].strip():
        return None

    breed_tag = cell.find("i")
    breed = normalize_space(breed_tag.get_text()) if breed_tag else ""
    cell_text = normalize_space(cell.get_text(" "))
    handler = ""
    if breed and breed in cell_text:
        # The handler follows the breed
        handler = cell_text[cell_text.index(breed) + len(breed):].strip()

    return DogInfo(
        registered_name=registered_name,
        registration_number=dog_ids[0].strip(),
        dog_breed=breed or None,
        dog_handler=handler or None,
    )


def extract_points_info(cell: Tag | str) -> PointsInfo:
    """
    Extract points and time from a points cell.

    Either token may be missing; a missing token is None.
    """
    text = normalize_space(cell if isinstance(cell, str) else cell.get_text(" "))
    points = POINTS_RE.search(text)
    time = TIME_RE.search(text)
    return PointsInfo(
        points=_to_float(points.group("points")) if points else None,
        time=_to_float(time.group("time")) if time else None,
    )


def extract_placement(row: Tag) -> PlacementRecord | None:
    """Build a PlacementRecord from one placement row, or None if it does not fit."""
    cells = row.find_all("td", recursive=False)
    if len(cells) < 6:
        return None
    place_cell, dog_cell, points_cell = cells[3], cells[4], cells[5]
    dog = extract_dog_info(dog_cell)
    if dog is None:
        return None
    place_text = normalize_space(place_cell.get_text())
    points = extract_points_info(points_cell)
    return PlacementRecord(
        place=parse_place(place_text),
        place_text=place_text,
        dog_breed=dog.dog_breed,
        dog_handler=dog.dog_handler,
        registered_name=dog.registered_name,
        registration_number=dog.registration_number,
        points=points.points,
        time=points.time,
    )
