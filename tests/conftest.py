"""Shared fixtures and page builders for the test suite."""

import tempfile
from pathlib import Path

import pytest

from trial_harvest.config import SiteConfig
from trial_harvest.db.store import Store

DOMAIN = "https://results.example.com"


def trial_row(
    run_name: str,
    href: str,
    judge: str = "Jane Judge",
    entries: str = "(14 ent) 30 Secs 120 yds",
) -> str:
    """One class row of an event page."""
    return (
        "<tr>"
        "<td>&nbsp;</td>"
        f"<td colspan=\"4\"><a class=\"white\" href=\"javascript:openWin('{href}')\">{run_name}</a></td>"
        f"<td><a class=\"white\" href=\"/apps/judges/?judge_id=77\">{judge}</a></td>"
        f"<td>{entries}</td>"
        "</tr>"
    )


def event_page(*rows: str) -> str:
    """An event page with a header row and the given class rows."""
    return (
        "<html><body><table>"
        "<tr><td colspan=\"6\">Agility Trial Results</td></tr>"
        + "".join(rows)
        + "</table></body></html>"
    )


def placement_row(
    place: str,
    registration_number: str,
    registered_name: str,
    breed: str = "Border Collie",
    handler: str = "Pat Handler",
    points: str = "pts 100 Time 32.45",
) -> str:
    """One finisher row of a placement page."""
    return (
        "<tr>"
        "<td></td><td></td><td></td>"
        f"<td align=\"right\"><font>{place}</font></td>"
        f"<td><a class=\"white\" href=\"/apps/dogs/?dog_id={registration_number}\">{registered_name}</a>"
        f"<br><i>{breed}</i> {handler}</td>"
        f"<td>{points}</td>"
        "</tr>"
    )


def placement_page(*rows: str) -> str:
    """A placement page with the given finisher rows."""
    return "<html><body><table>" + "".join(rows) + "</table></body></html>"


def raw_event(number: str, start: str, end: str, name: str = "Spring Trial", club: str = "Agility Club") -> dict:
    """One event as returned by the search endpoint."""
    return {
        "eventNumber": number,
        "eventName": name,
        "clubName": club,
        "startDate": start,
        "endDate": end,
    }


async def no_sleep(_: float) -> None:
    """Sleeper that returns immediately."""
    return None


@pytest.fixture
def site() -> SiteConfig:
    """Site configuration pointing at the test domain."""
    return SiteConfig(
        domain=DOMAIN,
        search_url=f"{DOMAIN}/api/search/events",
        event_path="/events?event_number={event_number}",
    )


@pytest.fixture
def temp_dir():
    """Create a temporary directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def store(temp_dir: Path):
    """A connected store backed by a temporary SQLite file."""
    db = Store(temp_dir / "test.db").connect()
    yield db
    db.dispose()
