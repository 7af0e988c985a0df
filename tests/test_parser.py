"""Tests for the page parser."""

import pytest
from bs4 import BeautifulSoup

from conftest import DOMAIN, event_page, placement_page, placement_row, trial_row
from trial_harvest.errors import ParseError
from trial_harvest.ingestion.parser import (
    extract_class_info,
    extract_dog_info,
    extract_entries_info,
    extract_judge_info,
    extract_placement,
    extract_points_info,
    find_candidate_rows,
    find_placement_rows,
    is_trial_row,
    parse_html,
    parse_place,
    parse_run_name,
)


def _cell(html: str):
    """Parse a single table cell."""
    soup = BeautifulSoup(f"<table><tr>{html}</tr></table>", "lxml")
    return soup.find("td")


class TestParseHtml:
    """Tests for parse_html."""

    def test_parses_document(self) -> None:
        soup = parse_html("<html><body><p>hi</p></body></html>")
        assert soup.find("p").get_text() == "hi"

    def test_empty_document(self) -> None:
        with pytest.raises(ParseError):
            parse_html("")
        with pytest.raises(ParseError):
            parse_html("   \n ")


class TestParseRunName:
    """Tests for run name parsing."""

    def test_standard_class(self) -> None:
        info = parse_run_name('Ag Novice A (16")')
        assert info is not None
        assert info.class_name == "Standard"
        assert info.division == "Novice A"
        assert info.height == 16

    @pytest.mark.parametrize("class_name", ["FAST", "JWW", "Colors"])
    def test_named_class(self, class_name: str) -> None:
        info = parse_run_name(f'Ag {class_name} Master (20")')
        assert info is not None
        assert info.class_name == class_name
        assert info.division == "Master"
        assert info.height == 20

    def test_time_to_beat(self) -> None:
        info = parse_run_name('Time 2 Beat Preferred (12")')
        assert info is not None
        assert info.class_name == "T2B"
        assert info.division == "Preferred"
        assert info.height == 12

    def test_extra_whitespace(self) -> None:
        info = parse_run_name('  Ag   JWW   Excellent B   (24")  ')
        assert info is not None
        assert info.division == "Excellent B"
        assert info.height == 24

    @pytest.mark.parametrize("run_name", ["Obedience Novice (16\")", "Ag Master", ""])
    def test_unknown_run_name(self, run_name: str) -> None:
        assert parse_run_name(run_name) is None


class TestEventPage:
    """Tests for event detail page extraction."""

    def test_trial_rows_are_filtered(self) -> None:
        soup = parse_html(
            event_page(
                trial_row('Ag Novice A (16")', "/apps/results?class=1"),
                "<tr><td>a</td><td>b</td><td>c</td><td>d</td></tr>",
                "<tr><td>a</td><td colspan=\"4\">b</td><td>c</td></tr>",
            )
        )
        rows = find_candidate_rows(soup)

        assert len(rows) == 4
        assert [is_trial_row(r) for r in rows] == [False, True, False, False]

    def test_extract_class_info(self) -> None:
        cell = _cell(
            "<td colspan=\"4\"><a class=\"white\" "
            "href=\"javascript:openWin('/apps/results?class=42')\">Ag JWW Master (20\")</a></td>"
        )
        info = extract_class_info(cell, DOMAIN)

        assert info is not None
        assert info.run_name == 'Ag JWW Master (20")'
        assert info.class_name == "JWW"
        assert info.class_href == f"{DOMAIN}/apps/results?class=42"

    def test_class_without_open_win_link(self) -> None:
        cell = _cell("<td><a class=\"white\" href=\"/plain\">Ag JWW Master (20\")</a></td>")
        assert extract_class_info(cell, DOMAIN) is None

    def test_class_without_link(self) -> None:
        assert extract_class_info(_cell("<td>Ag JWW Master (20\")</td>"), DOMAIN) is None

    def test_extract_judge_info(self) -> None:
        cell = _cell("<td><a class=\"white\" href=\"/apps/judges/?judge_id=77\"> Jane   Judge </a></td>")
        info = extract_judge_info(cell, DOMAIN)

        assert info is not None
        assert info.judge_name == "Jane Judge"
        assert info.judge_href == f"{DOMAIN}/apps/judges/?judge_id=77"

    def test_entries_only(self) -> None:
        info = extract_entries_info(_cell("<td>(2 ent)</td>"))
        assert info is not None
        assert info.num_entries == 2
        assert info.standard_completion_time is None
        assert info.num_yards is None

    def test_entries_with_time(self) -> None:
        info = extract_entries_info(_cell("<td>(14 ent) 30 Secs</td>"))
        assert info is not None
        assert info.num_entries == 14
        assert info.standard_completion_time == 30.0
        assert info.num_yards is None

    def test_entries_with_time_and_yards(self) -> None:
        info = extract_entries_info(_cell("<td>(13 ent) 20.5 Secs 100 yds</td>"))
        assert info is not None
        assert info.num_entries == 13
        assert info.standard_completion_time == 20.5
        assert info.num_yards == 100

    def test_entries_unrecognised(self) -> None:
        assert extract_entries_info(_cell("<td>cancelled</td>")) is None
        assert extract_entries_info(_cell("<td></td>")) is None


class TestPlacementPage:
    """Tests for placement page extraction."""

    def test_find_placement_rows(self) -> None:
        soup = parse_html(
            placement_page(
                placement_row("1", "DN111", "MACH Speedy"),
                placement_row("2", "DN222", "Zoom Along"),
                "<tr><td>footer</td></tr>",
            )
        )
        assert len(find_placement_rows(soup)) == 2

    def test_extract_placement(self) -> None:
        soup = parse_html(placement_page(placement_row("1st", "DN111", "MACH Speedy", handler="Pat Handler")))
        record = extract_placement(find_placement_rows(soup)[0])

        assert record is not None
        assert record.place == 1
        assert record.place_text == "1st"
        assert record.registration_number == "DN111"
        assert record.registered_name == "MACH Speedy"
        assert record.dog_breed == "Border Collie"
        assert record.dog_handler == "Pat Handler"
        assert record.points == 100.0
        assert record.time == 32.45

    def test_placement_without_dog_link_is_dropped(self) -> None:
        row_html = (
            "<tr><td></td><td></td><td></td><td align=\"right\"><font>1</font></td>"
            "<td>No link here</td><td>pts 5</td></tr>"
        )
        soup = parse_html(placement_page(row_html))
        assert extract_placement(find_placement_rows(soup)[0]) is None

    def test_short_row_is_dropped(self) -> None:
        soup = parse_html(placement_page("<tr><td align=\"right\"><font>1</font></td></tr>"))
        assert extract_placement(find_placement_rows(soup)[0]) is None

    def test_dog_info_requires_registration_number(self) -> None:
        cell = _cell("<td><a class=\"white\" href=\"/apps/dogs/\">Nameless</a></td>")
        assert extract_dog_info(cell) is None

    def test_dog_info_without_breed(self) -> None:
        cell = _cell("<td><a class=\"white\" href=\"/apps/dogs/?dog_id=DN9\">Solo</a></td>")
        info = extract_dog_info(cell)

        assert info is not None
        assert info.registration_number == "DN9"
        assert info.dog_breed is None
        assert info.dog_handler is None


class TestPoints:
    """Tests for the points cell grammar."""

    def test_points_and_time(self) -> None:
        info = extract_points_info("pts 100 Time 32.45")
        assert info.points == 100.0
        assert info.time == 32.45

    def test_points_only(self) -> None:
        info = extract_points_info("pts 7")
        assert info.points == 7.0
        assert info.time is None

    def test_time_only(self) -> None:
        info = extract_points_info("Time 41.02")
        assert info.points is None
        assert info.time == 41.02

    @pytest.mark.parametrize("text", ["", "NQ", "pts", "Time --"])
    def test_missing_tokens_never_raise(self, text: str) -> None:
        info = extract_points_info(text)
        assert info.points is None
        assert info.time is None


class TestParsePlace:
    """Tests for place parsing."""

    @pytest.mark.parametrize(
        "text,expected",
        [("1", 1), ("1st", 1), ("2nd Place", 2), (" 4 ", 4), ("", None), ("Q", None)],
    )
    def test_leading_integer(self, text: str, expected: int | None) -> None:
        assert parse_place(text) == expected
