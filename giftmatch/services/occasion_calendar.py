"""Date-driven detection of upcoming gift-giving occasions."""

import calendar
from datetime import date, timedelta
from typing import Callable, Optional

from giftmatch.constants import (
    CURRENT_OCCASION_WINDOW_DAYS,
    OCCASION_EXACT_BOOST,
    OCCASION_FAR_CONFIDENCE,
    OCCASION_FULL_CONFIDENCE_DAYS,
    OCCASION_NEAR_CONFIDENCE,
    OCCASION_NEAR_CONFIDENCE_DAYS,
    OCCASION_RELATED_BOOST,
    UPCOMING_OCCASIONS_WINDOW_DAYS,
)
from giftmatch.models.domain import DetectedOccasion

RELATED_OCCASIONS: dict[str, tuple[str, ...]] = {
    "christmas": ("christmas_eve", "new_year", "new_year_eve"),
    "valentine": ("anniversary",),
    "mother_day": ("birthday",),
    "father_day": ("birthday",),
}
"""Occasion facets that also earn a (smaller) boost while the key occasion is current."""


def easter_sunday(year: int) -> date:
    """Gregorian Easter (anonymous Gregorian algorithm)."""
    a = year % 19
    b, c = divmod(year, 100)
    d, e = divmod(b, 4)
    f = (b + 8) // 25
    g = (b - f + 1) // 3
    h = (19 * a + b - d - g + 15) % 30
    i, k = divmod(c, 4)
    j = (32 + 2 * e + 2 * i - h - k) % 7
    m = (a + 11 * h + 22 * j) // 451
    month, day = divmod(h + j - 7 * m + 114, 31)
    return date(year, month, day + 1)


def nth_weekday(year: int, month: int, weekday: int, n: int) -> date:
    """The n-th given weekday (Monday=0) of a month."""
    first = date(year, month, 1)
    offset = (weekday - first.weekday()) % 7
    return first + timedelta(days=offset + 7 * (n - 1))


def occasions_for_year(year: int) -> list[tuple[date, str, str]]:
    """(date, occasion, display name) for every tracked occasion of a year."""
    return [
        (date(year, 1, 1), "new_year", "New Year's Day"),
        (date(year, 2, 14), "valentine", "Valentine's Day"),
        (date(year, 3, 17), "st_patrick", "St. Patrick's Day"),
        (easter_sunday(year), "easter", "Easter"),
        (nth_weekday(year, 5, calendar.SUNDAY, 2), "mother_day", "Mother's Day"),
        (nth_weekday(year, 6, calendar.SUNDAY, 3), "father_day", "Father's Day"),
        (date(year, 7, 4), "independence_day", "Independence Day (US)"),
        (date(year, 10, 31), "halloween", "Halloween"),
        (nth_weekday(year, 11, calendar.THURSDAY, 4), "thanksgiving", "Thanksgiving"),
        (date(year, 12, 24), "christmas_eve", "Christmas Eve"),
        (date(year, 12, 25), "christmas", "Christmas"),
        (date(year, 12, 31), "new_year_eve", "New Year's Eve"),
    ]


def confidence_for(days_until: int) -> float:
    if days_until <= OCCASION_FULL_CONFIDENCE_DAYS:
        return 1.0
    if days_until <= OCCASION_NEAR_CONFIDENCE_DAYS:
        return OCCASION_NEAR_CONFIDENCE
    return OCCASION_FAR_CONFIDENCE


def occasion_boost(
    product_occasion: str,
    current: Optional[DetectedOccasion],
    exact_weight: float = OCCASION_EXACT_BOOST,
    related_weight: float = OCCASION_RELATED_BOOST,
) -> float:
    """Boost for one product occasion facet given the current occasion."""
    if current is None:
        return 0.0
    if product_occasion == current.occasion:
        return exact_weight * current.confidence
    if product_occasion in RELATED_OCCASIONS.get(current.occasion, ()):
        return related_weight * current.confidence
    return 0.0


def current_season(day: date) -> str:
    if 3 <= day.month <= 5:
        return "spring"
    if 6 <= day.month <= 8:
        return "summer"
    if 9 <= day.month <= 11:
        return "fall"
    return "winter"


def occasion_message(occasion: Optional[DetectedOccasion]) -> Optional[str]:
    if occasion is None:
        return None
    name, days = occasion.display_name, occasion.days_until
    if days == 0:
        return f"Today is {name}!"
    if days == 1:
        return f"{name} is tomorrow!"
    if days <= OCCASION_FULL_CONFIDENCE_DAYS:
        return f"{name} is in {days} days"
    if days <= OCCASION_NEAR_CONFIDENCE_DAYS:
        return f"{name} is coming up in {days} days"
    return None


class OccasionCalendar:
    """Occasion source driven by an injectable clock."""

    def __init__(self, today: Callable[[], date] = date.today):
        self.today = today

    def upcoming_occasions(self, days_ahead: int = UPCOMING_OCCASIONS_WINDOW_DAYS) -> list[DetectedOccasion]:
        """Occasions within ``days_ahead`` days, closest first.

        An occasion already past this year is checked against next year's date.
        """
        today = self.today()
        this_year = {occ: (d, name) for d, occ, name in occasions_for_year(today.year)}
        next_year = {occ: (d, name) for d, occ, name in occasions_for_year(today.year + 1)}

        found = []
        for occ, (when, name) in this_year.items():
            if when < today:
                when, name = next_year[occ]
            days = (when - today).days
            if days <= days_ahead:
                found.append(
                    DetectedOccasion(
                        occasion=occ,
                        confidence=confidence_for(days),
                        days_until=days,
                        display_name=name,
                    )
                )
        found.sort(key=lambda o: o.days_until)
        return found

    def current_occasion(self) -> Optional[DetectedOccasion]:
        """The closest occasion within the current-occasion window, if any."""
        upcoming = self.upcoming_occasions(CURRENT_OCCASION_WINDOW_DAYS)
        return upcoming[0] if upcoming else None

    def season(self) -> str:
        return current_season(self.today())
