"""API routes for the occasion calendar."""

from fastapi import APIRouter, Depends, Query

from giftmatch.api.dependencies import get_occasion_calendar
from giftmatch.constants import UPCOMING_OCCASIONS_WINDOW_DAYS
from giftmatch.models.schemas import UpcomingOccasionsResponse
from giftmatch.services.occasion_calendar import OccasionCalendar, occasion_message

router = APIRouter()


@router.get("/occasions/upcoming", response_model=UpcomingOccasionsResponse)
def upcoming_occasions(
    days_ahead: int = Query(UPCOMING_OCCASIONS_WINDOW_DAYS, ge=0, le=366),
    calendar: OccasionCalendar = Depends(get_occasion_calendar),
) -> UpcomingOccasionsResponse:
    """List gifting occasions within ``days_ahead`` days, closest first."""
    occasions = calendar.upcoming_occasions(days_ahead)
    return UpcomingOccasionsResponse(
        season=calendar.season(),
        occasions=occasions,
        message=occasion_message(occasions[0] if occasions else None),
    )
