"""Idle/productive stats for the caller and a day (defaults to today)."""

from fieldtrack.services.time_accounting import get_time_accounting_service
from fieldtrack.utils.http import get_auth, get_query, handle, parse_day


async def get_stats(request: dict):
    auth = get_auth(request)
    day = parse_day(get_query(request).get("date"), "date")
    return await get_time_accounting_service().get_stats(auth.user_id, day)


def handler(request):
    return handle(request, get_stats)
