"""Per-day time history for a user over a date range (admin only)."""

from fieldtrack.services.time_accounting import get_time_accounting_service
from fieldtrack.utils.http import get_auth, get_query, handle, parse_day, require


async def get_history(request: dict):
    auth = get_auth(request)
    query = get_query(request)
    user_id = require(query, "userId")
    return await get_time_accounting_service().get_history(
        auth,
        user_id,
        start_day=parse_day(query.get("startDate"), "startDate"),
        end_day=parse_day(query.get("endDate"), "endDate"),
    )


def handler(request):
    return handle(request, get_history)
