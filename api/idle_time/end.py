"""End the caller's active time-accounting session."""

from fieldtrack.services.time_accounting import get_time_accounting_service
from fieldtrack.utils.http import get_auth, handle


async def end_session(request: dict):
    auth = get_auth(request)
    return await get_time_accounting_service().end_session(auth.user_id)


def handler(request):
    return handle(request, end_session)
