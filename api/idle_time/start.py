"""Start or resume today's time-accounting session."""

from fieldtrack.services.time_accounting import get_time_accounting_service
from fieldtrack.utils.http import get_auth, handle


async def start_session(request: dict):
    auth = get_auth(request)
    return await get_time_accounting_service().start_session(auth.user_id)


def handler(request):
    return handle(request, start_session)
