"""Report whether the caller is inside a task radius."""

from fieldtrack.services.time_accounting import get_time_accounting_service
from fieldtrack.utils.errors import InvalidInputError
from fieldtrack.utils.http import get_auth, handle, parse_body


async def update_radius(request: dict):
    auth = get_auth(request)
    body = parse_body(request)
    inside = body.get("isInTaskRadius")
    if not isinstance(inside, bool):
        raise InvalidInputError("isInTaskRadius must be a boolean")
    task_id = body.get("taskId") or None
    return await get_time_accounting_service().update_radius_state(auth.user_id, inside, task_id)


def handler(request):
    return handle(request, update_radius)
