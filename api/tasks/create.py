"""Task creation endpoint for dispatchers (admin only)."""

from fieldtrack.models.task import TaskCreate
from fieldtrack.services.task_state_machine import get_task_state_machine
from fieldtrack.utils.errors import AuthorizationError
from fieldtrack.utils.http import get_auth, handle, parse_body


async def create_task(request: dict):
    auth = get_auth(request)
    if not auth.is_admin:
        raise AuthorizationError("Administrator privileges required to create tasks")
    payload = TaskCreate.model_validate(parse_body(request))
    return await get_task_state_machine().create_task(payload, created_by=auth.user_id)


def handler(request):
    """Create a task in waiting_for_acceptance."""
    return handle(request, create_task, status_code=201)
