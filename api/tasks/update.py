"""Task partial update endpoint: {status?, timeLimitSet?, completed?}."""

from fieldtrack.models.task import TaskUpdate
from fieldtrack.services.task_state_machine import get_task_state_machine
from fieldtrack.utils.http import get_auth, get_query, handle, parse_body, require


async def update_task(request: dict):
    auth = get_auth(request)
    task_id = require(get_query(request), "task_id")
    update = TaskUpdate.model_validate(parse_body(request))
    return await get_task_state_machine().apply_update(task_id, update, auth.user_id)


def handler(request):
    """
    Apply a partial update to a task.

    Omitted fields are left unchanged; unknown status values are rejected.
    """
    return handle(request, update_task)
