"""Task workflow actions: accept, reject, end, delete."""

from fieldtrack.services.task_state_machine import get_task_state_machine
from fieldtrack.utils.errors import InvalidInputError
from fieldtrack.utils.http import get_auth, handle, parse_body, require


async def run_action(request: dict):
    auth = get_auth(request)
    body = parse_body(request)
    action = require(body, "action")
    task_id = require(body, "task_id")
    machine = get_task_state_machine()

    if action == "accept":
        return await machine.accept(task_id, auth.user_id)
    if action == "reject":
        await machine.reject(task_id, auth.user_id)
        return {"task_id": task_id, "removed": True}
    if action == "end":
        return await machine.end_task(task_id, auth.user_id)
    if action == "delete":
        await machine.admin_delete(task_id, auth)
        return {"task_id": task_id, "removed": True}
    raise InvalidInputError(f"Unknown action: {action}")


def handler(request):
    """Run a workflow action against a task."""
    return handle(request, run_action)
