"""Outreach task commands for club-data CLI."""

from cyclopts import App

task_app = App(name="task", help="Manage outreach tasks and assignments")


@task_app.command
def create(location_id: str, title: str, *target_ids: str) -> None:
    """Create a task at a location for the given target users."""
    from club_data.cli import current_user_id, get_outreach

    task = get_outreach().create_task(location_id, current_user_id(), title, list(target_ids))
    print(f"Created task {task.task_id}: {task.title} ({len(set(target_ids))} target(s))")


@task_app.command
def show(task_id: str) -> None:
    """Show a task with its targets and assignments."""
    from club_data.cli import get_outreach

    outreach = get_outreach()
    task = outreach.get_task(task_id)
    if task is None:
        print(f"Task {task_id} not found")
        return

    assignments = {a.target_user_id: a for a in outreach.list_assignments(task_id)}
    print(f"Task: {task.task_id}")
    print(f"Title: {task.title}")
    print(f"Location: {task.location_id}")
    print(f"Status: {task.status.value}")
    print("\nTargets:")
    for target in outreach.list_targets(task_id):
        assignment = assignments.get(target.target_user_id)
        if assignment is None:
            print(f"  ○ {target.target_user_id}: unassigned")
        else:
            print(f"  ● {target.target_user_id}: {assignment.status.value} by {assignment.assignee_user_id}")


@task_app.command(name="list")
def list_tasks(location_id: str) -> None:
    """List the tasks of a location."""
    from club_data.cli import get_outreach

    tasks = get_outreach().tasks_for_location(location_id)
    print(f"Found {len(tasks)} task(s):\n")
    for task in tasks:
        print(f"{task.task_id}: {task.title} [{task.status.value}]")


@task_app.command
def assign(task_id: str, count: int = 1) -> None:
    """Claim unassigned targets of a task for yourself."""
    from club_data.cli import get_service, print_failure

    result = get_service().self_assign(task_id, count)
    if not result.success:
        print_failure(result)
        return
    data = result.data or {}
    print(f"Assigned {len(data['assigned'])} target(s)")
    for assignment in data["assigned"]:
        print(f"  {assignment['targetUserId']}")
    if data["shortfall"]:
        print(f"{data['shortfall']} fewer than requested: not enough unassigned targets")


@task_app.command
def mine(task_id: str | None = None, all_: bool = False) -> None:
    """List your assignments.

    Args:
        task_id: Only list assignments of this task
        all_: Also list skipped and completed assignments
    """
    from club_data.cli import get_service, print_failure

    result = get_service().my_assigned(task_id=task_id, include_closed=all_)
    if not result.success:
        print_failure(result)
        return
    entries = result.data or []
    print(f"Found {len(entries)} assignment(s):\n")
    for entry in entries:
        title = entry.get("taskTitle") or entry["taskId"]
        print(f"{entry['taskId']}/{entry['targetUserId']}: {title} [{entry['status']}]")


@task_app.command
def skip(task_id: str, target_id: str) -> None:
    """Skip one of your targets."""
    from club_data.cli import get_service, print_failure

    result = get_service().skip(task_id, target_id)
    if not result.success:
        print_failure(result)
        return
    print(f"Skipped {target_id}")


@task_app.command
def release(task_id: str, target_id: str) -> None:
    """Give one of your targets back to the pool."""
    from club_data.cli import get_service, print_failure

    result = get_service().release(task_id, target_id)
    if not result.success:
        print_failure(result)
        return
    print(f"Released {target_id}")


@task_app.command
def interact(
    task_id: str,
    target_id: str,
    called: bool = False,
    messaged: bool = False,
    notes: str | None = None,
    rating: int | None = None,
    follow_up: str | None = None,
) -> None:
    """Record contact with one of your targets.

    Args:
        task_id: Task of the assignment
        target_id: Contacted target
        called: The target was called
        messaged: The target was messaged
        notes: Free-form notes; completes the assignment
        rating: Rating from 1 to 5; completes the assignment
        follow_up: When to follow up (ISO timestamp)
    """
    from club_data.cli import get_service, print_failure

    result = get_service().save_interaction(
        task_id,
        target_id,
        called=called,
        messaged=messaged,
        notes=notes,
        rating=rating,
        follow_up_at=follow_up,
    )
    if not result.success:
        print_failure(result)
        return
    completed = rating is not None or bool(notes and notes.strip())
    print(f"Recorded interaction with {target_id}" + (" (completed)" if completed else ""))
