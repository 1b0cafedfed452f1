"""Outreach tasks and the self-assignment engine.

A task owns a set of target users. Volunteers claim targets for themselves;
a claim writes the per-target edge ``TASK#<task> / ASSIGNMENT#<target>`` on the
condition that it does not exist yet, together with the volunteer-side mirror
``USER#<volunteer> / TASKASSIGNMENT#<task>#<target>`` in the same transaction.
The condition makes the write a mutual exclusion per target: across any number
of concurrent callers at most one assignment per target can ever exist, with
no lock held anywhere.

Target lifecycle::

    UNASSIGNED --claim--> ASSIGNED --skip--> SKIPPED
                            |   \\--interaction with rating/notes--> COMPLETED
                            \\--release--> UNASSIGNED
"""

import random
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import structlog

from club_data.entities import build_item, new_id
from club_data.errors import ConflictError, NotFoundError, StorageUnavailableError, ValidationError
from club_data.keys import (
    META,
    SEPARATOR,
    KeyType,
    assignment_sk,
    edge_key,
    interaction_sk,
    location_pk,
    parse_key,
    prefix,
    target_sk,
    task_assignment_sk,
    task_pk,
    user_pk,
)
from club_data.schemas import (
    ActionsTaken,
    AllowedActions,
    Assignment,
    AssignmentStatus,
    Interaction,
    LocationTaskIndex,
    Task,
    TaskAssignmentIndex,
    TaskStatus,
    TaskTarget,
    parse_item,
)
from club_data.storage import TableClient, WriteOp

logger = structlog.get_logger()

DEFAULT_MAX_CANDIDATES = 100
DEFAULT_MAX_ROUNDS = 3
DEFAULT_WORKING_SET_FACTOR = 3


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class SelfAssignResult:
    """Outcome of a self-assignment request.

    ``len(assigned) + shortfall`` always equals the requested count; a
    shortfall is a normal outcome, not an error.
    """

    assigned: list[Assignment] = field(default_factory=list)
    shortfall: int = 0
    conflicts: int = 0


class OutreachStore:
    """Task lifecycle on top of the shared table."""

    def __init__(
        self,
        table: TableClient,
        *,
        max_candidates: int = DEFAULT_MAX_CANDIDATES,
        max_rounds: int = DEFAULT_MAX_ROUNDS,
        working_set_factor: int = DEFAULT_WORKING_SET_FACTOR,
        rng: random.Random | None = None,
    ) -> None:
        """Initialize outreach store.

        Args:
            table: Storage client for the shared table
            max_candidates: Maximum number of claim attempts per self-assign call
            max_rounds: Maximum number of candidate reads per self-assign call
            working_set_factor: Candidates attempted per round, as a multiple of the remaining demand
            rng: Random source used to spread concurrent callers over different candidates
        """
        self.table = table
        self.max_candidates = max_candidates
        self.max_rounds = max_rounds
        self.working_set_factor = working_set_factor
        self.rng = rng or random.Random()

    # Tasks

    def create_task(
        self,
        location_id: str,
        created_by: str,
        title: str,
        target_user_ids: list[str],
        allowed_actions: AllowedActions | None = None,
        task_id: str | None = None,
    ) -> Task:
        """Create a task with its targets.

        The task node and its location index are written atomically; targets
        follow in batches.
        """
        if not title.strip():
            raise ValidationError("Task title is required")
        targets = list(dict.fromkeys(t for t in target_user_ids if t))
        if not targets:
            raise ValidationError("A task needs at least one target user")

        task_id = task_id or new_id()
        now = _now()
        task = Task(
            pk=task_pk(task_id),
            sk=META,
            task_id=task_id,
            location_id=location_id,
            created_by=created_by,
            title=title.strip(),
            allowed_actions=allowed_actions or AllowedActions(),
            created_at=now,
            updated_at=now,
        )
        index = LocationTaskIndex(
            pk=location_pk(location_id),
            sk=edge_key(KeyType.TASK, task_id),
            task_id=task_id,
            location_id=location_id,
            title=task.title,
            created_at=now,
        )
        self.table.transact_write(
            [WriteOp.put(task.to_item(), require_absent=True), WriteOp.put(index.to_item(), require_absent=True)]
        )
        self.table.batch_put(
            [
                TaskTarget(
                    pk=task_pk(task_id), sk=target_sk(t), task_id=task_id, target_user_id=t, added_at=now
                ).to_item()
                for t in targets
            ]
        )
        logger.info("Created task", task_id=task_id, location_id=location_id, targets=len(targets))
        return task

    def get_task(self, task_id: str) -> Task | None:
        raw = self.table.get(task_pk(task_id), META)
        if raw is None:
            return None
        parsed = parse_item(Task, raw)
        if not parsed.ok:
            logger.warning("Stored task is malformed", error=str(parsed.error))
            return None
        return parsed.value

    def _require_task(self, task_id: str) -> Task:
        task = self.get_task(task_id)
        if task is None:
            raise NotFoundError(f"Task {task_id} not found")
        return task

    def _partition(self, task_id: str) -> dict[KeyType, list[dict[str, Any]]]:
        # One read of the whole task partition, grouped by edge type.
        grouped: dict[KeyType, list[dict[str, Any]]] = {}
        for item in self.table.query(task_pk(task_id)):
            if item["SK"] == META:
                continue
            key_type, _ = parse_key(item["SK"])
            grouped.setdefault(key_type, []).append(item)
        return grouped

    def list_targets(self, task_id: str) -> list[TaskTarget]:
        items = self.table.query(task_pk(task_id), sk_prefix=prefix(KeyType.TARGET))
        return _parse_all(TaskTarget, items)

    def list_assignments(self, task_id: str) -> list[Assignment]:
        items = self.table.query(task_pk(task_id), sk_prefix=prefix(KeyType.ASSIGNMENT))
        return _parse_all(Assignment, items)

    def unassigned_target_ids(self, task_id: str) -> list[str]:
        grouped = self._partition(task_id)
        assigned = {item.get("targetUserId") for item in grouped.get(KeyType.ASSIGNMENT, [])}
        targets = [item.get("targetUserId") for item in grouped.get(KeyType.TARGET, [])]
        return [t for t in targets if t and t not in assigned]

    def unassigned_count(self, task_id: str) -> int:
        self._require_task(task_id)
        return len(self.unassigned_target_ids(task_id))

    def my_assignments(
        self, volunteer_id: str, task_id: str | None = None, include_closed: bool = False
    ) -> list[TaskAssignmentIndex]:
        """List a volunteer's assignments, optionally for one task only.

        Args:
            volunteer_id: Volunteer whose assignments are listed
            task_id: Restrict to this task
            include_closed: Also return skipped and completed assignments
        """
        sk_prefix = prefix(KeyType.TASKASSIGNMENT)
        if task_id:
            sk_prefix = edge_key(KeyType.TASKASSIGNMENT, task_id) + SEPARATOR
        entries = _parse_all(TaskAssignmentIndex, self.table.query(user_pk(volunteer_id), sk_prefix=sk_prefix))
        if not include_closed:
            entries = [e for e in entries if e.status == AssignmentStatus.ASSIGNED]
        return entries

    def tasks_for_location(self, location_id: str) -> list[LocationTaskIndex]:
        items = self.table.query(location_pk(location_id), sk_prefix=prefix(KeyType.TASK))
        return _parse_all(LocationTaskIndex, items)

    def tasks_for_user(self, volunteer_id: str) -> list[Task]:
        """Tasks in which the volunteer holds at least one assignment."""
        task_ids = dict.fromkeys(e.task_id for e in self.my_assignments(volunteer_id, include_closed=True))
        return [task for task in (self.get_task(t) for t in task_ids) if task is not None]

    # Self-assignment

    def self_assign(self, task_id: str, volunteer_id: str, requested_count: int) -> SelfAssignResult:
        """Claim up to ``requested_count`` unassigned targets of a task.

        A lost race on a candidate moves on to the next candidate; the same
        candidate is never retried. Candidates are re-read (up to
        ``max_rounds`` times) only after a round that lost races, and the total
        number of claim attempts is bounded by ``max_candidates``.

        Args:
            task_id: Task whose targets are claimed
            volunteer_id: Volunteer claiming the targets
            requested_count: Number of targets wanted

        Returns:
            Claimed assignments and the shortfall against the request

        Raises:
            ValidationError: If requested_count is below 1
            NotFoundError: If the task does not exist
        """
        if isinstance(requested_count, bool) or not isinstance(requested_count, int) or requested_count < 1:
            raise ValidationError(f"Requested count must be a positive integer, got {requested_count!r}")
        task = self._require_task(task_id)

        result = SelfAssignResult()
        attempted: set[str] = set()
        budget = self.max_candidates

        for round_number in range(1, self.max_rounds + 1):
            needed = requested_count - len(result.assigned)
            candidates = [t for t in self.unassigned_target_ids(task_id) if t not in attempted]
            if not candidates:
                break
            self.rng.shuffle(candidates)
            working_set = candidates[: min(needed * self.working_set_factor, budget)]
            logger.debug(
                "Self-assign round",
                task_id=task_id,
                round=round_number,
                needed=needed,
                candidates=len(candidates),
                working_set=len(working_set),
            )

            round_conflicts = 0
            for target_id in working_set:
                if len(result.assigned) >= requested_count:
                    break
                attempted.add(target_id)
                budget -= 1
                try:
                    result.assigned.append(self._claim(task, volunteer_id, target_id))
                except ConflictError:
                    round_conflicts += 1
                    logger.debug("Target already claimed", task_id=task_id, target_user_id=target_id)
            result.conflicts += round_conflicts

            if len(result.assigned) >= requested_count or budget <= 0 or not round_conflicts:
                break

        result.shortfall = requested_count - len(result.assigned)
        if result.assigned:
            self._mark_in_progress(task)
        logger.info(
            "Self-assign finished",
            task_id=task_id,
            volunteer_id=volunteer_id,
            requested=requested_count,
            assigned=len(result.assigned),
            shortfall=result.shortfall,
            conflicts=result.conflicts,
        )
        return result

    def _claim(self, task: Task, volunteer_id: str, target_id: str) -> Assignment:
        now = _now()
        assignment = Assignment(
            pk=task_pk(task.task_id),
            sk=assignment_sk(target_id),
            task_id=task.task_id,
            target_user_id=target_id,
            assignee_user_id=volunteer_id,
            assigned_at=now,
        )
        mirror = TaskAssignmentIndex(
            pk=user_pk(volunteer_id),
            sk=task_assignment_sk(task.task_id, target_id),
            user_id=volunteer_id,
            task_id=task.task_id,
            target_user_id=target_id,
            task_title=task.title,
            location_id=task.location_id,
            assigned_at=now,
        )
        self.table.transact_write(
            [WriteOp.put(assignment.to_item(), require_absent=True), WriteOp.put(mirror.to_item(), require_absent=True)]
        )
        return assignment

    def _mark_in_progress(self, task: Task) -> None:
        if task.status != TaskStatus.OPEN:
            return
        changes = {"status": TaskStatus.IN_PROGRESS.value, "updatedAt": _now()}
        expect = {"status": TaskStatus.OPEN.value}
        index_key = (location_pk(task.location_id), edge_key(KeyType.TASK, task.task_id))
        try:
            self.table.transact_write(
                [
                    WriteOp.update(task.pk, task.sk, changes, expect=expect),
                    WriteOp.update(*index_key, changes, expect=expect),
                ]
            )
        except ConflictError:
            # Another claim already moved the task on.
            logger.debug("Task status already changed", task_id=task.task_id)
        except StorageUnavailableError as e:
            # The claims are committed; the status catches up on the next claim.
            logger.warning("Could not move task in progress", task_id=task.task_id, error=str(e))

    # Assignment follow-up

    def _owned(self, volunteer_id: str, status: AssignmentStatus | None = None) -> dict[str, Any]:
        expect: dict[str, Any] = {"assigneeUserId": volunteer_id}
        if status is not None:
            expect["status"] = status.value
        return expect

    def skip(self, task_id: str, volunteer_id: str, target_user_id: str) -> None:
        """Mark an active assignment as skipped; the target stays claimed.

        Raises:
            NotFoundError: If the volunteer holds no active assignment for the target
        """
        changes = {"status": AssignmentStatus.SKIPPED.value}
        try:
            self.table.transact_write(
                [
                    WriteOp.update(
                        task_pk(task_id),
                        assignment_sk(target_user_id),
                        changes,
                        expect=self._owned(volunteer_id, AssignmentStatus.ASSIGNED),
                    ),
                    WriteOp.update(user_pk(volunteer_id), task_assignment_sk(task_id, target_user_id), changes),
                ]
            )
        except ConflictError as e:
            raise NotFoundError(f"No active assignment of {target_user_id} on task {task_id}") from e
        logger.info("Skipped assignment", task_id=task_id, volunteer_id=volunteer_id, target_user_id=target_user_id)

    def release(self, task_id: str, volunteer_id: str, target_user_id: str) -> None:
        """Give a target back to the pool by deleting both assignment edges.

        Raises:
            NotFoundError: If the volunteer does not hold the target
        """
        try:
            self.table.transact_write(
                [
                    WriteOp.delete(task_pk(task_id), assignment_sk(target_user_id), expect=self._owned(volunteer_id)),
                    WriteOp.delete(user_pk(volunteer_id), task_assignment_sk(task_id, target_user_id)),
                ]
            )
        except ConflictError as e:
            raise NotFoundError(f"No assignment of {target_user_id} on task {task_id} held by {volunteer_id}") from e
        logger.info("Released assignment", task_id=task_id, volunteer_id=volunteer_id, target_user_id=target_user_id)

    def record_interaction(
        self,
        task_id: str,
        volunteer_id: str,
        target_user_id: str,
        called: bool = False,
        messaged: bool = False,
        notes: str | None = None,
        rating: int | None = None,
        follow_up_at: str | None = None,
    ) -> Interaction:
        """Save the outcome of contacting a target.

        The interaction item is overwritten on every save. A rating or notes
        complete the assignment. Only active assignments take interactions;
        skipped and completed ones are closed.

        Raises:
            NotFoundError: If the volunteer holds no active assignment for the target
        """
        notes = notes.strip() if notes else None
        interaction = build_item(
            Interaction,
            pk=task_pk(task_id),
            sk=interaction_sk(target_user_id),
            task_id=task_id,
            target_user_id=target_user_id,
            assignee_user_id=volunteer_id,
            actions_taken=ActionsTaken(called=called, messaged=messaged),
            notes=notes,
            rating=rating,
            follow_up_at=follow_up_at,
            updated_at=_now(),
        )
        forward_key = (task_pk(task_id), assignment_sk(target_user_id))
        active = self._owned(volunteer_id, AssignmentStatus.ASSIGNED)
        ops = [WriteOp.put(interaction.to_item())]
        completes = rating is not None or bool(notes)
        if completes:
            changes = {"status": AssignmentStatus.COMPLETED.value}
            ops.append(WriteOp.update(*forward_key, changes, expect=active))
            ops.append(WriteOp.update(user_pk(volunteer_id), task_assignment_sk(task_id, target_user_id), changes))
        else:
            ops.append(WriteOp.check(*forward_key, expect=active))

        try:
            self.table.transact_write(ops)
        except ConflictError as e:
            raise NotFoundError(
                f"No active assignment of {target_user_id} on task {task_id} held by {volunteer_id}"
            ) from e
        logger.info(
            "Recorded interaction",
            task_id=task_id,
            volunteer_id=volunteer_id,
            target_user_id=target_user_id,
            completed=completes,
        )
        return interaction

    def get_interaction(self, task_id: str, target_user_id: str) -> Interaction | None:
        raw = self.table.get(task_pk(task_id), interaction_sk(target_user_id))
        if raw is None:
            return None
        parsed = parse_item(Interaction, raw)
        return parsed.value if parsed.ok else None


def _parse_all(model: type, items: list[dict[str, Any]]) -> list:
    results = []
    for raw in items:
        parsed = parse_item(model, raw)
        if parsed.ok:
            results.append(parsed.value)
        else:
            logger.warning("Dropping malformed item", error=str(parsed.error))
    return results
