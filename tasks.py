"""Per-user task lists."""

import threading

import state
import telemetry
from config import TASK_LIST_LIMIT
from store import open_store

PRIORITIES = ("low", "medium", "high")
_EDITABLE = ("completed", "hasBlocker", "text", "description", "priority")


class TaskNotFound(LookupError):
    pass


class TaskStore:
    """CRUD over one list of task dicts per user id."""

    def __init__(self, store=None):
        self.store = store if store is not None else open_store("tasks")
        # Read-modify-write on a user's list must not interleave.
        self._lock = threading.Lock()

    def list_tasks(self, user_id):
        return self.store.get(user_id, [])

    def get_task(self, user_id, task_id):
        return self._find(self.list_tasks(user_id), task_id)

    def create_task(self, user_id, text, description=None, priority=None):
        text = (text or "").strip()
        if not text:
            raise ValueError("task text cannot be empty")
        priority = priority or "medium"
        if priority not in PRIORITIES:
            raise ValueError(f"priority must be one of {', '.join(PRIORITIES)}")

        with self._lock:
            tasks = self.list_tasks(user_id)
            if len(tasks) >= TASK_LIST_LIMIT:
                raise ValueError(f"task list is full ({TASK_LIST_LIMIT})")
            task = {
                "id": self._next_id(tasks),
                "userId": user_id,
                "text": text,
                "title": text,
                "description": description,
                "priority": priority,
                "completed": False,
                "hasBlocker": False,
                "createdAt": state.now_iso(),
            }
            tasks.append(task)
            self.store.put(user_id, tasks)

        state.log("task_created", f"{user_id}: {task['id']}")
        telemetry.trace("task_created", input={"userId": user_id, "title": text},
                        output={"taskId": task["id"]})
        return task

    def update_task(self, user_id, task_id, **fields):
        """Apply the editable fields that were given (None means unchanged)."""
        if "title" in fields and fields.get("text") is None:
            fields["text"] = fields.pop("title")
        fields.pop("title", None)
        unknown = set(fields) - set(_EDITABLE)
        if unknown:
            raise ValueError(f"cannot update: {', '.join(sorted(unknown))}")
        if fields.get("priority") is not None and fields["priority"] not in PRIORITIES:
            raise ValueError(f"priority must be one of {', '.join(PRIORITIES)}")

        with self._lock:
            tasks = self._user_tasks(user_id)
            task = self._find(tasks, task_id)
            for key, value in fields.items():
                if value is None:
                    continue
                if key in ("completed", "hasBlocker"):
                    value = bool(value)
                elif key == "text":
                    value = value.strip()
                    if not value:
                        continue
                    task["title"] = value
                task[key] = value
            task["updatedAt"] = state.now_iso()
            self.store.put(user_id, tasks)
        return task

    def delete_task(self, user_id, task_id):
        with self._lock:
            tasks = self._user_tasks(user_id)
            task = self._find(tasks, task_id)
            tasks.remove(task)
            self.store.put(user_id, tasks)
        state.log("task_deleted", f"{user_id}: {task_id}")
        return task

    def _user_tasks(self, user_id):
        tasks = self.store.get(user_id)
        if tasks is None:
            raise TaskNotFound(f"No tasks for user: {user_id}")
        return tasks

    @staticmethod
    def _find(tasks, task_id):
        for t in tasks:
            if t["id"] == str(task_id):
                return t
        raise TaskNotFound(f"Task not found: {task_id}")

    @staticmethod
    def _next_id(tasks):
        """Millisecond timestamp, bumped past any id already in the list."""
        taken = {t["id"] for t in tasks}
        candidate = state.now_ms()
        while str(candidate) in taken:
            candidate += 1
        return str(candidate)
