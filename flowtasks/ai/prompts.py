"""Prompt text for the completion service."""

from __future__ import annotations

import json
from typing import Any, Dict, List


def ops_schema_instruction() -> str:
    return """
Return ONLY valid JSON with this exact shape:
{
  "summary": "one short sentence",
  "ops": [
    {
      "op": "add" | "update" | "complete" | "undo_complete" | "delete",
      "id": "existing-id-or-temp-id",
      "fields": { ... },      // add/update only
      "reason": "short reason"
    }
  ]
}

Rules:
- Prefer small, high-quality changes.
- For "add": fields must include at least { "title": "...", "type": "task|meeting|event" }.
- For "update": include ONLY changed fields.
- Dates must be YYYY-MM-DD or null.
- priority if provided must be 1-4.
- You may include fields like: pillar, owner_id, notes, start_date, due_date, priority, estimated_minutes, energy, subtasks[].
- subtasks: array of short strings.
"""


def refine_task_prompt(task: Dict[str, Any]) -> str:
    return f"""
Refine this task so it is clearer and more actionable. If it looks like multiple tasks, you may propose multiple adds.
Task:
{json.dumps(task, indent=2, ensure_ascii=False)}

Goals:
- Clean title (short + specific)
- Infer missing fields if safe (pillar/owner/priority/dates)
- Suggest subtasks if helpful
- Keep user intent (do not invent unrelated work)

Return ops JSON only.
"""


def rebalance_today_prompt(today_iso: str, tasks: List[Dict[str, Any]], *, max_tasks: int = 120) -> str:
    head = f"""
Suggest a better "Today" plan. You may:
- Move some tasks to today (update start_date/due_date to {today_iso})
- Defer low-priority items (push by 1-3 days)
- Leave critical items for today
Be conservative and propose small changes.

Return ops JSON only.
"""
    snapshot = json.dumps(tasks[:max_tasks], indent=2, ensure_ascii=False)
    return f"{head}\n\nTasks snapshot:\n{snapshot}"


def user_message(user: str, context: Dict[str, Any]) -> str:
    """Single user turn carrying the context bundle and the request."""
    ctx = json.dumps(context, ensure_ascii=False)
    return f"CONTEXT:\n{ctx}\n\nREQUEST:\n{user}"
