"""Run a suggestion request: prompt -> completion -> parse -> validate."""

from __future__ import annotations

from typing import Any, Dict, List

from flowtasks.errors import ServiceError
from flowtasks.util.console import obs_log

from .contract import parse_suggestion_text
from .interface import CompletionService, ParseError, SuggestionPayload
from .prompts import ops_schema_instruction, rebalance_today_prompt, refine_task_prompt

JsonDict = Dict[str, Any]


def run_ops(service: CompletionService, system: str, user: str, context: JsonDict) -> SuggestionPayload:
    """Call the service and return a validated payload.

    Raises ServiceError when the call fails or the response is unusable;
    nothing is mutated here.
    """
    try:
        text = service.complete(system, user, context)
    except ServiceError:
        raise
    except Exception as e:
        raise ServiceError(str(e) or type(e).__name__) from e

    parsed = parse_suggestion_text(text)
    if isinstance(parsed, ParseError):
        obs_log("ai.engine", "warn", f"rejected payload: {parsed.reason}")
        if parsed.kind == "no_json":
            raise ServiceError("AI did not return valid JSON")
        raise ServiceError(f"AI payload invalid: {parsed.reason}")
    return parsed


def run_refine_task(service: CompletionService, task: JsonDict, context: JsonDict) -> SuggestionPayload:
    return run_ops(service, ops_schema_instruction(), refine_task_prompt(task), context)


def run_rebalance_today(
    service: CompletionService,
    today_iso: str,
    tasks: List[JsonDict],
    context: JsonDict,
) -> SuggestionPayload:
    return run_ops(service, ops_schema_instruction(), rebalance_today_prompt(today_iso, tasks), context)
