"""Tool call dispatcher.

This module handles batch execution of model-emitted tool calls:
- Deduplication of repeated call ids (last occurrence wins)
- Planning: local resolution first, then the remote ToolSet
- Sequential execution of non-concurrent calls, in request order
- Parallel execution of concurrency-safe calls as asyncio tasks
- Ordered result reconstruction and the all-empty short circuit

Per-call failures are captured into that call's ToolResult. Only batch-level
failures propagate to the caller.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from ..core.config import RuntimeConfig
from ..core.errors import (
    BatchError,
    BatchExecutionError,
    LoopDetectedError,
    ResultOrderingError,
    ToolCallError,
    ToolNotFoundError,
)
from ..core.logging_system import BatchLogger
from ..core.timing_logger import (
    clear_timing_context,
    clear_timing_events,
    ensure_timing_file_configured,
    get_timing_events,
    set_timing_context,
    timed,
    timing_mark,
    timing_scope,
)
from ..core.utils import to_json_value
from .declarations import FunctionStore
from .local_executor import eval_local_call
from .resolver import Agent, ToolCallConfig
from .tool_registry import ToolSet
from .types import ToolCall, ToolResult

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class _PlannedCall:
    """One surviving call, bound to how it will be executed."""
    index: int
    call: ToolCall
    display_name: str
    concurrent: bool
    run: Callable[[], Awaitable[Any]]


async def _raise_call_error(error: ToolCallError) -> Any:
    raise error


async def _discard_tasks(tasks: list[asyncio.Task[ToolResult]]) -> None:
    """Cancel unfinished tasks and collect every outcome so none is left detached."""
    for task in tasks:
        if not task.done():
            task.cancel()
    if tasks:
        await asyncio.gather(*tasks, return_exceptions=True)


class ToolDispatcher:
    """Executes batches of tool calls against local and remote tools.

    The log and timing events of the most recent batch stay available as
    ``last_batch_events`` / ``last_timing_events``; the shared per-batch
    buffers are freed when the batch ends.
    """

    @timed
    def __init__(
        self,
        config: RuntimeConfig,
        functions: FunctionStore,
        agent: Optional[Agent] = None,
        toolset: Optional[ToolSet] = None,
    ) -> None:
        self.config = config
        self.functions = functions
        self.agent = agent
        self.toolset = toolset
        self.logger = BatchLogger.get_logger()
        self.last_batch_events: list[dict[str, Any]] = []
        self.last_timing_events: list[dict[str, Any]] = []
        BatchLogger.set_max_lines(config.BATCH_LOG_MAX_LINES)

    @timed
    def _plan(self, index: int, call: ToolCall) -> _PlannedCall:
        """Bind ``call`` to a local spec, else a remote tool, else a not-found error."""
        try:
            spec = ToolCallConfig.extract(call.name, self.functions, self.agent)
        except ToolNotFoundError as exc:
            tool = self.toolset.get(call.name) if self.toolset is not None else None
            if tool is None:
                return _PlannedCall(index, call, call.name, concurrent=False, run=functools.partial(_raise_call_error, exc))
            return _PlannedCall(
                index,
                call,
                tool.name,
                concurrent=tool.concurrent,
                run=lambda: tool.call(call.arguments),
            )
        return _PlannedCall(
            index,
            call,
            spec.name,
            concurrent=spec.concurrent,
            run=lambda: eval_local_call(call, spec, self.config),
        )

    @timed
    async def _run_planned(self, planned: _PlannedCall) -> ToolResult:
        """Run one planned call; per-call errors become its result."""
        timing_mark(f"tool_start:{planned.display_name}")
        try:
            value = await planned.run()
        except ToolCallError as exc:
            LOGGER.warning("Tool call failed: %s: %s", planned.display_name, exc)
            return ToolResult.from_eval(planned.call, error=exc)
        finally:
            timing_mark(f"tool_end:{planned.display_name}")
        return ToolResult.from_eval(planned.call, to_json_value(value))

    @timed
    async def eval_tool_calls(self, calls: list[ToolCall]) -> list[ToolResult]:
        """Execute a batch and return one result per surviving call, in order.

        Returns an empty list when the batch is empty or every output is empty.

        Raises:
            LoopDetectedError: deduplication removed every call.
            BatchExecutionError: a concurrent task ended abnormally.
            ResultOrderingError: a position was left without a result.
        """
        if not calls:
            return []

        with BatchLogger.batch_scope(level=self.config.log_level_value()) as batch_id:
            if self.config.ENABLE_TIMING_LOG:
                ensure_timing_file_configured(self.config.TIMING_LOG_FILE)
            set_timing_context(batch_id, self.config.ENABLE_TIMING_LOG)
            try:
                with timing_scope("eval_tool_calls"):
                    return await self._eval_batch(calls)
            except BatchError as exc:
                LOGGER.error("Tool call batch aborted: %s", exc)
                raise
            finally:
                clear_timing_context()
                self._release_batch(batch_id)

    def _release_batch(self, batch_id: str) -> None:
        self.last_batch_events = BatchLogger.get_events(batch_id)
        self.last_timing_events = get_timing_events(batch_id)
        BatchLogger.cleanup(batch_id)
        clear_timing_events(batch_id)

    async def _eval_batch(self, calls: list[ToolCall]) -> list[ToolResult]:
        deduped = ToolCall.dedup(calls)
        if not deduped:
            raise LoopDetectedError()
        if len(deduped) != len(calls):
            LOGGER.debug("Dropped %d duplicate tool call(s)", len(calls) - len(deduped))

        slots: list[Optional[ToolResult]] = [None] * len(deduped)
        tasks: list[tuple[int, asyncio.Task[ToolResult]]] = []

        try:
            for index, call in enumerate(deduped):
                planned = self._plan(index, call)
                if planned.concurrent:
                    tasks.append((index, asyncio.create_task(self._run_planned(planned))))
                else:
                    slots[index] = await self._run_planned(planned)
        except BaseException:
            await _discard_tasks([task for _, task in tasks])
            raise

        if tasks:
            outcomes = await asyncio.gather(*(task for _, task in tasks), return_exceptions=True)
            for (index, _), outcome in zip(tasks, outcomes):
                if isinstance(outcome, BaseException):
                    raise BatchExecutionError(outcome) from outcome
                slots[index] = outcome

        results: list[ToolResult] = []
        for index, result in enumerate(slots):
            if result is None:
                raise ResultOrderingError(index)
            results.append(result)

        LOGGER.debug("Completed %d tool call(s)", len(results))
        if all(result.is_empty() for result in results):
            return []
        return results


@timed
async def eval_tool_calls(
    calls: list[ToolCall],
    *,
    config: RuntimeConfig,
    functions: FunctionStore,
    agent: Optional[Agent] = None,
    toolset: Optional[ToolSet] = None,
) -> list[ToolResult]:
    """Convenience wrapper: dispatch one batch with a throwaway ToolDispatcher."""
    dispatcher = ToolDispatcher(config, functions, agent=agent, toolset=toolset)
    return await dispatcher.eval_tool_calls(calls)
