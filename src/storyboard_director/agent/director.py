"""The director loop: a bounded state machine over model rounds and tools.

States::

    START -> AWAIT_MODEL -> RUN_TOOLS -> AWAIT_MODEL ...
                         -> EVALUATE  -> DONE | AWAIT_MODEL | ABORTED

One counter bounds the run: each model round and each evaluation that ends
without a storyboard consumes one unit of the iteration budget. ABORTED is a
normal outcome that yields no prompts; only model-invocation failures raise.
"""

from __future__ import annotations

from collections.abc import Mapping
import dataclasses
import enum
import json
import logging
import time
from typing import Any

from storyboard_director.agent.adapters import ModelAdapter, ToolInvoker
from storyboard_director.agent.prompts import (
    NO_STORYBOARD_NUDGE,
    build_system_prompt,
    build_task_message,
    initial_history,
    refinement_nudge,
)
from storyboard_director.agent.tools import CRITIQUE_TOOLS, STORYBOARD_TOOLS
from storyboard_director.config import FrozenConfig, resolve_config
from storyboard_director.core.types import (
    ImagePrompt,
    Message,
    ModelResponse,
    StoryboardDocument,
    Success,
    ToolCall,
)
from storyboard_director.exceptions import (
    DirectorError,
    InvariantViolationError,
    ModelInvocationError,
)
from storyboard_director.extraction.pipeline import StoryboardPipeline
from storyboard_director.telemetry import TelemetryContext, TelemetryContextProtocol

log = logging.getLogger(__name__)


class DirectorState(enum.StrEnum):
    START = "start"
    AWAIT_MODEL = "await_model"
    RUN_TOOLS = "run_tools"
    EVALUATE = "evaluate"
    DONE = "done"
    ABORTED = "aborted"


@dataclasses.dataclass(frozen=True, slots=True)
class DirectorRun:
    """Outcome of one director run."""

    state: DirectorState
    prompts: tuple[ImagePrompt, ...]
    storyboard: StoryboardDocument | None
    quality_score: float | None
    iterations: int
    transitions: tuple[DirectorState, ...]
    history: tuple[Message, ...]
    tool_failures: tuple[str, ...] = ()
    duration_ms: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.state is DirectorState.DONE

    def threshold_met(self, threshold: float) -> bool:
        return self.succeeded and (
            self.quality_score is None or self.quality_score >= threshold
        )


@dataclasses.dataclass(slots=True)
class _RunState:
    history: list[Message]
    iterations: int = 0
    best: StoryboardDocument | None = None
    score: float | None = None
    last_response: ModelResponse | None = None
    transitions: list[DirectorState] = dataclasses.field(default_factory=list)
    tool_failures: list[str] = dataclasses.field(default_factory=list)


class AgentDirector:
    """Drive the model and tools until a storyboard is good enough.

    Args:
        model: Model adapter invoked once per round.
        tools: Tool invoker; results are appended to history one at a time.
        config: Resolved configuration; resolved from the environment if omitted.
        pipeline: Extraction pipeline shared across runs (and its metrics).
        telemetry: Telemetry context for per-state timing.
    """

    def __init__(
        self,
        model: ModelAdapter,
        tools: ToolInvoker,
        *,
        config: FrozenConfig | None = None,
        pipeline: StoryboardPipeline | None = None,
        telemetry: TelemetryContextProtocol | None = None,
        storyboard_tools: frozenset[str] = STORYBOARD_TOOLS,
        critique_tools: frozenset[str] = CRITIQUE_TOOLS,
    ) -> None:
        self.model = model
        self.tools = tools
        self.config = config or resolve_config()
        self.pipeline = pipeline or StoryboardPipeline.from_config(self.config)
        self.storyboard_tools = storyboard_tools
        self.critique_tools = critique_tools
        self._telemetry = telemetry or TelemetryContext()

    async def generate_prompts(self, content: str, **kwargs: Any) -> list[ImagePrompt]:
        """Run the loop and return only the prompts (empty when aborted)."""
        run = await self.run(content, **kwargs)
        return list(run.prompts)

    async def run(
        self,
        content: str,
        *,
        style: str = "cinematic",
        content_type: str = "lyrics",
        video_purpose: str = "music_video",
        global_subject: str = "",
    ) -> DirectorRun:
        """Execute one bounded director run.

        Raises:
            ModelInvocationError: If the model adapter fails.
            InvariantViolationError: If the adapter returns something that is
                not a ``ModelResponse``.
        """
        start = time.perf_counter()
        budget = self.config.iteration_budget
        threshold = self.config.quality_threshold
        run = _RunState(
            history=initial_history(
                build_system_prompt(video_purpose, threshold),
                build_task_message(
                    content or "",
                    style=style,
                    content_type=content_type,
                    video_purpose=video_purpose,
                    global_subject=global_subject,
                    target_prompt_count=self.config.target_prompt_count,
                ),
            )
        )

        state = DirectorState.START
        while True:
            run.transitions.append(state)
            if state in (DirectorState.DONE, DirectorState.ABORTED):
                break
            with self._telemetry(f"director.{state.value}", iteration=run.iterations):
                if state is DirectorState.START:
                    if not content or not content.strip():
                        log.warning("Director started with empty content")
                        state = DirectorState.ABORTED
                    else:
                        state = DirectorState.AWAIT_MODEL
                elif state is DirectorState.AWAIT_MODEL:
                    state = await self._await_model(run, budget)
                elif state is DirectorState.RUN_TOOLS:
                    await self._run_tools(run, global_subject)
                    state = DirectorState.AWAIT_MODEL
                else:
                    state = await self._evaluate(run, budget, threshold)

        duration_ms = (time.perf_counter() - start) * 1000
        storyboard = run.best if state is DirectorState.DONE else None
        prompts = (
            tuple(ImagePrompt.from_prompt(p, i) for i, p in enumerate(storyboard.prompts))
            if storyboard
            else ()
        )
        log.info(
            "Director finished %s after %d iteration(s): %d prompt(s), score %s",
            state.value,
            run.iterations,
            len(prompts),
            run.score,
        )
        return DirectorRun(
            state=state,
            prompts=prompts,
            storyboard=storyboard,
            quality_score=run.score,
            iterations=run.iterations,
            transitions=tuple(run.transitions),
            history=tuple(run.history),
            tool_failures=tuple(run.tool_failures),
            duration_ms=duration_ms,
        )

    # --- states ---

    async def _await_model(self, run: _RunState, budget: int) -> DirectorState:
        if run.iterations >= budget:
            log.info("Iteration budget of %d exhausted before model round", budget)
            return DirectorState.DONE if run.best else DirectorState.ABORTED

        run.iterations += 1
        try:
            response = await self.model.invoke(tuple(run.history))
        except DirectorError:
            raise
        except Exception as e:
            raise ModelInvocationError(str(e) or type(e).__name__, run.iterations) from e
        if not isinstance(response, ModelResponse):
            raise InvariantViolationError(
                f"model adapter returned {type(response).__name__}, expected ModelResponse",
                stage_name=DirectorState.AWAIT_MODEL.value,
            )

        run.last_response = response
        run.history.append(
            Message(role="assistant", content=response.content, tool_calls=response.tool_calls)
        )
        log.debug(
            "Round %d: %d tool call(s), %d chars of content",
            run.iterations,
            len(response.tool_calls),
            len(response.content),
        )
        return DirectorState.RUN_TOOLS if response.tool_calls else DirectorState.EVALUATE

    async def _run_tools(self, run: _RunState, global_subject: str) -> None:
        calls = run.last_response.tool_calls if run.last_response else ()
        for call in calls:
            args = self._sanitize_args(call)
            if call.name in self.critique_tools and not args.get("global_subject"):
                args["global_subject"] = global_subject
            try:
                result = await self.tools.invoke(call.name, args)
                failed = False
            except Exception as e:
                result = f"{call.name} failed: {e}"
                failed = True
                run.tool_failures.append(result)
                log.warning("Tool %s failed: %s", call.name, e, exc_info=True)
            if not isinstance(result, str):
                result = json.dumps(result, default=str)
            run.history.append(Message(role="tool", content=result, tool_name=call.name))
            if failed:
                continue

            if call.name in self.storyboard_tools:
                outcome = await self.pipeline.process(
                    result, fallback_reason=f"{call.name} output was not a valid storyboard"
                )
                if isinstance(outcome, Success):
                    run.best = outcome.value
                    run.score = None
                    log.info("Storyboard from %s: %d prompt(s)", call.name, len(run.best.prompts))
                else:
                    log.info("No storyboard from %s: %s", call.name, outcome.error)
            elif call.name in self.critique_tools:
                score = _read_score(result)
                if score is not None:
                    run.score = score
                    log.info("Critique score: %g", score)

    async def _evaluate(
        self, run: _RunState, budget: int, threshold: float
    ) -> DirectorState:
        content = run.last_response.content if run.last_response else ""
        if content.strip():
            outcome = await self.pipeline.process(content, allow_fallback=False)
            if isinstance(outcome, Success):
                run.best = outcome.value
                run.score = None
                log.info("Final storyboard taken from model reply")

        if run.best is not None and (run.score is None or run.score >= threshold):
            return DirectorState.DONE

        if run.best is None:
            run.iterations += 1
        if run.iterations >= budget:
            log.info("Iteration budget of %d exhausted during evaluation", budget)
            return DirectorState.DONE if run.best else DirectorState.ABORTED

        nudge = (
            NO_STORYBOARD_NUDGE
            if run.best is None
            else refinement_nudge(run.score or 0.0, threshold)
        )
        run.history.append(Message(role="user", content=nudge))
        return DirectorState.AWAIT_MODEL

    def _sanitize_args(self, call: ToolCall) -> dict[str, Any]:
        list_params = self.tools.list_params(call.name)
        return {
            key: ([] if key in list_params else "") if value is None else value
            for key, value in call.args.items()
        }


def _read_score(result: str) -> float | None:
    try:
        data = json.loads(result)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, Mapping):
        return None
    score = data.get("overallScore")
    if isinstance(score, bool) or not isinstance(score, int | float):
        return None
    return float(score)
