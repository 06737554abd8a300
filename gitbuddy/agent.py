"""Bounded tool-calling loop shared by every agent flavor."""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable

from gitbuddy.compression import HistoryCompressor
from gitbuddy.config import Config, get_config
from gitbuddy.exceptions import ProtocolViolationError, SessionError
from gitbuddy.git import GitExecutor
from gitbuddy.llm import LLMProvider, Message, TokenUsage
from gitbuddy.llm.retry import with_retry
from gitbuddy.llm.summarizer import ProviderSummarizer
from gitbuddy.logging import get_logger
from gitbuddy.message_transforms import (
    Transform,
    compose,
    drop_consecutive_duplicates,
    progress_context,
    repair_orphan_tool_messages,
    truncate_tool_results,
)
from gitbuddy.plan import ExecutionPlan
from gitbuddy.session import Session, SessionStore
from gitbuddy.stream import aggregate_stream
from gitbuddy.tools.registry import FeedbackPrompt, ToolContext, ToolDispatcher, ToolRegistry

log = get_logger(__name__)

ConfirmContinue = Callable[[int, int], Awaitable[bool]]


class LoopState(str, Enum):
    RUNNING = "running"
    AWAITING_STREAM = "awaiting_stream"
    DISPATCHING_TOOLS = "dispatching_tools"
    COMPRESSING = "compressing"
    SUCCESS = "success"
    ERROR = "error"
    CANCELLED = "cancelled"
    ITERATION_EXCEEDED = "iteration_exceeded"


TERMINAL_STATES = frozenset({
    LoopState.SUCCESS,
    LoopState.ERROR,
    LoopState.CANCELLED,
    LoopState.ITERATION_EXCEEDED,
})


@dataclass
class AgentSpec:
    """Everything that makes one agent flavor different from another.

    ``text_fallback`` turns a plain-text answer into a payload when the model
    skips the terminal tool; returning None means the text is unusable.
    """

    kind: str
    system_prompt: str
    user_prompt: str
    registry: ToolRegistry
    terminal_tools: tuple[str, ...]
    work_dir: Path = field(default_factory=Path.cwd)
    git: GitExecutor | None = None
    tool_mandatory: bool = True
    text_fallback: Callable[[str], Any] | None = None
    use_plan: bool = False
    show_progress: bool = False
    compression: bool = True


@dataclass
class AgentResult:
    """Outcome of ``AgentLoop.run``."""

    status: LoopState
    session: Session
    payload: Any = None
    content: str = ""
    usage: TokenUsage = field(default_factory=TokenUsage)
    error: BaseException | None = None

    @property
    def succeeded(self) -> bool:
        return self.status is LoopState.SUCCESS


class AgentLoop:
    """Drive one agent run to a terminal state.

    The loop owns the canonical history, the plan and the session for its
    whole lifetime. Cancellation is observed only at iteration boundaries, so
    an in-flight tool call always completes first.
    """

    def __init__(
        self,
        provider: LLMProvider,
        spec: AgentSpec,
        config: Config | None = None,
        store: SessionStore | None = None,
        compressor: HistoryCompressor | None = None,
        cancel_event: asyncio.Event | None = None,
        interactive: bool = False,
        confirm_continue: ConfirmContinue | None = None,
        ask_user: FeedbackPrompt | None = None,
        content_callback: Callable[[str], None] | None = None,
        status_callback: Callable[[str], None] | None = None,
        tool_output_callback: Callable[[str, str, str], None] | None = None,
        plan_callback: Callable[[ExecutionPlan, list[str]], None] | None = None,
        compression_callback: Callable[[str], None] | None = None,
        retry_callback: Callable[[int], None] | None = None,
    ):
        """Initialize the loop.

        Args:
            provider: Model provider used for every iteration
            spec: Flavor definition (prompts, tools, terminal tools)
            config: Configuration; the global one when omitted
            store: Session store; no persistence when omitted
            compressor: History compressor; a model-backed one by default
            cancel_event: Set to stop at the next iteration boundary
            interactive: Whether the user can be asked questions
            confirm_continue: Asked whether to extend the iteration budget
            ask_user: Callback behind the request_feedback tool
            retry_callback: Told the attempt number when a model call is retried
        """
        self.provider = provider
        self.spec = spec
        self.config = config or get_config()
        self.store = store
        self.compressor = compressor or HistoryCompressor(ProviderSummarizer(provider))
        self.cancel_event = cancel_event or asyncio.Event()
        self.interactive = interactive
        self.confirm_continue = confirm_continue
        self.ask_user = ask_user
        self.content_callback = content_callback
        self.status_callback = status_callback
        self.tool_output_callback = tool_output_callback
        self.plan_callback = plan_callback
        self.compression_callback = compression_callback
        self.retry_callback = retry_callback

        self.dispatcher = ToolDispatcher(spec.registry, spec.terminal_tools)
        self.state = LoopState.RUNNING
        self.plan: ExecutionPlan | None = None
        self._plan_snapshot: ExecutionPlan | None = None

    # ------------------------------------------------------------------
    # callbacks

    def _set_state(self, state: LoopState) -> None:
        self.state = state
        if self.status_callback:
            try:
                self.status_callback(state.value)
            except Exception:
                pass

    def _emit_tool_output(self, tool_name: str, arguments: str, output: str) -> None:
        if not self.tool_output_callback:
            return
        try:
            self.tool_output_callback(tool_name, arguments, output)
        except Exception:
            pass

    # ------------------------------------------------------------------
    # session handling

    def _start_session(self, request: dict[str, Any] | None, session: Session | None) -> Session:
        if session is None:
            session = Session.new(self.spec.kind, request, self.config.agent.max_iterations)
            session.messages = [
                Message(role="system", content=self.spec.system_prompt),
                Message(role="user", content=self.spec.user_prompt),
            ]
            log.info("Session started", session_id=session.id, agent=self.spec.kind)
        else:
            # A resumed run gets a fresh budget on top of the iterations already spent.
            session.max_iterations = session.iteration_count + self.config.agent.max_iterations
            log.info(
                "Session resumed",
                session_id=session.id,
                agent=session.agent_kind,
                iteration=session.iteration_count,
                max_iterations=session.max_iterations,
                messages=len(session.messages),
            )
        if self.spec.use_plan:
            self.plan = ExecutionPlan.from_dict(session.plan) if session.plan else ExecutionPlan()
            self._plan_snapshot = self.plan.clone() if session.plan else None
        return session

    def _sync_session(self, session: Session, history: list[Message]) -> None:
        session.messages = list(history)
        if self.plan is not None:
            session.plan = self.plan.to_dict()

    def _persist(self, session: Session, history: list[Message]) -> None:
        """Save the session; failures are logged, never raised."""
        self._sync_session(session, history)
        if self.store is None or not self.config.session.auto_save:
            return
        try:
            self.store.save(session)
        except (SessionError, OSError) as e:
            log.warning("Failed to save session", session_id=session.id, error=str(e))

    def _finish(
        self,
        state: LoopState,
        session: Session,
        history: list[Message],
        payload: Any = None,
        content: str = "",
        error: BaseException | None = None,
    ) -> AgentResult:
        self._set_state(state)
        self._persist(session, history)
        log.info(
            "Agent finished",
            session_id=session.id,
            status=state.value,
            iterations=session.iteration_count,
            total_tokens=session.token_usage.total_tokens,
        )
        return AgentResult(
            status=state,
            session=session,
            payload=payload,
            content=content,
            usage=session.token_usage,
            error=error,
        )

    # ------------------------------------------------------------------
    # iteration steps

    async def _within_budget(self, session: Session) -> bool:
        """Whether another model call is allowed, extending the budget if the user agrees."""
        if session.iteration_count < session.max_iterations:
            return True
        if not self.interactive or self.confirm_continue is None:
            return False
        if not await self.confirm_continue(session.iteration_count, session.max_iterations):
            return False
        session.max_iterations += self.config.agent.iteration_extension
        log.info("Iteration budget extended", max_iterations=session.max_iterations)
        return True

    def _pipeline(self, session: Session) -> Transform:
        transforms: list[Transform] = []
        if self.spec.show_progress:
            transforms.append(progress_context(self.plan, session.iteration_count, session.max_iterations))
        transforms += [
            truncate_tool_results(self.config.compression.max_tool_result_chars),
            drop_consecutive_duplicates(),
            repair_orphan_tool_messages(),
        ]
        return compose(*transforms)

    async def _call_model(self, sent: list[Message]) -> tuple[Message, TokenUsage]:
        tools = self.spec.registry.get_definitions()
        attempts = 0

        async def attempt() -> tuple[Message, TokenUsage]:
            nonlocal attempts
            attempts += 1
            if attempts > 1 and self.retry_callback:
                # Content from the failed attempt was already streamed; let the UI mark the restart.
                try:
                    self.retry_callback(attempts)
                except Exception:
                    pass
            return await aggregate_stream(
                self.provider.stream(sent, tools=tools or None),
                on_content=self.content_callback,
            )

        return await with_retry(attempt, self.config.retry, self.cancel_event)

    async def _maybe_compress(self, session: Session, history: list[Message]) -> list[Message]:
        cfg = self.config.compression
        if not (cfg.enabled and self.spec.compression) or len(history) <= cfg.threshold:
            return history
        self._set_state(LoopState.COMPRESSING)
        new_history, summary = await self.compressor.compress(history, cfg.keep_recent)
        summarizer = self.compressor.summarizer
        if isinstance(summarizer, ProviderSummarizer):
            session.token_usage.add(summarizer.take_usage())
        if len(new_history) >= len(history):
            return history
        count = int(session.metadata.get("compressions", "0") or 0) + 1
        session.metadata["compressions"] = str(count)
        log.info(
            "History compressed",
            session_id=session.id,
            before=len(history),
            after=len(new_history),
            compressions=count,
        )
        if cfg.show_summary and summary and self.compression_callback:
            try:
                self.compression_callback(summary)
            except Exception:
                pass
        return new_history

    def _show_plan(self, iteration: int) -> None:
        if self.plan is None or self.plan_callback is None:
            return
        interval = max(1, self.config.agent.plan_display_interval)
        if iteration != 1 and iteration % interval != 0:
            return
        if not self.plan.tasks and self._plan_snapshot is None:
            return
        changes = self.plan.diff(self._plan_snapshot)
        if not changes:
            return
        self._plan_snapshot = self.plan.clone()
        try:
            self.plan_callback(self.plan, changes)
        except Exception:
            pass

    # ------------------------------------------------------------------

    async def run(self, request: dict[str, Any] | None = None, session: Session | None = None) -> AgentResult:
        """Run the agent until a terminal state.

        Args:
            request: Opaque request payload stored with a new session
            session: Previously saved session to resume instead

        Returns:
            AgentResult; ``payload`` is the terminal tool's structured data on success

        Raises:
            LLMError (or whatever the provider raised) when a model call fails
            after retries; the session is saved first.
        """
        session = self._start_session(request, session)
        history = list(session.messages)
        ctx = ToolContext(
            work_dir=self.spec.work_dir,
            git=self.spec.git,
            plan=self.plan,
            interactive=self.interactive,
            ask_user=self.ask_user,
        )
        self._set_state(LoopState.RUNNING)

        while True:
            if self.cancel_event.is_set():
                log.info("Cancellation requested", session_id=session.id)
                return self._finish(LoopState.CANCELLED, session, history)

            if not await self._within_budget(session):
                log.warning(
                    "Iteration limit reached",
                    session_id=session.id,
                    max_iterations=session.max_iterations,
                )
                return self._finish(LoopState.ITERATION_EXCEEDED, session, history)
            session.iteration_count += 1
            iteration = session.iteration_count

            sent = self._pipeline(session)(history)
            self._set_state(LoopState.AWAITING_STREAM)
            try:
                message, usage = await self._call_model(sent)
            except asyncio.CancelledError:
                self._set_state(LoopState.CANCELLED)
                self._persist(session, history)
                raise
            except Exception as e:
                log.error("Model call failed", session_id=session.id, iteration=iteration, error=str(e))
                self._set_state(LoopState.ERROR)
                self._persist(session, history)
                raise

            history.append(message)
            session.token_usage.add(usage)
            log.debug(
                "Model turn complete",
                iteration=iteration,
                tool_calls=len(message.tool_calls),
                total_tokens=usage.total_tokens,
            )

            if not message.tool_calls:
                if self.spec.text_fallback is not None:
                    payload = self.spec.text_fallback(message.content)
                    if payload is not None:
                        log.info("Used text fallback", session_id=session.id)
                        return self._finish(
                            LoopState.SUCCESS, session, history, payload=payload, content=message.content
                        )
                if self.spec.tool_mandatory:
                    error = ProtocolViolationError(self.spec.kind, message.content)
                    log.error("Model answered without a tool call", session_id=session.id)
                    return self._finish(LoopState.ERROR, session, history, content=message.content, error=error)
                return self._finish(LoopState.SUCCESS, session, history, content=message.content)

            self._set_state(LoopState.DISPATCHING_TOOLS)
            results = []
            for call in message.tool_calls:
                result = await self.dispatcher.dispatch(call, ctx)
                history.append(Message(
                    role="tool",
                    content=result.content,
                    tool_call_id=result.call_id,
                    tool_name=result.tool_name,
                ))
                self._emit_tool_output(call.name, call.arguments, result.content)
                results.append(result)

            winner = self.dispatcher.select_terminal(results)
            if winner is not None:
                return self._finish(
                    LoopState.SUCCESS, session, history, payload=winner.payload, content=winner.content
                )

            history = await self._maybe_compress(session, history)
            self._show_plan(iteration)
            self._set_state(LoopState.RUNNING)
