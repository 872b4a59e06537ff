"""Refinement session engine: analysis, clarification gate, iteration loop, final review.

One pipeline per session runs strictly sequentially. Generation calls are the
only suspension points and each one is awaited before the next is issued.
"""

import dataclasses
import logging
import time

from config.config_loader import PromptsConfig
from collab_refine.analyzer import analyze_prompt, refine_with_clarifications, validate_answers
from collab_refine.errors import (
    ConfigurationError,
    NoClarificationPendingError,
    RefinementError,
    SessionNotFoundError,
    ValidationError,
)
from collab_refine.generation import GenerationService
from collab_refine.handoff import HandoffTable, get_strategy, resolve_final_review_model
from collab_refine.models import (
    IterationStep,
    ModelSelection,
    ModelUsage,
    Phase,
    ProgressEvent,
    ProgressSink,
    RefinementOutcome,
    RefinementResult,
    RefinementSession,
    SessionState,
)
from collab_refine.session_store import InMemorySessionStore, SessionStore

logger = logging.getLogger(__name__)

_DIGEST_CHARS = 200
_PREVIEW_CHARS = 300


# --- prompt construction (pure, deterministic) ---

def _is_early(iteration: int, total_iterations: int) -> bool:
    """First half of the run works on structure and content, second half on polish."""
    return iteration <= total_iterations / 2


def critique_digest(history: list[IterationStep]) -> str:
    """First ~200 chars of every earlier critique, one line each."""
    return "\n".join(
        f"Iteration {step.iteration}: {step.output_text[:_DIGEST_CHARS]}..."
        for step in history
        if step.phase == "critique"
    )


def build_critique_prompt(
    prompts: PromptsConfig,
    original_prompt: str,
    current_response: str,
    iteration: int,
    total_iterations: int,
    history: list[IterationStep],
) -> str:
    digest = critique_digest(history)
    previous = f"**Previous Critique Themes:**\n{digest}\n" if digest else ""
    focus = (
        "structural and content improvements"
        if _is_early(iteration, total_iterations)
        else "refinement and polish"
    )
    return prompts.critique.format(
        iteration=iteration,
        total_iterations=total_iterations,
        previous_iterations=iteration - 1,
        original_prompt=original_prompt,
        current_response=current_response,
        previous_critiques=previous,
        focus=focus,
    )


def build_improvement_prompt(
    prompts: PromptsConfig,
    original_prompt: str,
    current_response: str,
    critique: str,
    iteration: int,
    total_iterations: int,
) -> str:
    early = _is_early(iteration, total_iterations)
    return prompts.improvement.format(
        iteration=iteration,
        total_iterations=total_iterations,
        original_prompt=original_prompt,
        current_response=current_response,
        critique=critique,
        progress_context=(
            "major structural and content improvements"
            if early
            else "refinement, polish, and final optimization"
        ),
        iteration_guidance=(
            "Focus on major improvements and content development"
            if early
            else "Focus on refinement, clarity, and polish"
        ),
        next_step=(
            "Prepare for final review - ensure completeness"
            if iteration == total_iterations
            else "Set up for next iteration"
        ),
    )


def build_final_review_prompt(
    prompts: PromptsConfig,
    original_prompt: str,
    final_response: str,
    completed_iterations: int,
    history: list[IterationStep],
) -> str:
    tally: dict[str, int] = {}
    for step in history:
        tally[step.model] = tally.get(step.model, 0) + 1
    return prompts.final_review.format(
        original_prompt=original_prompt,
        final_response=final_response,
        completed_iterations=completed_iterations,
        models_involved=", ".join(tally),
        model_tally=", ".join(f"{model} ({count})" for model, count in tally.items()),
        total_steps=len(history),
    )


def _preview(text: str) -> str:
    return text[:_PREVIEW_CHARS] + ("..." if len(text) > _PREVIEW_CHARS else "")


class RefinementEngine:
    """Owns session lifecycle and drives the generation pipeline."""

    def __init__(
        self,
        service: GenerationService,
        prompts: PromptsConfig,
        specializations: dict[str, str] | None = None,
        store: SessionStore | None = None,
        max_iterations: int | None = None,
    ) -> None:
        self._service = service
        self._prompts = prompts
        self._specializations = dict(specializations or {})
        self._store = store if store is not None else InMemorySessionStore()
        self._max_iterations = max_iterations

    # --- read access ---

    def get_session(self, session_id: str) -> RefinementSession | None:
        return self._store.get(session_id)

    def active_sessions(self) -> list[str]:
        return self._store.ids()

    def handoff_table(self) -> HandoffTable:
        return HandoffTable(
            models=tuple(self._service.available_models()),
            specializations=self._specializations,
        )

    # --- public operations ---

    async def start(
        self,
        prompt: str,
        selection: ModelSelection,
        iterations: int,
        progress_sink: ProgressSink | None = None,
    ) -> RefinementOutcome:
        """Create a session and analyze the prompt.

        Returns the clarification questions when the analyzer asks for them
        (the pipeline does not run), otherwise runs the whole pipeline and
        returns the completed result.

        Raises:
            ValidationError: Empty prompt or iteration count out of range.
            ConfigurationError: No models, unavailable model or unknown strategy.
            ProviderCallError: A generation call failed; the session is discarded.
            PromptTooLongError: A step prompt outgrew its model budget; the
                session is discarded.
        """
        self._validate_request(prompt, selection, iterations)

        table = self.handoff_table()
        final_model = resolve_final_review_model(table, selection.final_review_model)
        if not selection.final_review_model:
            logger.info("Auto-selected final review model: %s", final_model)

        session = RefinementSession(
            original_prompt=prompt,
            model_selection=dataclasses.replace(selection, final_review_model=final_model),
            target_iterations=iterations,
            progress_sink=progress_sink,
        )
        self._store.put(session)

        logger.info(
            "[%s] Starting refinement: %d iteration(s), primary=%s, refinement=%s, final=%s, strategy=%s",
            session.id,
            iterations,
            selection.primary_model,
            selection.refinement_model,
            final_model,
            selection.handoff_strategy,
        )

        session.state = SessionState.ANALYZING
        self.send_progress_update(session, "analyzing", "Analyzing prompt for clarity and completeness")

        try:
            outcome = await analyze_prompt(prompt, self._service, self._prompts)
        except Exception:
            self._fail(session)
            raise

        if outcome.needs_clarification:
            session.pending_clarifications = list(outcome.questions)
            session.state = SessionState.AWAITING_CLARIFICATION
            logger.info("[%s] Awaiting %d clarification answer(s)", session.id, len(outcome.questions))
            return RefinementOutcome(
                session_id=session.id,
                needs_clarification=True,
                questions=list(outcome.questions),
            )

        session.refined_prompt = outcome.refined_prompt
        session.state = SessionState.REFINING
        result = await self.run_pipeline(session)
        return RefinementOutcome(session_id=session.id, complete=True, result=result)

    async def submit_clarification(
        self,
        session_id: str,
        answers: dict[str, str],
        progress_sink: ProgressSink | None = None,
    ) -> RefinementOutcome:
        """Apply clarification answers and run the pipeline.

        Raises:
            SessionNotFoundError: Unknown session id.
            NoClarificationPendingError: Session is not waiting for answers.
            ValidationError: Missing or too-short answers; session keeps waiting.
            ProviderCallError: A generation call failed; the session is discarded.
            PromptTooLongError: A step prompt outgrew its model budget; the
                session is discarded.
        """
        session = self._store.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        if session.state != SessionState.AWAITING_CLARIFICATION or not session.pending_clarifications:
            raise NoClarificationPendingError(session_id)

        errors = validate_answers(session.pending_clarifications, answers)
        if errors:
            raise ValidationError(errors)

        if progress_sink is not None:
            session.progress_sink = progress_sink

        # Leave the awaiting state before the first await so a concurrent
        # submission for the same session is rejected.
        session.state = SessionState.ANALYZING
        self.send_progress_update(session, "processing_clarifications", "Processing your clarification answers")
        logger.info("[%s] Processing clarification answers", session.id)

        try:
            refined = await refine_with_clarifications(
                session.original_prompt,
                session.pending_clarifications,
                answers,
                self._service,
                self._prompts,
            )
        except Exception:
            self._fail(session)
            raise

        session.refined_prompt = refined
        session.pending_clarifications = None
        session.state = SessionState.REFINING
        result = await self.run_pipeline(session)
        return RefinementOutcome(session_id=session.id, complete=True, result=result)

    async def run_pipeline(self, session: RefinementSession) -> RefinementResult:
        """Initial generation, N critique/improve iterations, final review.

        Exactly 2N + 2 generation calls on success. The session leaves the
        store when this returns or raises.
        """
        if session.refined_prompt is None:
            raise RuntimeError(f"Session {session.id} has no refined prompt to run")

        selection = session.model_selection
        strategy = get_strategy(selection.handoff_strategy)
        table = self.handoff_table()
        total = session.target_iterations
        request = session.refined_prompt

        try:
            session.state = SessionState.ITERATING
            logger.info("[%s] Executing %d iteration(s) with %s strategy", session.id, total, selection.handoff_strategy)
            self.send_progress_update(
                session,
                "starting",
                f"Starting {total} iterations with {selection.handoff_strategy} strategy",
            )

            self.send_progress_update(
                session,
                "initial_generation",
                f"Generating initial response with {selection.primary_model}",
                model=selection.primary_model,
            )
            current_response = await self._run_step(
                session, selection.primary_model, request, "initial_generation", 0
            )

            for i in range(1, total + 1):
                session.current_iteration = i
                self.send_progress_update(session, "iteration_start", f"Starting iteration {i} of {total}")

                critique_model = strategy(
                    table, selection.primary_model, i, total, Phase.CRITIQUE,
                    default=selection.refinement_model,
                ) or selection.refinement_model
                self.send_progress_update(
                    session, "critique", f"Analyzing response with {critique_model}", model=critique_model
                )
                critique_prompt = build_critique_prompt(
                    self._prompts, request, current_response, i, total, session.iteration_history
                )
                critique = await self._run_step(session, critique_model, critique_prompt, "critique", i)

                improvement_model = strategy(
                    table, critique_model, i, total, Phase.IMPROVEMENT,
                    default=selection.primary_model,
                ) or selection.primary_model
                self.send_progress_update(
                    session,
                    "improvement",
                    f"Implementing improvements with {improvement_model}",
                    model=improvement_model,
                )
                improvement_prompt = build_improvement_prompt(
                    self._prompts, request, current_response, critique, i, total
                )
                current_response = await self._run_step(
                    session, improvement_model, improvement_prompt, "improvement", i
                )

                session.completed_iterations = i
                logger.info("[%s] Completed iteration %d/%d", session.id, i, total)

            session.state = SessionState.FINAL_REVIEW
            final_model = selection.final_review_model or resolve_final_review_model(table)
            if final_model is None:
                raise ConfigurationError("No model available for final review")
            self.send_progress_update(
                session, "final_review", f"Performing final review with {final_model}", model=final_model
            )
            final_prompt = build_final_review_prompt(
                self._prompts,
                request,
                current_response,
                session.completed_iterations,
                session.iteration_history,
            )
            final_output = await self._run_step(session, final_model, final_prompt, "final_review", total + 1)

            result = RefinementResult(
                original_prompt=session.original_prompt,
                refined_prompt=request,
                final_output=final_output,
                iteration_history=list(session.iteration_history),
                session_duration_sec=time.monotonic() - session.started_at,
                target_iterations=total,
                completed_iterations=session.completed_iterations,
                handoff_strategy=selection.handoff_strategy,
                final_review_model=final_model,
                model_usage_stats=dict(session.model_usage_stats),
            )
            session.state = SessionState.COMPLETED
            logger.info(
                "[%s] Refinement completed: %d/%d iterations in %.1fs, models: %s",
                session.id,
                session.completed_iterations,
                total,
                result.session_duration_sec,
                ", ".join(result.model_usage_stats),
            )
            self.send_progress_update(
                session,
                "completed",
                f"Refinement completed in {result.session_duration_sec:.1f}s",
                current_iteration=session.completed_iterations,
                completed=True,
                result=result,
            )
            return result
        except Exception as exc:
            session.state = SessionState.FAILED
            logger.error("[%s] Refinement failed: %s", session.id, exc)
            raise
        finally:
            self._store.delete(session.id)

    def track_model_usage(self, session: RefinementSession, model_id: str, phase: str) -> None:
        usage = session.model_usage_stats.setdefault(model_id, ModelUsage(model=model_id))
        usage.operations[phase] = usage.operations.get(phase, 0) + 1
        usage.total_usage += 1

    def send_progress_update(
        self,
        session: RefinementSession,
        phase: str,
        message: str,
        *,
        current_iteration: int | None = None,
        model: str | None = None,
        completed: bool = False,
        result: RefinementResult | None = None,
    ) -> None:
        """Best effort: no sink is fine, a failing sink is logged and ignored."""
        if session.progress_sink is None:
            return
        event = ProgressEvent(
            session_id=session.id,
            timestamp=time.time(),
            phase=phase,
            message=message,
            current_iteration=session.current_iteration if current_iteration is None else current_iteration,
            total_iterations=session.target_iterations,
            model=model,
            completed=completed,
            result=result,
        )
        try:
            session.progress_sink(event)
        except Exception as exc:
            logger.warning("[%s] Progress sink failed on %s: %s", session.id, phase, exc)

    # --- internals ---

    def _validate_request(self, prompt: str, selection: ModelSelection, iterations: int) -> None:
        problems: list[str] = []
        if not prompt or not prompt.strip():
            problems.append("Prompt must not be empty")
        if isinstance(iterations, bool) or not isinstance(iterations, int) or iterations < 1:
            problems.append(f"Iterations must be a positive integer, got {iterations!r}")
        elif self._max_iterations is not None and iterations > self._max_iterations:
            problems.append(f"Iterations must be at most {self._max_iterations}, got {iterations}")
        if problems:
            raise ValidationError(problems)

        if not self._service.available_models():
            raise ConfigurationError("No models available. Configure at least one provider API key.")

        get_strategy(selection.handoff_strategy)

        config_errors: list[str] = []
        for role, model_id in (
            ("Primary", selection.primary_model),
            ("Refinement", selection.refinement_model),
            ("Final review", selection.final_review_model),
        ):
            if model_id is None and role == "Final review":
                continue
            descriptor = self._service.registry.by_id(model_id)
            if descriptor is None:
                config_errors.append(f"{role} model {model_id} is unknown")
            elif not self._service.is_model_available(model_id):
                config_errors.append(
                    f"{role} model {model_id} requires {descriptor.provider.value.upper()} API key"
                )
        if config_errors:
            raise ConfigurationError(f"Configuration errors: {', '.join(config_errors)}")

    async def _run_step(
        self,
        session: RefinementSession,
        model_id: str,
        prompt: str,
        phase: str,
        iteration: int,
    ) -> str:
        try:
            output = await self._service.generate(model_id, prompt)
        except RefinementError as exc:
            exc.add_context(session.id, phase, iteration)
            raise

        self.track_model_usage(session, model_id, phase)
        session.iteration_history.append(
            IterationStep(
                iteration=iteration,
                model=model_id,
                phase=phase,
                input_text=prompt,
                output_text=output,
            )
        )
        logger.debug("[%s] %s (%s, iteration %d): %s", session.id, phase, model_id, iteration, _preview(output))
        return output

    def _fail(self, session: RefinementSession) -> None:
        session.state = SessionState.FAILED
        self._store.delete(session.id)
