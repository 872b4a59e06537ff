"""Pure dataclasses for the refinement pipeline. No logic, no deps."""

import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Provider(str, Enum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"


class Tier(str, Enum):
    PREMIUM = "premium"
    ADVANCED = "advanced"
    STANDARD = "standard"


class Phase(str, Enum):
    """Which pipeline step a model-selection decision is made for."""

    INITIAL = "initial"
    CRITIQUE = "critique"
    IMPROVEMENT = "improvement"
    FINAL = "final"


class SessionState(str, Enum):
    CREATED = "created"
    ANALYZING = "analyzing"
    AWAITING_CLARIFICATION = "awaiting_clarification"
    REFINING = "refining"
    ITERATING = "iterating"
    FINAL_REVIEW = "final_review"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class ModelDescriptor:
    id: str                    # registry key, e.g. "gpt-4o"
    provider: Provider
    model_name: str            # vendor API model string
    tier: Tier
    capabilities: frozenset[str]
    max_output_tokens: int
    temperature: float = 0.7
    display_name: str = ""


@dataclass
class ModelResponse:
    provider: str
    model: str
    content: str
    latency_sec: float
    token_count: int | None


@dataclass
class PromptAnalysis:
    clarity_score: float = 0.5
    completeness_score: float = 0.5
    specificity_score: float = 0.5
    overall_score: float = 0.5
    needs_clarification: bool = True
    missing_elements: list[str] = field(default_factory=list)
    potential_improvements: list[str] = field(default_factory=list)
    reasoning: str = ""


@dataclass(frozen=True)
class ClarificationQuestion:
    id: str
    question: str


@dataclass
class AnalysisOutcome:
    needs_clarification: bool
    analysis: PromptAnalysis
    questions: list[ClarificationQuestion] = field(default_factory=list)
    refined_prompt: str | None = None


@dataclass
class ModelSelection:
    primary_model: str
    refinement_model: str
    final_review_model: str | None = None
    handoff_strategy: str = "model_specialization"


@dataclass
class IterationStep:
    iteration: int
    model: str
    phase: str                 # "initial_generation", "critique", "improvement", "final_review"
    input_text: str
    output_text: str
    timestamp: float = field(default_factory=time.time)


@dataclass
class ModelUsage:
    model: str
    operations: dict[str, int] = field(default_factory=dict)
    total_usage: int = 0


@dataclass
class RefinementResult:
    original_prompt: str
    refined_prompt: str
    final_output: str
    iteration_history: list[IterationStep]
    session_duration_sec: float
    target_iterations: int
    completed_iterations: int
    handoff_strategy: str
    final_review_model: str
    model_usage_stats: dict[str, ModelUsage]


@dataclass
class ProgressEvent:
    session_id: str
    timestamp: float
    phase: str
    message: str
    current_iteration: int
    total_iterations: int
    model: str | None = None
    completed: bool = False
    result: RefinementResult | None = None


ProgressSink = Callable[[ProgressEvent], Any]


@dataclass
class RefinementSession:
    original_prompt: str
    model_selection: ModelSelection
    target_iterations: int
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    refined_prompt: str | None = None
    current_iteration: int = 0
    completed_iterations: int = 0
    pending_clarifications: list[ClarificationQuestion] | None = None
    iteration_history: list[IterationStep] = field(default_factory=list)
    model_usage_stats: dict[str, ModelUsage] = field(default_factory=dict)
    state: SessionState = SessionState.CREATED
    started_at: float = field(default_factory=time.monotonic)
    progress_sink: ProgressSink | None = None


@dataclass
class RefinementOutcome:
    session_id: str
    needs_clarification: bool = False
    questions: list[ClarificationQuestion] = field(default_factory=list)
    complete: bool = False
    result: RefinementResult | None = None
