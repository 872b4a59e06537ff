"""Prompt analysis: score the user's prompt, ask for clarification or polish it.

Model output is parsed with tolerant regex extraction. Every field has a
conservative default (score 0.5, clarification required) so a malformed
reply never stops the flow.
"""

import logging
import re

from config.config_loader import PromptsConfig
from collab_refine.errors import ConfigurationError
from collab_refine.generation import GenerationService
from collab_refine.models import AnalysisOutcome, ClarificationQuestion, PromptAnalysis

logger = logging.getLogger(__name__)

MAX_QUESTIONS = 4
MIN_ANSWER_LENGTH = 3
GENERIC_QUESTION = (
    "Could you provide more specific details about what you want to achieve with this request?"
)

_SCORE_FIELDS = {
    "clarity_score": "CLARITY_SCORE",
    "completeness_score": "COMPLETENESS_SCORE",
    "specificity_score": "SPECIFICITY_SCORE",
    "overall_score": "OVERALL_SCORE",
}
_NEEDS_CLARIFICATION_RE = re.compile(r"NEEDS_CLARIFICATION:\s*\**\s*(YES|NO)\b", re.IGNORECASE)
# A section runs until the next "KEY_NAME:" line or the end of the text.
# Keys may carry Markdown emphasis or a heading marker, e.g. "**KEY_NAME:**".
_SECTION_END = r"(?=\n[ \t*#]*[A-Z_]+:|\Z)"
_QUESTION_RE = re.compile(r"QUESTION_\d+:\**\s*(.+?)(?=\n[ \t*#]*QUESTION_\d+:|\Z)", re.DOTALL)
_QUESTION_PREFIX_RE = re.compile(r"^QUESTION_?\d*:?\s*", re.IGNORECASE)


def _analysis_model(service: GenerationService) -> str:
    models = service.available_models()
    if not models:
        raise ConfigurationError("No LLM models available for prompt analysis")
    return models[0].id


def _extract_score(text: str, key: str) -> float | None:
    match = re.search(rf"{key}:\s*\**\s*([0-9]*\.?[0-9]+)", text)
    if not match:
        return None
    try:
        value = float(match.group(1))
    except ValueError:
        return None
    return min(1.0, max(0.0, value))


def _extract_section(text: str, key: str) -> str | None:
    match = re.search(rf"{key}:\**[ \t]*(.*?){_SECTION_END}", text, re.DOTALL)
    if not match:
        return None
    return match.group(1).strip()


def _clean(value: str) -> str:
    """Trim whitespace and stray Markdown emphasis around a parsed value."""
    return value.strip().strip("*").strip()


def _split_items(section: str) -> list[str]:
    items = (_clean(item.strip().lstrip("-")) for item in re.split(r"[,\n]", section))
    return [item for item in items if item]


def parse_analysis(text: str) -> PromptAnalysis:
    """Extract a PromptAnalysis from the structured analysis reply.

    Fields that are missing or malformed keep their defaults.
    """
    analysis = PromptAnalysis()
    if not text:
        return analysis

    for attr, key in _SCORE_FIELDS.items():
        score = _extract_score(text, key)
        if score is not None:
            setattr(analysis, attr, score)

    flag = _NEEDS_CLARIFICATION_RE.search(text)
    if flag:
        analysis.needs_clarification = flag.group(1).upper() == "YES"

    missing = _extract_section(text, "MISSING_ELEMENTS")
    if missing:
        analysis.missing_elements = _split_items(missing)

    improvements = _extract_section(text, "POTENTIAL_IMPROVEMENTS")
    if improvements:
        analysis.potential_improvements = _split_items(improvements)

    reasoning = re.search(r"REASONING:\**\s*(.+)\Z", text, re.DOTALL)
    if reasoning:
        analysis.reasoning = _clean(reasoning.group(1))

    return analysis


def parse_questions(text: str) -> list[ClarificationQuestion]:
    """Extract up to four clarification questions; never returns an empty list."""
    texts = [_clean(m) for m in _QUESTION_RE.findall(text or "")]
    texts = [t for t in texts if t][:MAX_QUESTIONS]

    if not texts:
        # Fallback: question-looking lines anywhere in the reply
        for line in (text or "").splitlines():
            trimmed = line.strip()
            if len(trimmed) > 10 and ("?" in trimmed or "question" in trimmed.lower()):
                cleaned = _clean(_QUESTION_PREFIX_RE.sub("", _clean(trimmed)))
                if cleaned:
                    texts.append(cleaned)
            if len(texts) >= MAX_QUESTIONS:
                break

    if not texts:
        texts = [GENERIC_QUESTION]

    return [ClarificationQuestion(id=f"q{i}", question=q) for i, q in enumerate(texts, start=1)]


async def analyze_prompt(
    prompt: str,
    service: GenerationService,
    prompts: PromptsConfig,
) -> AnalysisOutcome:
    """Score the prompt and either return clarification questions or a polished prompt.

    Uses the first available model (registry order) for every call.

    Raises:
        ConfigurationError: No model is available.
        ProviderCallError: A generation call failed.
    """
    model_id = _analysis_model(service)
    logger.info("Analyzing prompt with %s", model_id)

    reply = await service.generate(model_id, prompts.analysis.format(prompt=prompt))
    analysis = parse_analysis(reply)
    logger.debug("Prompt analysis: %s", analysis)

    if analysis.needs_clarification:
        questions_prompt = prompts.clarification.format(
            prompt=prompt,
            missing_elements=", ".join(analysis.missing_elements),
            potential_improvements=", ".join(analysis.potential_improvements),
            reasoning=analysis.reasoning,
        )
        questions = parse_questions(await service.generate(model_id, questions_prompt))
        logger.info("Prompt needs clarification: %d question(s)", len(questions))
        return AnalysisOutcome(needs_clarification=True, analysis=analysis, questions=questions)

    polish_prompt = prompts.polish.format(
        prompt=prompt,
        clarity_score=analysis.clarity_score,
        completeness_score=analysis.completeness_score,
        specificity_score=analysis.specificity_score,
        potential_improvements=", ".join(analysis.potential_improvements),
    )
    refined = await service.generate(model_id, polish_prompt)
    return AnalysisOutcome(needs_clarification=False, analysis=analysis, refined_prompt=refined)


def format_clarifications(
    questions: list[ClarificationQuestion],
    answers: dict[str, str],
) -> str:
    return "\n\n".join(f"Q: {q.question}\nA: {answers.get(q.id) or ''}" for q in questions)


async def refine_with_clarifications(
    original_prompt: str,
    questions: list[ClarificationQuestion],
    answers: dict[str, str],
    service: GenerationService,
    prompts: PromptsConfig,
) -> str:
    """Fold the user's answers into one refined prompt via the first available model."""
    model_id = _analysis_model(service)
    refinement_prompt = prompts.clarified_refinement.format(
        prompt=original_prompt,
        clarifications=format_clarifications(questions, answers),
    )
    logger.info("Refining prompt with %d clarification(s) via %s", len(questions), model_id)
    return await service.generate(model_id, refinement_prompt)


def validate_answers(
    questions: list[ClarificationQuestion],
    answers: dict[str, str],
) -> list[str]:
    """Return every problem with the answers; empty list means valid."""
    errors: list[str] = []
    for question in questions:
        answer = (answers.get(question.id) or "").strip()
        if not answer:
            errors.append(f"Please answer: {question.question}")
        elif len(answer) < MIN_ANSWER_LENGTH:
            errors.append(f"Please provide a more detailed answer for: {question.question}")
    return errors
