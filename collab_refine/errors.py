"""Exception hierarchy for the refinement core."""


class RefinementError(Exception):
    """Base for every error the refinement core raises on purpose.

    When one escapes a pipeline step the engine calls add_context() before
    re-raising, so the message says which session, phase and iteration died.
    """

    session_id: str | None = None
    phase: str | None = None
    iteration: int | None = None

    def add_context(self, session_id: str, phase: str, iteration: int) -> None:
        self.session_id = session_id
        self.phase = phase
        self.iteration = iteration

    def __str__(self) -> str:
        base = super().__str__()
        if self.phase is None:
            return base
        return f"{base} (session {self.session_id}, {self.phase}, iteration {self.iteration})"


class ConfigurationError(RefinementError):
    """No usable model, missing credential, or an invalid model/strategy choice."""


class UnknownModelError(ConfigurationError):
    def __init__(self, model_id: str) -> None:
        self.model_id = model_id
        super().__init__(f"Unknown model: {model_id}")


class ProviderUnavailableError(ConfigurationError):
    def __init__(self, model_id: str, provider: str) -> None:
        self.model_id = model_id
        self.provider = provider
        super().__init__(f"Model {model_id} requires a {provider.upper()} API key")


class ValidationError(RefinementError):
    """Caller input rejected. ``errors`` lists every violation found."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = list(errors)
        super().__init__("Validation errors: " + ", ".join(self.errors))


class PromptTooLongError(ValidationError):
    def __init__(self, model_id: str, estimated_tokens: int, max_input_tokens: float) -> None:
        self.model_id = model_id
        self.estimated_tokens = estimated_tokens
        self.max_input_tokens = max_input_tokens
        super().__init__(
            [f"Prompt too long for {model_id}: {estimated_tokens} tokens (max: {max_input_tokens:g})"]
        )


class ProviderCallError(RefinementError):
    """The text-generation call failed or produced no usable text."""

    def __init__(self, model_id: str, message: str) -> None:
        self.model_id = model_id
        self.message = message
        super().__init__(f"[{model_id}] {message}")


class SessionNotFoundError(RefinementError):
    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"Session not found: {session_id}")


class NoClarificationPendingError(RefinementError):
    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"No pending clarifications for session {session_id}")
