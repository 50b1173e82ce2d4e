class TaskAIError(Exception):
    """Base class for errors raised by the chat/action engine."""


class ProviderError(TaskAIError):
    """A model provider failed to produce a reply.

    Carries the provider name so callers can fail over to another one.
    """

    def __init__(self, provider: str, message: str):
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.detail = message


class TaskNotFoundError(TaskAIError):
    """No task matched a name given by the model."""

    def __init__(self, name: str):
        super().__init__(f"Task not found: {name}")
        self.name = name


class NotFoundError(TaskAIError):
    """A task or project id does not exist for the acting user."""

    def __init__(self, kind: str, item_id: str):
        super().__init__(f"{kind.capitalize()} with ID {item_id} not found")
        self.kind = kind
        self.item_id = item_id
