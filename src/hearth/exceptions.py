"""Exception hierarchy for hearth."""


class HearthError(Exception):
    """Base exception for the engine."""
    pass


class ConfigError(HearthError):
    """Raised when configuration is missing or invalid."""
    pass


class StorageError(HearthError):
    """Raised when the SQLite store is unavailable or misused."""
    pass


class ConversationNotFoundError(HearthError):
    """Raised when a conversation id does not exist."""

    def __init__(self, conversation_id: str):
        super().__init__(f"Conversation {conversation_id} not found")
        self.conversation_id = conversation_id


class EventNotFoundError(HearthError):
    """Raised when a calendar event id does not exist."""

    def __init__(self, event_id: str):
        super().__init__(f"Event {event_id} not found")
        self.event_id = event_id


class ToolRegistrationError(HearthError):
    """Raised when a tool fails validation at registration time."""
    pass


class ToolError(HearthError):
    """Base for failures of a single tool call.

    These never leave ToolRegistry.execute; they are turned into a failed
    ToolResult that the model sees as a tool message.
    """
    pass


class ToolNotFoundError(ToolError):
    def __init__(self, name: str, suggestions: list[str], available: list[str]):
        hint = f" Did you mean: {', '.join(suggestions)}?" if suggestions else ""
        super().__init__(
            f'Tool "{name}" not found.{hint} Available tools: {", ".join(available)}'
        )
        self.name = name
        self.suggestions = suggestions


class ToolDeniedError(ToolError):
    def __init__(self, name: str):
        super().__init__(f'Tool "{name}" is not allowed by the security policy')
        self.name = name


class ToolExecutionError(ToolError):
    """Raised (and caught) when a handler throws or its arguments are unusable."""
    pass


class ModelCallError(HearthError):
    """Raised when the language model call fails; fatal to the turn."""
    pass


class SchedulerActionError(HearthError):
    """A calendar fire failed or timed out. Logged, never propagated."""
    pass
