"""Tool security policy: which tools a conversation may invoke."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional

from hearth.config import ExecutionConfig, SecurityConfig
from hearth.core.types import CHANNEL_TOOLS, ConversationType, ToolName

TOOL_GROUPS: dict[str, frozenset[str]] = {
    "group:channels": CHANNEL_TOOLS,
    "group:fs": frozenset({ToolName.FILESYSTEM, ToolName.SEARCH}),
    "group:runtime": frozenset({ToolName.TERMINAL, ToolName.BROWSER}),
    "group:calendar": frozenset({ToolName.CALENDAR}),
    "group:memory": frozenset({ToolName.MEMORY_SEARCH}),
}

# "full" is a fixed built-in set, not a wildcard: tools registered at runtime
# must be named in an allow list.
PROFILE_TOOLS: dict[str, frozenset[str]] = {
    "minimal": frozenset({ToolName.CALENDAR}),
    "coding": frozenset(
        {ToolName.TERMINAL, ToolName.FILESYSTEM, ToolName.SEARCH, ToolName.MEMORY_SEARCH, ToolName.BATCH}
    ),
    "messaging": CHANNEL_TOOLS | {ToolName.CALENDAR, ToolName.MEMORY_SEARCH, ToolName.BATCH},
    "full": frozenset(t.value for t in ToolName),
}


def expand_tool_names(names: Iterable[str]) -> frozenset[str]:
    """Expand ``group:*`` entries and normalize case."""
    expanded: set[str] = set()
    for name in names:
        key = name.strip().lower()
        if key in TOOL_GROUPS:
            expanded.update(TOOL_GROUPS[key])
        elif key:
            expanded.add(key)
    return frozenset(expanded)


@dataclass(frozen=True)
class ToolPolicy:
    profile: str = "full"
    allow: Optional[frozenset[str]] = None
    deny: frozenset[str] = field(default_factory=frozenset)

    def narrowed(self, allow: Optional[Iterable[str]] = None, deny: Iterable[str] = ()) -> ToolPolicy:
        """A stricter policy: allow lists intersect, deny lists union."""
        new_allow = self.allow
        if allow is not None:
            extra = expand_tool_names(allow)
            new_allow = extra if new_allow is None else new_allow & extra
        return ToolPolicy(
            profile=self.profile,
            allow=new_allow,
            deny=self.deny | expand_tool_names(deny),
        )


def is_tool_allowed(name: str, policy: Optional[ToolPolicy]) -> bool:
    """Decide whether *name* may run under *policy*. Deny always wins."""
    if policy is None:
        return True
    tool = name.lower()
    if tool in policy.deny:
        return False
    if policy.allow is not None:
        return tool in policy.allow
    return tool in PROFILE_TOOLS.get(policy.profile, frozenset())


@dataclass(frozen=True)
class SecurityContext:
    agent_id: str
    conversation_id: str
    conversation_type: ConversationType = ConversationType.MAIN
    tool_policy: ToolPolicy = field(default_factory=ToolPolicy)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)


def resolve_security_context(
    config: SecurityConfig,
    conversation_id: str,
    conversation_type: ConversationType | str,
    agent_id: str,
) -> SecurityContext:
    """Build the security context for a conversation from configuration."""
    conversation_type = ConversationType(conversation_type)
    tools = config.tools
    policy = ToolPolicy(
        profile=tools.profile,
        allow=expand_tool_names(tools.allow) if tools.allow is not None else None,
        deny=expand_tool_names(tools.deny),
    )
    execution = config.execution

    override = config.conversations.get(conversation_type.value)
    if override:
        policy = policy.narrowed(allow=override.tools.allow, deny=override.tools.deny)
        if override.execution:
            execution = override.execution

    return SecurityContext(
        agent_id=agent_id,
        conversation_id=conversation_id,
        conversation_type=conversation_type,
        tool_policy=policy,
        execution=execution,
    )
