"""
Recover structured actions from a model reply.

Replies look like::

    Created a Bookstore project with initial setup tasks.
    __ACTION_DATA: { "actions": [ {"type": "create_project", "data": {...}} ] }

The text before the marker is shown to the user. When the marker is missing,
a chain of fallback rules tries to recover what the model claimed to do.
Nothing in here raises on bad input: unparseable replies yield no actions.
"""
import copy
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Optional

logger = logging.getLogger(__name__)

ACTION_MARKER = "__ACTION_DATA:"

FallbackRule = Callable[[str], list[dict]]

# (name, rule) pairs tried in registration order
FALLBACK_RULES: list[tuple[str, FallbackRule]] = []


@dataclass
class Extraction:
    message: str
    actions: list[dict] = field(default_factory=list)
    strategy: str = "none"


def split_reply(content: str) -> tuple[str, Optional[str]]:
    """Split a reply into the human message and the raw action block (if any)."""
    parts = content.split(ACTION_MARKER)
    message = parts[0].strip()
    if len(parts) < 2:
        return message, None
    return message, parts[1]


def parse_action_block(block: str) -> list[dict]:
    """Parse the JSON after the marker, tolerating prose around the braces."""
    action_data = block.strip()
    first_brace = action_data.find("{")
    last_brace = action_data.rfind("}")
    if first_brace == -1 or last_brace == -1 or last_brace < first_brace:
        logger.warning("Action block has no JSON object: %r", action_data[:200])
        return []

    try:
        parsed = json.loads(action_data[first_brace:last_brace + 1])
    except json.JSONDecodeError as e:
        logger.warning("Could not parse action block: %s", e)
        return []

    if not isinstance(parsed, dict):
        logger.warning("Action block is not a JSON object")
        return []
    actions = parsed.get("actions") or []
    if not isinstance(actions, list):
        logger.warning("'actions' is not a list: %r", type(actions).__name__)
        return []
    return actions


def fallback_rule(name: str):
    """Register a fallback rule. Rules return [] when they do not apply."""
    def register(rule: FallbackRule) -> FallbackRule:
        FALLBACK_RULES.append((name, rule))
        return rule
    return register


def extract_actions(content: str) -> Extraction:
    message, block = split_reply(content)
    if block is not None:
        return Extraction(message=message, actions=parse_action_block(block), strategy="marker")

    logger.info("No %s marker in reply, trying fallback rules", ACTION_MARKER)
    for name, rule in FALLBACK_RULES:
        actions = rule(content)
        if actions:
            logger.info("Fallback rule %s recovered %d action(s)", name, len(actions))
            return Extraction(message=message, actions=actions, strategy=name)
    return Extraction(message=message)


# Fallback rules

TASK_NAME_PATTERNS = [
    re.compile(r"added .* subtasks? to the [\"']?([\w\s]+)[\"']? task", re.IGNORECASE),
    re.compile(r"added .* to the [\"']?([\w\s]+)[\"']? task", re.IGNORECASE),
    re.compile(r"added the following subtasks? to [\"']?([\w\s]+)[\"']?", re.IGNORECASE),
]
NUMBERED_ITEM = re.compile(r"^\d+\.\s+(.+)$")
BULLET_ITEM = re.compile(r"^[•\-*]\s+(.+)$")

CREATION_CLAIMS = ("created", "added", "new project", "new task")


def _claimed_task_name(content: str) -> Optional[str]:
    for pattern in TASK_NAME_PATTERNS:
        match = pattern.search(content)
        if match and match.group(1).strip():
            # [\w\s] can run past the end of the sentence into the list
            return match.group(1).strip().splitlines()[0].strip()
    return None


def _list_items(content: str) -> list[str]:
    items = []
    for line in content.split("\n"):
        stripped = line.strip()
        match = NUMBERED_ITEM.match(stripped) or BULLET_ITEM.match(stripped)
        if match:
            items.append(match.group(1).strip())
    return items


@fallback_rule("subtask_claim")
def subtask_claim(content: str) -> list[dict]:
    """'Added subtasks to the X task: 1. ... 2. ...' becomes add_subtasks by name."""
    lower = content.lower()
    if "added" not in lower or "subtask" not in lower:
        return []

    task_name = _claimed_task_name(content)
    if not task_name:
        return []
    titles = _list_items(content)
    if not titles:
        return []

    return [{
        "type": "add_subtasks",
        "data": {
            "taskName": task_name,
            "subtasks": [{"title": title} for title in titles],
        },
    }]


def _claims_creation(content: str) -> bool:
    lower = content.lower()
    return any(claim in lower for claim in CREATION_CLAIMS)


def domain_bundle(hint: str, actions: list[dict]) -> FallbackRule:
    """Register a canned bundle used when the reply claims creation and mentions ``hint``."""
    @fallback_rule(f"{hint}_bundle")
    def rule(content: str) -> list[dict]:
        if _claims_creation(content) and hint in content.lower():
            return copy.deepcopy(actions)
        return []
    return rule


bookstore_bundle = domain_bundle("bookstore", [
    {"type": "create_project", "data": {"name": "Bookstore", "color": "#4f46e5"}},
    {"type": "create_task", "data": {
        "title": "Set up inventory system",
        "priority": "high",
        "projectKey": "Bookstore",
        "subtasks": [{"title": "Research inventory software"}, {"title": "Import initial book catalog"}],
    }},
    {"type": "create_task", "data": {"title": "Design store layout", "priority": "medium", "projectKey": "Bookstore"}},
    {"type": "create_task", "data": {"title": "Hire staff", "priority": "medium", "projectKey": "Bookstore"}},
])

restaurant_bundle = domain_bundle("restaurant", [
    {"type": "create_project", "data": {"name": "Restaurant", "color": "#ef4444"}},
    {"type": "create_task", "data": {
        "title": "Develop menu",
        "priority": "high",
        "projectKey": "Restaurant",
        "subtasks": [{"title": "Research competitors"}, {"title": "Test recipes"}],
    }},
    {"type": "create_task", "data": {"title": "Obtain permits and licenses", "priority": "high", "projectKey": "Restaurant"}},
])
