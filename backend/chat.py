import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Optional

import config
import database
from conversation import ConversationSession
from errors import ProviderError
from executor import BatchState, execute_batch
from extraction import extract_actions
from llm import ModelGateway
from models import Confirmation, Message
from prompts import build_system_prompt
from resolver import validate_actions

logger = logging.getLogger(__name__)

NO_ACTION_REPLY = "I've processed your request."
UPDATED_REPLY = "Got it! I've updated your tasks."
ABORTED_REPLY = "Sorry, something went wrong while updating your tasks: {error}"
CONFIRM_REPLY = "Please confirm the {kind} deletion."


@dataclass
class ChatResult:
    message: str
    state: str  # "no_actions" or a BatchState value
    confirmation: Optional[Confirmation] = None
    error: Optional[str] = None
    committed: list[str] = field(default_factory=list)


async def process_user_message(
    text: str,
    user_id: str,
    *,
    session: ConversationSession,
    gateway: ModelGateway,
    store=database,
    on_refresh: Optional[Callable[[], None]] = None,
    timeout_s: float = config.MODEL_TIMEOUT_S,
    today: Optional[str] = None,
) -> ChatResult:
    """
    Run one chat turn: prompt the model, extract its actions and apply them.

    Raises ProviderError when the model cannot be reached; every other failure
    is reported through the returned ChatResult.
    """
    tasks = store.get_all_tasks(user_id)
    projects = store.get_all_projects(user_id)
    limit = config.CONTEXT_TASK_LIMIT
    recent_tasks = tasks[-limit:] if limit > 0 else []

    session.append("user", text)
    system_prompt = build_system_prompt(recent_tasks, projects, today or date.today().isoformat())
    messages = [Message(role="system", content=system_prompt), *session.messages]

    try:
        reply = await asyncio.wait_for(gateway.complete(messages), timeout=timeout_s)
    except asyncio.TimeoutError as e:
        raise ProviderError(gateway.name, f"No reply within {timeout_s:g}s") from e

    session.append("assistant", reply)
    extraction = extract_actions(reply)
    actions = validate_actions(extraction.actions)
    if not actions:
        logger.info("No actions in reply (strategy: %s)", extraction.strategy)
        return ChatResult(message=extraction.message or NO_ACTION_REPLY, state="no_actions")

    result = execute_batch(actions, user_id, store=store, on_refresh=on_refresh)

    if result.state is BatchState.ABORTED:
        message = ABORTED_REPLY.format(error=result.error)
    elif result.state is BatchState.PENDING_CONFIRMATION:
        kind = result.confirmation.type.split("_", 1)[1]
        message = extraction.message or CONFIRM_REPLY.format(kind=kind)
    else:
        message = extraction.message or UPDATED_REPLY

    return ChatResult(
        message=message,
        state=result.state.value,
        confirmation=result.confirmation,
        error=result.error,
        committed=result.committed,
    )
