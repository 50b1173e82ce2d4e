import logging
import math

from models import TaskPayload

logger = logging.getLogger(__name__)

BASE_HOURS = 1.0
LONG_TITLE_WORDS = 5
HARD_WORDS = ("complex", "difficult")
HIGH_PRIORITY_FACTOR = 1.2


def estimate_effort(task: TaskPayload) -> int:
    """
    Estimate the effort of a task in whole hours.

    Starts from one hour and adds for a long title, words like "complex",
    description length (capped at 2 hours) and each subtask. High priority
    tasks get a 20% margin on top.
    """
    estimate = BASE_HOURS

    title = task.title or ""
    if len(title.split()) > LONG_TITLE_WORDS:
        estimate += 0.5
    if any(word in title.lower() for word in HARD_WORDS):
        estimate += 1

    if task.description:
        estimate += min(len(task.description.split()) / 50, 2)

    if task.subtasks:
        estimate += 0.5 * len(task.subtasks)

    if task.priority == "high":
        estimate *= HIGH_PRIORITY_FACTOR

    # Round half up, not to even
    hours = int(math.floor(estimate + 0.5))
    logger.debug("Estimated %r at %s hours (raw %.2f)", title, hours, estimate)
    return hours
