"""
User-facing notices for the question board.

Anything that shows toasts or status lines connects to ``notice``. Receivers
get ``level`` (a django.contrib.messages constant) and ``message``, and may be
plain functions or coroutines. Sending is fire-and-forget: a failing receiver
is logged and never reaches the board.
"""

import logging

from django.contrib.messages import constants
from django.dispatch import Signal

logger = logging.getLogger(__name__)

notice = Signal()

SUCCESS = constants.SUCCESS
WARNING = constants.WARNING
ERROR = constants.ERROR

_log_levels = {
    SUCCESS: logging.INFO,
    WARNING: logging.WARNING,
    ERROR: logging.ERROR,
}


async def notify(sender, level, message):
    logger.log(_log_levels.get(level, logging.INFO), message)
    for receiver, response in await notice.asend_robust(
        sender=sender, level=level, message=message
    ):
        if isinstance(response, Exception):
            logger.warning("notice receiver %r failed: %s", receiver, response)
