import logging

logger = logging.getLogger(__name__)


class Notifier:
    """Fire-and-forget presentation of outcomes (toast for success, blocking alert for errors).

    The default implementation only logs; UIs subclass it.
    """

    def success(self, text: str) -> None:
        logger.info("%s", text)

    def alert(self, title: str, text: str) -> None:
        logger.warning("%s: %s", title, text)
