import asyncio
import logging
from collections.abc import Callable

logger = logging.getLogger(__name__)

GRANT_ANSWERS = {"y", "yes"}


class StaticPermission:
    def __init__(self, granted: bool = True) -> None:
        self._granted = granted

    async def request(self) -> bool:
        return self._granted


class PromptPermission:
    def __init__(
        self,
        prompt: str = "Allow live-transcriber to capture audio? [y/N] ",
        ask: Callable[[str], str] = input,
    ) -> None:
        self._prompt = prompt
        self._ask = ask
        self._granted = False

    async def request(self) -> bool:
        if self._granted:
            return True
        try:
            answer = await asyncio.to_thread(self._ask, self._prompt)
        except EOFError:
            logger.warning("No terminal available to ask for capture permission")
            return False
        self._granted = answer.strip().lower() in GRANT_ANSWERS
        logger.info("Capture permission %s", "granted" if self._granted else "denied")
        return self._granted


def create_permission(mode: str) -> StaticPermission | PromptPermission:
    if mode == "prompt":
        return PromptPermission()
    return StaticPermission(granted=mode != "never")
