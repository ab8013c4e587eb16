"""Abstract browser session consumed by the operation driver."""

from abc import ABC, abstractmethod
from typing import Any


class SessionError(RuntimeError):
    """Raised when the embedded browser fails to start, navigate or evaluate."""


class BrowserSession(ABC):
    """An authenticated browser surface that can run injected script.

    Implementations keep their cookies in a persistent profile so that a login
    performed once is reused by every later operation.
    """

    @property
    @abstractmethod
    def is_closed(self) -> bool:
        ...

    @abstractmethod
    async def start(self) -> None:
        """Launch (or attach to) the browser."""
        ...

    @abstractmethod
    async def navigate(self, url: str) -> str:
        """Load ``url`` and return the final URL after redirects."""
        ...

    @abstractmethod
    async def evaluate(self, expression: str) -> Any:
        """Evaluate a JavaScript expression in the page and return its value."""
        ...

    @abstractmethod
    async def get_cookie(self, name: str) -> str | None:
        """Return the value of a cookie set for the current site."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Tear down the browser. Safe to call more than once."""
        ...
