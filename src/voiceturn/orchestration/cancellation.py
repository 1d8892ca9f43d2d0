"""Cancellation tokens for in-flight collaborator calls."""
from typing import Optional


class CancellationToken:
    """A token that in-flight work checks before acting on its result.

    Tokens form a tree: cancelling a parent cancels every child. The session
    owns the root token; each turn gets a child so that a superseded turn can
    be cancelled on its own.
    """

    def __init__(self, parent: Optional["CancellationToken"] = None):
        self._parent = parent
        self._cancelled = False
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        if self._cancelled:
            return True
        return self._parent is not None and self._parent.cancelled

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._cancelled:
            self._cancelled = True
            self.reason = reason

    def child(self) -> "CancellationToken":
        """Create a token cancelled together with this one."""
        return CancellationToken(parent=self)

    def __bool__(self) -> bool:
        # A token is truthy while it is still valid
        return not self.cancelled
