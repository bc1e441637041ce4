from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Result of a guarded call, tagged with whether it is still current."""

    token: int
    current: bool
    result: Optional[T] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class SupersessionGuard:
    """Last-request-wins gate for overlapping calls.

    Each call takes a fresh token from a single counter. When the call
    finishes, its outcome is current only if no newer call has been
    issued since. Superseded work is not cancelled, only ignored.

    Relies on asyncio's single-threaded scheduling: there is no await
    between incrementing and capturing the token, nor between the
    comparison and whatever the caller applies next.
    """

    def __init__(self):
        self._counter = 0

    @property
    def current_token(self) -> int:
        return self._counter

    def issue(self) -> int:
        self._counter += 1
        return self._counter

    def is_current(self, token: int) -> bool:
        return token == self._counter

    async def run(self, call: Callable[[], Awaitable[T]]) -> Outcome[T]:
        """Issue a token, await the call and report its outcome.

        Exceptions are captured in the Outcome rather than raised, so
        stale failures can be dropped exactly like stale successes.
        """
        token = self.issue()
        try:
            result = await call()
        except Exception as e:
            return Outcome(token=token, current=self.is_current(token), error=e)
        return Outcome(token=token, current=self.is_current(token), result=result)
