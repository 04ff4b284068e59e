from typing import Callable, Generic, List, TypeVar

T = TypeVar("T")

class StateChannel(Generic[T]):
    """Synchronous publish/subscribe channel.

    Listeners run in registration order on the publishing call stack.
    """

    def __init__(self):
        self._subscribers: List[Callable[[T], None]] = []

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        """Register a listener and return a callable that removes it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            try:
                self._subscribers.remove(callback)
            except ValueError:
                pass

        return unsubscribe

    def publish(self, message: T) -> None:
        for callback in list(self._subscribers):
            callback(message)
