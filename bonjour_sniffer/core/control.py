import threading


class CancelToken:
    """
    Cooperative cancellation token.
    Shared between the stream worker, the sources it reads and the consumer.
    """
    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float) -> bool:
        """
        Sleep up to `timeout` seconds, waking early on cancellation.
        Returns True if cancelled.
        """
        return self._event.wait(timeout)
