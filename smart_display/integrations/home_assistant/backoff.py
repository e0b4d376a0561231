"""Reconnect delay policy with a consecutive-failure circuit breaker."""


class BackoffPolicy:
    """
    Capped doubling: initial, 2*initial, 4*initial, ... up to `max_delay`.

    `record_failure()` counts consecutive failed attempts; once the count
    reaches `failure_threshold` the circuit is open and the caller stops
    retrying. `reset()` is called after a successful handshake.
    """

    def __init__(self, initial_delay: float = 1.0, max_delay: float = 60.0, failure_threshold: int = 10):
        if initial_delay <= 0:
            raise ValueError("initial_delay must be positive")
        if max_delay < initial_delay:
            raise ValueError("max_delay must be >= initial_delay")
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.failure_threshold = failure_threshold
        self.attempt = 0
        self.failures = 0

    def next_delay(self) -> float:
        delay = min(self.initial_delay * (2 ** self.attempt), self.max_delay)
        self.attempt += 1
        return delay

    def record_failure(self) -> None:
        self.failures += 1

    @property
    def circuit_open(self) -> bool:
        return self.failures >= self.failure_threshold

    def reset(self) -> None:
        self.attempt = 0
        self.failures = 0
