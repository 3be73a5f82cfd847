"""
Resilience service for remote model calls: retry with backoff and circuit breaking.

All helpers are coroutine based; ``func`` arguments are zero-argument callables
returning an awaitable so each attempt issues a fresh request.
"""

import asyncio
import random
import threading
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

import openai

from utils.logging_config import get_logger

logger = get_logger(__name__)

# Define which errors should trigger retries (transient errors)
RETRIABLE_ERRORS = (
    openai.RateLimitError,
    openai.APIConnectionError,
    openai.APITimeoutError,
    openai.InternalServerError,  # Server-side issues
)

# Define which errors should NOT be retried (permanent errors)
NON_RETRIABLE_ERRORS = (
    openai.AuthenticationError,  # API key issues
    openai.BadRequestError,      # User input issues
    openai.ContentFilterFinishReasonError,  # Content policy violations
)

AsyncCallable = Callable[[], Awaitable[Any]]


def exponential_backoff_delay(attempt: int, base_delay: float = 1.0, max_delay: float = 60.0) -> float:
    """
    Calculate exponential backoff delay with jitter

    Args:
        attempt: Current attempt number (0-indexed)
        base_delay: Base delay in seconds
        max_delay: Maximum delay in seconds

    Returns:
        Delay in seconds
    """
    delay = min(base_delay * (2 ** attempt), max_delay)
    # Jitter spreads out concurrent retries
    return delay + random.uniform(0, 0.1 * delay)


class CircuitBreakerState(Enum):
    """Circuit breaker states"""
    CLOSED = "closed"      # Normal operation, requests pass through
    OPEN = "open"          # Circuit is open, requests are blocked
    HALF_OPEN = "half_open"  # Testing if service has recovered


class CircuitBreakerError(Exception):
    """Raised when a call is rejected because the circuit is open"""
    pass


class CircuitBreaker:
    """
    Circuit breaker for the remote language model

    States:
    - CLOSED: Normal operation, all requests pass through
    - OPEN: Circuit is open, requests fail fast without hitting the API
    - HALF_OPEN: Testing recovery, one trial request at a time
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60,
        expected_exception: tuple = RETRIABLE_ERRORS,
        name: str = "CircuitBreaker",
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Args:
            failure_threshold: Number of consecutive failures before opening circuit
            recovery_timeout: Seconds to wait before attempting recovery
            expected_exception: Exceptions that count as failures
            name: Name for logging and identification
            clock: Monotonic time source in seconds
        """
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.expected_exception = expected_exception
        self.name = name
        self._clock = clock

        self.failure_count = 0
        self.success_count = 0
        self.last_failure_time: Optional[float] = None
        self.state = CircuitBreakerState.CLOSED
        self._trial_in_flight = False

        self._lock = threading.Lock()

    def _should_attempt_reset(self) -> bool:
        if self.last_failure_time is None:
            return False
        return self._clock() - self.last_failure_time >= self.recovery_timeout

    def _remaining_timeout(self) -> float:
        if self.last_failure_time is None:
            return 0.0
        return max(0.0, self.recovery_timeout - (self._clock() - self.last_failure_time))

    def record_success(self):
        with self._lock:
            self._trial_in_flight = False
            self.failure_count = 0
            self.success_count += 1
            if self.state == CircuitBreakerState.HALF_OPEN:
                self.state = CircuitBreakerState.CLOSED
                logger.info(f"CircuitBreaker '{self.name}' recovered - state: CLOSED")

    def record_failure(self, exception: Exception):
        with self._lock:
            self._trial_in_flight = False
            self.failure_count += 1
            self.last_failure_time = self._clock()

            if self.state == CircuitBreakerState.HALF_OPEN:
                self.state = CircuitBreakerState.OPEN
                logger.warning(f"CircuitBreaker '{self.name}' recovery failed - state: OPEN")
            elif self.state == CircuitBreakerState.CLOSED and self.failure_count >= self.failure_threshold:
                self.state = CircuitBreakerState.OPEN
                logger.warning(
                    f"CircuitBreaker '{self.name}' opened after {self.failure_count} failures "
                    f"({exception.__class__.__name__})"
                )

    def _refresh_state(self):
        """Move OPEN to HALF_OPEN once the recovery timeout has passed; caller holds the lock"""
        if self.state == CircuitBreakerState.OPEN and self._should_attempt_reset():
            self.state = CircuitBreakerState.HALF_OPEN
            self._trial_in_flight = False
            logger.info(f"CircuitBreaker '{self.name}' attempting recovery - state: HALF_OPEN")

    def can_execute(self) -> bool:
        """Check if a request would be admitted right now"""
        with self._lock:
            self._refresh_state()
            if self.state == CircuitBreakerState.HALF_OPEN:
                return not self._trial_in_flight
            return self.state != CircuitBreakerState.OPEN

    def _acquire(self) -> bool:
        """Admit a request; while HALF_OPEN only one trial is admitted until it settles"""
        with self._lock:
            self._refresh_state()
            if self.state == CircuitBreakerState.OPEN:
                return False
            if self.state == CircuitBreakerState.HALF_OPEN:
                if self._trial_in_flight:
                    return False
                self._trial_in_flight = True
            return True

    def _release_trial(self):
        with self._lock:
            self._trial_in_flight = False

    async def execute(self, func: AsyncCallable) -> Any:
        """
        Await ``func()`` under circuit breaker protection

        Raises:
            CircuitBreakerError: If circuit is open
            Original exception: If the call fails
        """
        if not self._acquire():
            raise CircuitBreakerError(
                f"Circuit breaker '{self.name}' is {self.state.value.upper()}. "
                f"Retry in {self._remaining_timeout():.0f}s."
            )

        try:
            result = await func()
        except self.expected_exception as e:
            self.record_failure(e)
            raise
        except BaseException:
            self._release_trial()
            raise
        self.record_success()
        return result

    def get_state(self) -> Dict[str, Any]:
        """Get current circuit breaker state for monitoring"""
        with self._lock:
            return {
                "name": self.name,
                "state": self.state.value,
                "failure_count": self.failure_count,
                "success_count": self.success_count,
                "failure_threshold": self.failure_threshold,
                "remaining_timeout": self._remaining_timeout() if self.state == CircuitBreakerState.OPEN else 0,
            }

    def reset(self):
        """Manually reset the circuit breaker to CLOSED state"""
        with self._lock:
            self.state = CircuitBreakerState.CLOSED
            self.failure_count = 0
            self.last_failure_time = None
            self._trial_in_flight = False
            logger.info(f"CircuitBreaker '{self.name}' manually reset - state: CLOSED")


class RetryService:
    """
    Retry and circuit breaker policy shared by remote model calls.
    """

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        self.logger = get_logger(__name__)
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._sleep = sleep
        self._circuit_breakers: Dict[str, CircuitBreaker] = {}

    def create_circuit_breaker(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 60,
        expected_exception: tuple = RETRIABLE_ERRORS
    ) -> CircuitBreaker:
        """Create and register a new circuit breaker"""
        circuit_breaker = CircuitBreaker(
            failure_threshold=failure_threshold,
            recovery_timeout=recovery_timeout,
            expected_exception=expected_exception,
            name=name
        )
        self._circuit_breakers[name] = circuit_breaker
        return circuit_breaker

    def get_circuit_breaker(self, name: str) -> Optional[CircuitBreaker]:
        return self._circuit_breakers.get(name)

    async def retry_with_backoff(
        self,
        func: AsyncCallable,
        max_retries: Optional[int] = None,
        on_retry: Optional[Callable[[int, Exception], None]] = None
    ) -> Any:
        """
        Await ``func()`` with retry logic and exponential backoff

        Args:
            func: Zero-argument callable returning an awaitable
            max_retries: Maximum number of retry attempts (defaults to the service setting)
            on_retry: Optional callback for retry events (attempt_number, exception)

        Returns:
            Result of the first successful attempt

        Raises:
            The last exception if all retries are exhausted, or the first
            non-retriable exception.
        """
        retries = self.max_retries if max_retries is None else max_retries

        for attempt in range(retries + 1):  # +1 for initial attempt
            try:
                result = await func()
            except RETRIABLE_ERRORS as e:
                if attempt == retries:
                    self.logger.error(f"Remote call failed after {retries} retries: {e.__class__.__name__}")
                    raise

                delay = exponential_backoff_delay(attempt, self.base_delay, self.max_delay)
                self.logger.warning(
                    f"Attempt {attempt + 1} failed ({e.__class__.__name__}), retrying in {delay:.2f}s"
                )
                if on_retry:
                    on_retry(attempt + 1, e)
                await self._sleep(delay)
                continue
            except NON_RETRIABLE_ERRORS as e:
                self.logger.warning(f"Non-retriable error encountered: {e.__class__.__name__}")
                raise

            if attempt > 0:
                self.logger.info(f"Remote call succeeded after {attempt} retries")
            return result

    async def retry_with_circuit_breaker(
        self,
        func: AsyncCallable,
        circuit_breaker: Optional[CircuitBreaker] = None,
        max_retries: Optional[int] = None,
        on_retry: Optional[Callable[[int, Exception], None]] = None
    ) -> Any:
        """
        Await ``func()`` with both retry logic and circuit breaker protection

        Raises:
            CircuitBreakerError: If circuit breaker is open (never retried)
            The last exception if all retries are exhausted
        """
        breaker = circuit_breaker or self.get_openai_circuit_breaker()

        async def guarded():
            return await breaker.execute(func)

        return await self.retry_with_backoff(guarded, max_retries=max_retries, on_retry=on_retry)

    def get_openai_circuit_breaker(self) -> CircuitBreaker:
        """Get or create the OpenAI circuit breaker"""
        if "openai" not in self._circuit_breakers:
            self._circuit_breakers["openai"] = CircuitBreaker(name="OpenAI_API")
        return self._circuit_breakers["openai"]


# Global retry service instance
_retry_service: Optional[RetryService] = None


def get_retry_service() -> RetryService:
    """Get the global retry service instance, configured from the app config"""
    global _retry_service
    if _retry_service is None:
        from config.app_config import get_config

        resilience = get_config().resilience
        _retry_service = RetryService(
            max_retries=resilience.max_retries,
            base_delay=resilience.base_delay,
            max_delay=resilience.max_delay,
        )
        _retry_service._circuit_breakers["openai"] = CircuitBreaker(
            failure_threshold=resilience.failure_threshold,
            recovery_timeout=resilience.recovery_timeout,
            name="OpenAI_API"
        )
    return _retry_service
