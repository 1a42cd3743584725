"""
Stripe Client Initializer - lazy, cached, single-flight client loading.

Configuration problems fail immediately. Load failures are retried with
exponential backoff (base_delay * 2^(attempt-1)) up to max_attempts.
Concurrent callers share one in-flight load.
"""

import asyncio
from collections.abc import Awaitable, Callable

from structlog import get_logger

from app.exceptions import ConfigurationError, InitializationError
from app.observability.metrics import metrics
from app.services.analytics import AnalyticsTracker
from app.services.stripe_client import StripeHandle
from app.services.stripe_config import StripeConfigValidator

logger = get_logger(__name__)

HandleLoader = Callable[[], Awaitable[StripeHandle | None]]
Sleeper = Callable[[float], Awaitable[None]]

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY_SECONDS = 1.0


class StripeClientInitializer:
    """
    Owns the process-wide Stripe handle.

    The handle is created on first use and reused until reset().
    """

    def __init__(
        self,
        validator: StripeConfigValidator,
        analytics: AnalyticsTracker,
        loader: HandleLoader,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        base_delay: float = DEFAULT_BASE_DELAY_SECONDS,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")
        self.validator = validator
        self.analytics = analytics
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self._loader = loader
        self._sleep = sleep
        self._handle: StripeHandle | None = None
        self._pending: asyncio.Future[StripeHandle] | None = None
        self._attempts = 0

    @property
    def attempts(self) -> int:
        """Attempts used by the most recent load."""
        return self._attempts

    @property
    def is_initialized(self) -> bool:
        return self._handle is not None

    async def initialize(self) -> StripeHandle:
        """
        Return the Stripe handle, loading it if necessary.

        Raises:
            ConfigurationError: If Stripe configuration is invalid (not retried)
            InitializationError: If every load attempt failed
        """
        validation = self.validator.validate()
        if not validation.valid:
            metrics.record_error("ConfigurationError", "stripe_initialize")
            raise ConfigurationError(validation.errors)

        if self._handle is not None:
            return self._handle

        if self._pending is None:
            self._pending = asyncio.ensure_future(self._load_with_retry())
        pending = self._pending

        try:
            # shield: one cancelled waiter must not cancel the shared load
            handle = await asyncio.shield(pending)
        except Exception:
            if self._pending is pending:
                self._pending = None
            raise

        if self._pending is pending:
            self._handle = handle
            self._pending = None
        return handle

    async def probe(self) -> StripeHandle:
        """Load a fresh handle once, without retries or caching."""
        validation = self.validator.validate()
        if not validation.valid:
            raise ConfigurationError(validation.errors)

        handle = await self._loader()
        if handle is None:
            raise InitializationError(1, "Failed to initialize Stripe")
        return handle

    def reset(self) -> None:
        """Discard the cached handle and the retry counter."""
        self._handle = None
        self._pending = None
        self._attempts = 0
        logger.info("stripe_client_reset")

    async def _load_with_retry(self) -> StripeHandle:
        self._attempts = 0
        last_error: Exception | None = None

        while self._attempts < self.max_attempts:
            self._attempts += 1
            attempt = self._attempts
            try:
                handle = await self._loader()
                if handle is None:
                    raise InitializationError(attempt, "Failed to initialize Stripe")
            except Exception as exc:
                last_error = exc
                metrics.record_stripe_init_attempt(success=False)
                self.analytics.track_event(
                    "stripe_initialization_error",
                    error=str(exc),
                    attempt=attempt,
                )
                logger.warning(
                    "stripe_initialization_attempt_failed",
                    attempt=attempt,
                    max_attempts=self.max_attempts,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                if attempt < self.max_attempts:
                    await self._sleep(self.base_delay * 2 ** (attempt - 1))
                continue

            metrics.record_stripe_init_attempt(success=True)
            self.analytics.track_event("stripe_initialized", attempt=attempt)
            logger.info("stripe_initialized", attempt=attempt)
            return handle

        reason = str(last_error) if last_error else "unknown error"
        metrics.record_error("InitializationError", "stripe_initialize")
        self.analytics.track_event(
            "stripe_initialization_failed",
            error=reason,
            attempts=self._attempts,
        )
        logger.error("stripe_initialization_failed", attempts=self._attempts, error=reason)
        raise InitializationError(self._attempts, reason) from last_error
