# ================================================================================
# Wait Helpers Module
# ================================================================================
#
# This module provides the retry-with-timeout loop used by readiness checks.
# It is the only place in the harness where retries happen.
#
# Key Features:
#   - Exponential backoff with jitter
#   - Configurable polling intervals
#   - Named wait scenarios
#   - Timeout management with last result / last error reporting
#   - Allure integration for step reporting
#
# Usage:
#   result = wait_with_backoff(check_function, scenario="bolt_ready")
#   result = wait_with_backoff(check_function, config=WaitConfig(timeout=30))
#
# ================================================================================

import time
import random
from typing import Callable, Dict, Optional, Tuple, TypeVar
from dataclasses import dataclass, replace

import allure
from loguru import logger


T = TypeVar('T')


@dataclass
class WaitConfig:
    """
    Configuration for wait operations.

    Attributes:
        initial_interval: Initial wait interval in seconds
        multiplier: Multiplier for exponential backoff
        max_interval: Maximum interval between attempts
        timeout: Total timeout in seconds
        jitter: Add random jitter to prevent thundering herd
    """
    initial_interval: float = 1.0
    multiplier: float = 2.0
    max_interval: float = 30.0
    timeout: float = 120.0
    jitter: bool = True

    def with_timeout(self, timeout: float) -> "WaitConfig":
        """Copy of this configuration with a different total timeout."""
        return replace(self, timeout=timeout)


# Pre-configured wait strategies for common scenarios
WAIT_SCENARIOS: Dict[str, WaitConfig] = {
    # Default configuration
    "default": WaitConfig(),

    # Fast operations (local sockets, already-running services)
    "fast": WaitConfig(
        initial_interval=0.5,
        multiplier=1.5,
        max_interval=5.0,
        timeout=30.0
    ),

    # Database server start-up; first boot of an enterprise image is slow
    "bolt_ready": WaitConfig(
        initial_interval=1.0,
        multiplier=1.5,
        max_interval=5.0,
        timeout=90.0
    ),
    "http_ready": WaitConfig(
        initial_interval=1.0,
        multiplier=1.5,
        max_interval=5.0,
        timeout=90.0
    ),

    # Port mapping becomes visible shortly after `up -d` returns
    "port_mapping": WaitConfig(
        initial_interval=0.5,
        multiplier=2.0,
        max_interval=2.0,
        timeout=15.0
    ),
}


class WaitTimeoutError(Exception):
    """Raised when a wait operation times out."""

    def __init__(
        self,
        message: str,
        last_result: object = None,
        last_error: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.last_result = last_result
        self.last_error = last_error


def get_wait_config(scenario: str) -> WaitConfig:
    """
    Get wait configuration for a specific scenario.

    Args:
        scenario: Scenario name (e.g., "bolt_ready", "fast")

    Returns:
        WaitConfig for the scenario, or default if not found
    """
    return WAIT_SCENARIOS.get(scenario, WAIT_SCENARIOS["default"])


def calculate_next_interval(
    current_interval: float,
    config: WaitConfig
) -> float:
    """
    Calculate the next wait interval with exponential backoff and jitter.

    Args:
        current_interval: Current interval in seconds
        config: Wait configuration

    Returns:
        Next interval in seconds
    """
    next_interval = min(
        current_interval * config.multiplier,
        config.max_interval
    )

    if config.jitter:
        # Add +/- 25% jitter
        jitter_factor = 0.75 + (random.random() * 0.5)
        next_interval = next_interval * jitter_factor

    return next_interval


def wait_with_backoff(
    check_fn: Callable[[], Tuple[bool, T]],
    scenario: str = "default",
    description: str = "Waiting for condition",
    config: WaitConfig = None,
    error_cls: type = WaitTimeoutError,
) -> T:
    """
    Wait for a condition with exponential backoff.

    Args:
        check_fn: Function that returns (success: bool, result: T)
        scenario: Predefined scenario name for configuration
        description: Human-readable description for logging
        config: Optional custom WaitConfig (overrides scenario)
        error_cls: WaitTimeoutError subclass raised on timeout

    Returns:
        Result from check_fn when successful

    Raises:
        WaitTimeoutError: If timeout is reached without success

    Example:
        def check_port():
            version = bolt_handshake(host, port)
            return True, version

        version = wait_with_backoff(
            check_port,
            scenario="bolt_ready",
            description="Waiting for Bolt on localhost:7687"
        )
    """
    if config is None:
        config = get_wait_config(scenario)

    start_time = time.monotonic()
    current_interval = config.initial_interval
    attempt = 0
    last_result = None
    last_error: Optional[BaseException] = None

    logger.info(
        f"Starting wait: {description} "
        f"(timeout={config.timeout}s, scenario={scenario})"
    )

    with allure.step(f"Waiting with backoff: {description}"):
        while True:
            elapsed = time.monotonic() - start_time

            if elapsed >= config.timeout:
                error_msg = (
                    f"Timeout after {elapsed:.1f}s waiting for: {description}. "
                    f"Last result: {last_result}, Last error: {last_error}"
                )
                logger.error(error_msg)
                raise error_cls(error_msg, last_result=last_result, last_error=last_error)

            attempt += 1

            try:
                success, result = check_fn()
                last_result = result

                if success:
                    logger.info(
                        f"Wait successful after {attempt} attempts "
                        f"({elapsed:.1f}s): {description}"
                    )
                    return result

                logger.debug(
                    f"Attempt {attempt}: condition not met. "
                    f"Result: {result}. Waiting {current_interval:.1f}s..."
                )

            except Exception as e:
                last_error = e
                logger.debug(
                    f"Attempt {attempt} failed with error: {e}. "
                    f"Waiting {current_interval:.1f}s..."
                )

            # Never sleep past the deadline
            remaining = config.timeout - (time.monotonic() - start_time)
            time.sleep(max(0.0, min(current_interval, remaining)))
            current_interval = calculate_next_interval(current_interval, config)


__all__ = [
    "WAIT_SCENARIOS",
    "WaitConfig",
    "WaitTimeoutError",
    "calculate_next_interval",
    "get_wait_config",
    "wait_with_backoff",
]
