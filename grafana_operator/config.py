"""Configuration objects for grafana-operator."""

from dataclasses import dataclass

REQUEUE_DELAY_SECONDS = 10.0
DEFAULT_CLIENT_TIMEOUT_SECONDS = 5


@dataclass
class GrafanaControllerConfig:
    """Configuration for the GrafanaReconciler."""

    requeue_delay: float = REQUEUE_DELAY_SECONDS
    """Delay before the next cycle after every handled outcome."""

    default_client_timeout: int = DEFAULT_CLIENT_TIMEOUT_SECONDS
    """Client timeout published when the object does not set a valid one."""


@dataclass
class SchedulerConfig:
    """Configuration for the ReconcileScheduler."""

    error_backoff_base: float = 1.0
    """First retry delay after a cycle raised an error."""

    error_backoff_max: float = 60.0
    """Upper bound for the retry delay after repeated errors."""
