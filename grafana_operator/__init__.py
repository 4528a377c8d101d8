"""
grafana-operator keeps Grafana instances converging toward their declared
state and publishes how to reach them to dependent controllers.
"""

__all__ = [
    "manifest",
    "store",
    "reconciler",
    "controller_state",
    "process_config",
    "exceptions",
    # Note this is exposed for CLI documentation, not to be used as a library
    "tool",
]
