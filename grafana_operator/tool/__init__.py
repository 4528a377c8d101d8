"""Command line tool for grafana-operator."""
