"""Tests for the grafana-operator command line tool."""
