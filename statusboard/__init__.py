"""Statusboard: scheduled health checks for the third-party APIs a backend depends on."""
