"""Data model, cluster version helpers, availability checks, Alertmanager silences, predicates and metrics for managed cluster upgrades."""

__version__ = "0.1.0"