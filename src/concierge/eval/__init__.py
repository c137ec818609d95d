"""Evaluation harness for concierge retrieval and routing."""

from .cli import EvaluationError, EvaluationResult, Scenario, evaluate_scenario, load_scenarios, main, run_evaluation

__all__ = [
    "EvaluationError",
    "EvaluationResult",
    "Scenario",
    "evaluate_scenario",
    "load_scenarios",
    "main",
    "run_evaluation",
]
