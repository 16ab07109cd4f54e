"""Meeting orchestration: stages, budget, scheduling and the run loop."""
