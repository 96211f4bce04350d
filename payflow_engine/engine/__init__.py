"""Workflow execution engine: scheduling, input resolution, interpolation and orchestration."""
