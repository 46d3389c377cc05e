"""Step-by-step data-collection wizards."""
from .engine import FlowContext, FlowDefinition, FlowEngine, Step, StepResult
from .registry import build_flow_engine, FLOW_IDS

__all__ = [
    "FlowContext",
    "FlowDefinition",
    "FlowEngine",
    "Step",
    "StepResult",
    "build_flow_engine",
    "FLOW_IDS",
]
