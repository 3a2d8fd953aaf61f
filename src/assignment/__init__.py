"""Per-student LLM variant assignment for A/B testing."""

from src.assignment.engine import AssignmentDecision, AssignmentEngine, decide_assignment
from src.assignment.store import InMemoryStudentRecordStore, StudentRecordStore
from src.assignment.variants import ABTestConfig, VariantSpec, load_ab_testing_config

__all__ = [
    "ABTestConfig",
    "AssignmentDecision",
    "AssignmentEngine",
    "InMemoryStudentRecordStore",
    "StudentRecordStore",
    "VariantSpec",
    "decide_assignment",
    "load_ab_testing_config",
]
