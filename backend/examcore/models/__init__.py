"""Exam Session Engine - Models initialization."""
from examcore.models.attempt import AttemptRecord
from examcore.models.test_definition import TestDefinitionRecord


__all__ = [
    "AttemptRecord",
    "TestDefinitionRecord",
]
