"""Pydantic schemas for persisted templates and live scoring output."""

from repcoach.schemas.template import (
    ExerciseTemplateSchema,
    LearnedStateSchema,
    StateTransitionSchema,
    template_to_document,
    template_from_document,
    template_to_json,
    template_from_json,
)
from repcoach.schemas.rep_error import (
    AngleErrorSchema,
    RepErrorSchema,
    RepErrorSummarySchema,
)

__all__ = [
    "ExerciseTemplateSchema",
    "LearnedStateSchema",
    "StateTransitionSchema",
    "template_to_document",
    "template_from_document",
    "template_to_json",
    "template_from_json",
    "AngleErrorSchema",
    "RepErrorSchema",
    "RepErrorSummarySchema",
]
