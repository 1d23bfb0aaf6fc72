"""Exercise template documents."""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, field_validator

from repcoach.cv.state_learner import (
    AngleChange,
    AngleStats,
    ExerciseTemplate,
    LearnedState,
    StateOccurrence,
    StateTransition,
    TemplateMetadata,
)


class AngleStatsSchema(BaseModel):
    mean: float
    min: float
    max: float
    std_dev: float

    class Config:
        from_attributes = True


class StateOccurrenceSchema(BaseModel):
    start_time: float
    end_time: float
    duration: Optional[float] = None  # derived, written for readers of the document

    class Config:
        from_attributes = True


class LearnedStateSchema(BaseModel):
    """Schema for one learned state."""
    id: str
    name: str
    description: str = ""
    angle_stats: Dict[str, AngleStatsSchema]
    occurrences: List[StateOccurrenceSchema] = Field(..., min_length=1)
    representative_timestamp: float

    class Config:
        from_attributes = True


class AngleChangeSchema(BaseModel):
    start_angle: float
    end_angle: float
    delta: float

    class Config:
        from_attributes = True


class StateTransitionSchema(BaseModel):
    from_state_id: str
    to_state_id: str
    duration: float
    angle_changes: Dict[str, AngleChangeSchema] = Field(default_factory=dict)

    class Config:
        from_attributes = True


class TemplateMetadataSchema(BaseModel):
    detected_at: str
    video_length: float
    fps: float
    frame_count: int = 0

    class Config:
        from_attributes = True


class ExerciseTemplateSchema(BaseModel):
    """
    Persistable form of an ExerciseTemplate.

    Plain JSON-compatible document; converting back yields an equal template.
    """
    exercise_name: str
    exercise_type: str
    states: List[LearnedStateSchema] = Field(..., min_length=2)
    transitions: List[StateTransitionSchema] = Field(default_factory=list)
    canonical_state_sequence: List[str] = Field(default_factory=list)
    total_duration: float
    recommended_reps: int = Field(..., ge=1)
    confidence_score: float = Field(..., ge=0, le=100)
    metadata: Optional[TemplateMetadataSchema] = None
    angle_names: List[str] = Field(default_factory=list)

    class Config:
        from_attributes = True

    @field_validator("canonical_state_sequence")
    @classmethod
    def validate_sequence(cls, v: List[str], info) -> List[str]:
        states = info.data.get("states") or []
        ids = {s.id for s in states}
        unknown = [sid for sid in v if sid not in ids]
        if ids and unknown:
            raise ValueError(f"canonical_state_sequence references unknown states: {unknown}")
        return v

    @classmethod
    def from_template(cls, template: ExerciseTemplate) -> "ExerciseTemplateSchema":
        return cls.model_validate(template)

    def to_template(self) -> ExerciseTemplate:
        states = tuple(
            LearnedState(
                id=s.id,
                name=s.name,
                angle_stats={
                    name: AngleStats(mean=a.mean, min=a.min, max=a.max, std_dev=a.std_dev)
                    for name, a in s.angle_stats.items()
                },
                occurrences=tuple(
                    StateOccurrence(start_time=o.start_time, end_time=o.end_time)
                    for o in s.occurrences
                ),
                representative_timestamp=s.representative_timestamp,
                description=s.description,
            )
            for s in self.states
        )
        transitions = tuple(
            StateTransition(
                from_state_id=t.from_state_id,
                to_state_id=t.to_state_id,
                duration=t.duration,
                angle_changes={
                    name: AngleChange(start_angle=c.start_angle, end_angle=c.end_angle, delta=c.delta)
                    for name, c in t.angle_changes.items()
                },
            )
            for t in self.transitions
        )
        metadata = None
        if self.metadata is not None:
            metadata = TemplateMetadata(
                detected_at=self.metadata.detected_at,
                video_length=self.metadata.video_length,
                fps=self.metadata.fps,
                frame_count=self.metadata.frame_count,
            )

        return ExerciseTemplate(
            exercise_name=self.exercise_name,
            exercise_type=self.exercise_type,
            states=states,
            transitions=transitions,
            canonical_state_sequence=tuple(self.canonical_state_sequence),
            total_duration=self.total_duration,
            recommended_reps=self.recommended_reps,
            confidence_score=self.confidence_score,
            metadata=metadata,
            angle_names=tuple(self.angle_names),
        )


def template_to_document(template: ExerciseTemplate) -> Dict[str, Any]:
    """ExerciseTemplate -> JSON-compatible dict."""
    return ExerciseTemplateSchema.from_template(template).model_dump(mode="json")


def template_from_document(document: Dict[str, Any]) -> ExerciseTemplate:
    """JSON-compatible dict -> ExerciseTemplate (validated)."""
    return ExerciseTemplateSchema.model_validate(document).to_template()


def template_to_json(template: ExerciseTemplate, indent: Optional[int] = None) -> str:
    return ExerciseTemplateSchema.from_template(template).model_dump_json(indent=indent)


def template_from_json(data: str) -> ExerciseTemplate:
    return ExerciseTemplateSchema.model_validate_json(data).to_template()
