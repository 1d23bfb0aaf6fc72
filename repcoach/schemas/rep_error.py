"""Rep error schemas."""

from typing import Dict, List, Optional
from pydantic import BaseModel, Field

from repcoach.cv.rep_error_scorer import ErrorTrend


class AngleErrorSchema(BaseModel):
    expected: float
    actual: float
    absolute_error: float
    percent_error: float

    class Config:
        from_attributes = True


class RepErrorSchema(BaseModel):
    """Schema for the form error of one counted rep."""
    rep_number: int = Field(..., ge=1)
    timestamp: float
    per_angle_error: Dict[str, AngleErrorSchema]
    overall_error: float = Field(..., ge=0)
    form_score: float = Field(..., ge=0, le=100)
    matched_state_name: str

    class Config:
        from_attributes = True


class RepErrorSummarySchema(BaseModel):
    """Schema for a session's rep error summary."""
    rep_errors: List[RepErrorSchema] = Field(default_factory=list)
    average_error: float = 0.0
    best_rep: int = 0
    worst_rep: int = 0
    error_trend: str = ErrorTrend.STABLE
    common_mistakes: List[str] = Field(default_factory=list)

    class Config:
        from_attributes = True

    @property
    def rep_count(self) -> int:
        return len(self.rep_errors)

    def worst_error(self) -> Optional[RepErrorSchema]:
        """The rep with the highest overall error, if any."""
        for rep in self.rep_errors:
            if rep.rep_number == self.worst_rep:
                return rep
        return None
