"""Pydantic models for test sessions and their comparisons."""

from pydantic import BaseModel, ConfigDict, Field

from bequalize.analysis.types import (
    ConfidenceEllipse,
    PosturalFeatures,
    SwayDataPoint,
)
from bequalize.constants import (
    ExerciseType,
    ImprovementCategory,
    TestType,
    TrendDirection,
)


class TestSession(BaseModel):
    """One completed balance recording, before or after an intervention."""

    __test__ = False  # keep pytest from collecting this model

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "session_id": "1718000000000_pre_romberg",
                "user_id": "patient-017",
                "exercise_type": "Romberg Test (Eyes Open)",
                "test_type": "pre",
                "condition": "firm surface",
                "timestamp": 1718000000000,
                "duration_s": 30.0,
            }
        },
    )

    session_id: str = Field(description="Unique session identifier")
    user_id: str = Field(description="Owner of the session")
    exercise_type: ExerciseType = Field(description="Exercise performed")
    test_type: TestType = Field(description="pre or post intervention")
    condition: str = Field(default="", description="Free-text test condition")

    # Timing
    timestamp: int = Field(description="Recording start (Unix ms)")
    duration_s: float = Field(ge=0, description="Recording duration (seconds)")

    # Geometry
    sway_path: list[SwayDataPoint] = Field(description="COP trajectory (mm)")
    confidence_ellipse: ConfidenceEllipse
    postural_features: PosturalFeatures
    normalized_ellipse_area: float = Field(
        ge=0, description="Ellipse area relative to the normal-range midpoint"
    )

    @property
    def area_cm2(self) -> float:
        """95% confidence ellipse area (cm²)."""
        return self.confidence_ellipse.area_cm2


class SessionComparison(BaseModel):
    """Pre/post change in sway area with its clinical reading."""

    model_config = ConfigDict(frozen=True)

    pre: TestSession
    post: TestSession
    area_change_cm2: float = Field(description="post - pre area (cm²)")
    percent_change: float = Field(description="Change relative to pre (%)")
    category: ImprovementCategory
    interpretation_text: str
    recommendations: list[str]
    timestamp: int = Field(description="When the comparison was made (Unix ms)")


class LongitudinalProgress(BaseModel):
    """Trend statistics over a user's full session history."""

    user_id: str
    sessions: list[TestSession] = Field(description="Oldest first")
    comparisons: list[SessionComparison] = Field(default_factory=list)
    trend: TrendDirection
    average_area: float = Field(ge=0, description="Mean ellipse area (cm²)")
    best_session: TestSession | None = Field(
        default=None, description="Session with the smallest area"
    )
    worst_session: TestSession | None = Field(
        default=None, description="Session with the largest area"
    )
    progress_score: int = Field(ge=0, le=100)
    insights: list[str] = Field(default_factory=list)
