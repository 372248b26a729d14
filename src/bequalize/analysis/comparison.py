"""
Pre/post test comparison and longitudinal progress tracking.

This module builds TestSession records from orientation windows, recomputes
the full confidence ellipse of each session's sway path, classifies pre/post
changes in ellipse area against clinical thresholds (normal 10-20 cm²,
pathological above 50 cm²) and summarizes trends across a user's sessions.
A reduction in sway area is an improvement.
"""

import logging
import time
import uuid

from collections import defaultdict
from collections.abc import Sequence

import numpy as np

from bequalize.analysis.fusion import orientations_from_accelerometer
from bequalize.analysis.postural import (
    PosturalFeatureExtractor,
    confidence_ellipse,
    cop_trajectory,
)
from bequalize.analysis.reporting import ReportRenderer
from bequalize.analysis.types import OrientationEstimate, SwayDataPoint
from bequalize.config import ProcessingConfig
from bequalize.constants import (
    ExerciseType,
    ImprovementCategory,
    TestType,
    TrendDirection,
)
from bequalize.constants import ClinicalConstants as CC
from bequalize.models.session import (
    LongitudinalProgress,
    SessionComparison,
    TestSession,
)
from bequalize.types import SensorSample

logger = logging.getLogger(__name__)

__all__ = [
    "SessionComparator",
    "SessionNotFoundError",
    "categorize_change",
    "percent_change",
    "progress_score",
    "trend_direction",
]

INTERPRETATION_TEMPLATE = "comparison/interpretation.jinja2"
INSIGHTS_TEMPLATE = "longitudinal/insights.jinja2"

RECOMMENDATIONS: dict[ImprovementCategory, list[str]] = {
    ImprovementCategory.SIGNIFICANT_IMPROVEMENT: [
        "Excellent progress! Continue with current exercise protocol.",
        "Consider progressing to more challenging balance exercises.",
    ],
    ImprovementCategory.IMPROVEMENT: [
        "Good improvement shown. Maintain consistency with exercises.",
        "Monitor progress with regular assessments.",
    ],
    ImprovementCategory.STABLE: [
        "Balance stability maintained. Continue current protocol.",
        "Consider exercise intensity adjustments if targeting improvement.",
    ],
    ImprovementCategory.DETERIORATION: [
        "Some decline in balance stability observed.",
        "Review exercise technique and consider modifications.",
        "Monitor fatigue levels and ensure adequate rest.",
    ],
    ImprovementCategory.SIGNIFICANT_DETERIORATION: [
        "Significant decline in balance stability requires attention.",
        "Consider consulting with healthcare provider.",
        "Review exercise protocol and potential underlying factors.",
    ],
}

FALL_PREVENTION_RECOMMENDATION = (
    "Consider fall prevention strategies and environmental modifications."
)


class SessionNotFoundError(KeyError):
    """Raised when a session id or user has no recorded sessions."""


# ============================================================================
# Classification Helpers
# ============================================================================


def percent_change(pre_area: float, post_area: float) -> float:
    """Relative area change in percent; 0 when the pre area is not positive."""
    if pre_area <= 0:
        return 0.0
    return (post_area - pre_area) / pre_area * 100.0


def categorize_change(
    percent: float,
    significant: float = CC.SIGNIFICANT_CHANGE_PERCENT,
    moderate: float = CC.MODERATE_CHANGE_PERCENT,
) -> ImprovementCategory:
    """
    Map a percentage area change to a clinical category.

    Example:
        >>> categorize_change(-33.3)
        <ImprovementCategory.SIGNIFICANT_IMPROVEMENT: 'significant_improvement'>
    """
    if percent <= -significant:
        return ImprovementCategory.SIGNIFICANT_IMPROVEMENT
    if percent <= -moderate:
        return ImprovementCategory.IMPROVEMENT
    if percent >= significant:
        return ImprovementCategory.SIGNIFICANT_DETERIORATION
    if percent >= moderate:
        return ImprovementCategory.DETERIORATION
    return ImprovementCategory.STABLE


def trend_direction(
    areas: Sequence[float],
    window: int = CC.TREND_WINDOW,
    change_fraction: float = CC.TREND_CHANGE_FRACTION,
) -> TrendDirection:
    """
    Compare the mean of the most recent areas with the earliest ones.

    Both windows hold min(window, n // 2) sessions so they never overlap.
    Fewer than 3 sessions always read as stable.

    Args:
        areas: Ellipse areas, oldest first
        window: Maximum sessions per window
        change_fraction: Relative change needed to leave "stable"

    Returns:
        TrendDirection
    """
    n = len(areas)
    if n < CC.MIN_TREND_SESSIONS:
        return TrendDirection.STABLE

    k = max(1, min(window, n // 2))
    older = float(np.mean(areas[:k]))
    recent = float(np.mean(areas[-k:]))
    if older <= 0:
        return TrendDirection.STABLE

    change = (recent - older) / older
    if change < -change_fraction:
        return TrendDirection.IMPROVING
    if change > change_fraction:
        return TrendDirection.DECLINING
    return TrendDirection.STABLE


def progress_score(average_area: float, normal_max: float = CC.NORMAL_AREA_MAX_CM2) -> int:
    """0-100 score, 100 - (avg/normal_max)·50, clamped and rounded."""
    score = 100.0 - (average_area / normal_max) * CC.PROGRESS_SCALE
    return int(round(float(np.clip(score, 0.0, 100.0))))


# ============================================================================
# Comparator
# ============================================================================


class SessionComparator:
    """
    Holds a user's test sessions in memory and compares them.

    Example:
        >>> comparator = SessionComparator()
        >>> pre = comparator.create_session("u1", ExerciseType.ROMBERG_EYES_OPEN,
        ...                                 TestType.PRE, pre_orientations)
        >>> post = comparator.create_session("u1", ExerciseType.ROMBERG_EYES_OPEN,
        ...                                  TestType.POST, post_orientations)
        >>> result = comparator.compare_sessions(pre.session_id, post.session_id)
        >>> print(result.category.value, f"{result.percent_change:+.1f}%")
    """

    def __init__(
        self,
        config: ProcessingConfig | None = None,
        extractor: PosturalFeatureExtractor | None = None,
        renderer: ReportRenderer | None = None,
    ):
        self.config = config or ProcessingConfig()
        self.extractor = extractor or PosturalFeatureExtractor(
            sample_rate=self.config.sample_rate,
            min_samples=self.config.postural_min_samples,
        )
        self.renderer = renderer or ReportRenderer()
        self._sessions: dict[str, TestSession] = {}
        self._comparisons: dict[str, list[SessionComparison]] = defaultdict(list)
        logger.info("SessionComparator initialized")

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def create_session(
        self,
        user_id: str,
        exercise_type: ExerciseType | str,
        test_type: TestType | str,
        orientations: Sequence[OrientationEstimate],
        *,
        condition: str = "",
        session_id: str | None = None,
        timestamp: int | None = None,
        duration_s: float | None = None,
    ) -> TestSession:
        """
        Build and register a session from its orientation window.

        Args:
            user_id: Owner of the session
            exercise_type: Exercise performed
            test_type: pre or post
            orientations: Orientation estimates, oldest first
            condition: Free-text test condition
            session_id: Explicit id; generated when omitted
            timestamp: Recording start (ms); first estimate's timestamp
                when omitted
            duration_s: Recording length; derived from timestamps when omitted

        Returns:
            The registered TestSession
        """
        exercise = ExerciseType(exercise_type)
        test = TestType(test_type)

        if timestamp is None:
            timestamp = orientations[0].timestamp if orientations else int(time.time() * 1000)
        if duration_s is None:
            duration_s = self._duration(orientations)
        if session_id is None:
            session_id = f"{timestamp}_{test.value}_{uuid.uuid4().hex[:8]}"

        x_cm, y_cm = cop_trajectory(orientations)
        x_mm, y_mm = x_cm * CC.MM_PER_CM, y_cm * CC.MM_PER_CM
        sway_path = [
            SwayDataPoint(x=float(x), y=float(y), timestamp=o.timestamp)
            for x, y, o in zip(x_mm, y_mm, orientations)
        ]
        ellipse = confidence_ellipse(x_mm, y_mm)
        features = self.extractor.extract(orientations)

        session = TestSession(
            session_id=session_id,
            user_id=user_id,
            exercise_type=exercise,
            test_type=test,
            condition=condition,
            timestamp=timestamp,
            duration_s=duration_s,
            sway_path=sway_path,
            confidence_ellipse=ellipse,
            postural_features=features,
            normalized_ellipse_area=ellipse.area_cm2 / CC.NORMALIZATION_AREA_CM2,
        )
        self.add_session(session)
        logger.info(
            f"Created {test.value} session {session_id} for {user_id}: "
            f"ellipse area {ellipse.area_cm2:.2f} cm²"
        )
        return session

    def create_session_from_samples(
        self,
        user_id: str,
        exercise_type: ExerciseType | str,
        test_type: TestType | str,
        samples: Sequence[SensorSample],
        **kwargs,
    ) -> TestSession:
        """Build a session from raw packets using accelerometer-only tilt."""
        return self.create_session(
            user_id,
            exercise_type,
            test_type,
            orientations_from_accelerometer(samples),
            **kwargs,
        )

    def _duration(self, orientations: Sequence[OrientationEstimate]) -> float:
        if len(orientations) < 2:
            return 0.0
        span_ms = orientations[-1].timestamp - orientations[0].timestamp
        if span_ms > 0:
            return span_ms / 1000.0
        return (len(orientations) - 1) / self.config.sample_rate

    def add_session(self, session: TestSession) -> None:
        """Register an already-built session (replacing any with the same id)."""
        self._sessions[session.session_id] = session

    def get_session(self, session_id: str) -> TestSession:
        """
        Look up a registered session.

        Raises:
            SessionNotFoundError: If no session has this id
        """
        try:
            return self._sessions[session_id]
        except KeyError:
            raise SessionNotFoundError(f"Session not found: {session_id}") from None

    def sessions_for(self, user_id: str) -> list[TestSession]:
        """A user's sessions, oldest first."""
        return sorted(
            (s for s in self._sessions.values() if s.user_id == user_id),
            key=lambda s: s.timestamp,
        )

    def comparisons_for(self, user_id: str) -> list[SessionComparison]:
        return list(self._comparisons.get(user_id, []))

    # ------------------------------------------------------------------
    # Comparison
    # ------------------------------------------------------------------

    def compare(self, pre: TestSession, post: TestSession) -> SessionComparison:
        """
        Classify the change in ellipse area between two sessions.

        Args:
            pre: Session before the intervention
            post: Session after the intervention

        Returns:
            SessionComparison with interpretation and recommendations
        """
        cfg = self.config
        pre_area, post_area = pre.area_cm2, post.area_cm2
        change = post_area - pre_area
        percent = percent_change(pre_area, post_area)
        category = categorize_change(percent, significant=cfg.significant_change_percent)

        interpretation = self.renderer.render_paragraph(
            INTERPRETATION_TEMPLATE,
            pre_area=pre_area,
            post_area=post_area,
            change=change,
            percent_change=percent,
            normal_min=cfg.normal_area_min_cm2,
            normal_max=cfg.normal_area_max_cm2,
            pathological=cfg.pathological_area_cm2,
        )

        recommendations = list(RECOMMENDATIONS[category])
        if post_area > cfg.pathological_area_cm2:
            recommendations.append(FALL_PREVENTION_RECOMMENDATION)

        logger.info(
            f"Compared {pre.session_id} -> {post.session_id}: "
            f"{change:+.2f} cm² ({percent:+.1f}%), {category.value}"
        )

        return SessionComparison(
            pre=pre,
            post=post,
            area_change_cm2=change,
            percent_change=percent,
            category=category,
            interpretation_text=interpretation,
            recommendations=recommendations,
            timestamp=int(time.time() * 1000),
        )

    def compare_sessions(self, pre_session_id: str, post_session_id: str) -> SessionComparison:
        """
        Compare two registered sessions and record the result for the user.

        Raises:
            SessionNotFoundError: If either id is unknown
        """
        pre = self.get_session(pre_session_id)
        post = self.get_session(post_session_id)
        comparison = self.compare(pre, post)
        self._comparisons[pre.user_id].append(comparison)
        return comparison

    # ------------------------------------------------------------------
    # Longitudinal
    # ------------------------------------------------------------------

    def longitudinal_progress(self, user_id: str) -> LongitudinalProgress:
        """
        Trend statistics over every session recorded for a user.

        Raises:
            SessionNotFoundError: If the user has no sessions
        """
        sessions = self.sessions_for(user_id)
        if not sessions:
            raise SessionNotFoundError(f"No sessions found for user: {user_id}")

        areas = [s.area_cm2 for s in sessions]
        average = float(np.mean(areas))
        trend = trend_direction(areas, window=self.config.trend_window)
        score = progress_score(average, self.config.normal_area_max_cm2)
        best = min(sessions, key=lambda s: s.area_cm2)
        worst = max(sessions, key=lambda s: s.area_cm2)
        comparisons = self.comparisons_for(user_id)

        insights = self.renderer.render_lines(
            INSIGHTS_TEMPLATE,
            session_count=len(sessions),
            average_area=average,
            trend=trend.value,
            progress_score=score,
            best_area=best.area_cm2,
            worst_area=worst.area_cm2,
            exercise_type_count=len({s.exercise_type for s in sessions}),
            comparison_count=len(comparisons),
        )

        return LongitudinalProgress(
            user_id=user_id,
            sessions=sessions,
            comparisons=comparisons,
            trend=trend,
            average_area=average,
            best_session=best,
            worst_session=worst,
            progress_score=score,
            insights=insights,
        )
