"""
Command-line interface for Bequalize.

Replays recorded sensor streams (JSON lines, one SensorSample per line)
through the processing core: one-shot analysis, live-monitoring replay,
pre/post comparison, longitudinal trends and config management.
"""

import json
import logging
import tomllib

from pathlib import Path
from typing import Any

import click

from pydantic import ValidationError

from bequalize import __version__
from bequalize.analysis.breathing_feedback import BreathingFeedbackManager
from bequalize.analysis.comparison import SessionComparator
from bequalize.analysis.feature_vector import build_feature_vector
from bequalize.analysis.fusion import AVAILABLE_METHODS, OrientationFusion
from bequalize.analysis.postural import PosturalFeatureExtractor
from bequalize.analysis.realtime import RealTimeSlidingProcessor
from bequalize.analysis.respiratory import RespiratorySignalProcessor
from bequalize.analysis.types import OrientationEstimate, RealTimeInsights
from bequalize.config import (
    PROCESSING_SECTION,
    ProcessingConfig,
    get_config_path,
    load_config,
    load_processing_config,
    set_processing_value,
    unset_processing_value,
)
from bequalize.constants import ExerciseType, TestType
from bequalize.logging_config import setup_logging
from bequalize.types import SensorSample

logger = logging.getLogger(__name__)

EXERCISE_CHOICES = click.Choice([e.value for e in ExerciseType])
METHOD_CHOICES = click.Choice(list(AVAILABLE_METHODS))


# ============================================================================
# Helpers
# ============================================================================


def load_samples(path: Path) -> list[SensorSample]:
    """
    Read a JSON-lines sample file.

    Blank lines are skipped.

    Raises:
        click.ClickException: If a line is not a valid sample or the file is empty
    """
    samples: list[SensorSample] = []
    with open(path, encoding="utf-8") as f:
        for line_number, line in enumerate(f, start=1):
            if not line.strip():
                continue
            try:
                samples.append(SensorSample.model_validate_json(line))
            except ValidationError as e:
                raise click.ClickException(
                    f"{path}:{line_number}: invalid sample: "
                    f"{e.errors()[0]['msg']}"
                ) from e

    if not samples:
        raise click.ClickException(f"No samples in {path}")
    logger.info(f"Loaded {len(samples)} samples from {path}")
    return samples


def _processing_config(**overrides: Any) -> ProcessingConfig:
    overrides = {k: v for k, v in overrides.items() if v is not None}
    try:
        return load_processing_config(**overrides)
    except ValidationError as e:
        raise click.ClickException(f"Invalid processing options: {e}") from e


def _orientations(
    samples: list[SensorSample], config: ProcessingConfig
) -> list[OrientationEstimate]:
    fusion = OrientationFusion(
        config.fusion_method,
        sample_rate=config.sample_rate,
        alpha=config.complementary_alpha,
        process_noise=config.kalman_process_noise,
        measurement_noise=config.kalman_measurement_noise,
    )
    return fusion.process(samples)


def _parse_value(raw: str) -> Any:
    """Interpret a CLI value as a TOML literal, falling back to a plain string."""
    try:
        return tomllib.loads(f"value = {raw}")["value"]
    except tomllib.TOMLDecodeError:
        return raw


def _echo_insights(insights: RealTimeInsights) -> None:
    progress = insights.exercise_progress
    click.echo(
        f"[{insights.timestamp / 1000:7.2f}s] {insights.state.value:<15} "
        f"stability={insights.current_stability:.2f} "
        f"breathing={insights.breathing_quality:.2f} "
        f"confidence={insights.confidence:.2f} "
        f"progress={progress.completion_percentage:.0f}%"
    )
    if insights.posture_alert:
        alert = insights.posture_alert
        click.echo(f"    ! {alert.severity.value.upper()}: {alert.message}")


# ============================================================================
# Commands
# ============================================================================


@click.group()
@click.version_option(__version__, prog_name="bequalize")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
def cli(verbose: bool) -> None:
    """Bequalize: balance and breathing analysis for recorded sensor streams"""
    setup_logging(verbose=verbose, console_format="%(levelname)s: %(message)s")


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--method", "-m", type=METHOD_CHOICES, help="Orientation fusion method")
@click.option("--age", type=float, default=50, show_default=True, help="Patient age")
@click.option(
    "--severity",
    type=click.IntRange(1, 5),
    default=1,
    show_default=True,
    help="Vestibular condition severity",
)
@click.option("--json", "as_json", is_flag=True, help="Print results as JSON")
def analyze(
    file: Path, method: str | None, age: float, severity: int, as_json: bool
) -> None:
    """Compute postural and respiratory metrics for a whole recording."""
    config = _processing_config(fusion_method=method)
    samples = load_samples(file)

    orientations = _orientations(samples, config)
    extractor = PosturalFeatureExtractor(
        sample_rate=config.sample_rate, min_samples=config.postural_min_samples
    )
    postural = extractor.extract(orientations)

    respiratory_processor = RespiratorySignalProcessor(
        sample_rate=config.sample_rate,
        buffer_seconds=config.respiratory_buffer_seconds,
        cutoff_hz=config.respiratory_cutoff_hz,
    )
    respiratory = respiratory_processor.process(s.stretch_value for s in samples)
    vector = build_feature_vector(postural, respiratory, age=age, severity=severity)

    if as_json:
        click.echo(
            json.dumps(
                {
                    "samples": len(samples),
                    "fusion_method": config.fusion_method.value,
                    "postural": postural.model_dump(mode="json"),
                    "respiratory": respiratory.model_dump(
                        mode="json", exclude={"filtered_signal"}
                    ),
                    "feature_vector": vector.values,
                },
                indent=2,
            )
        )
        return

    click.echo(f"Samples: {len(samples)} ({config.fusion_method.value} fusion)")
    if postural.sway_area_cm2 == 0:
        click.echo(
            f"Postural: not enough data (need {config.postural_min_samples} samples)"
        )
    else:
        click.echo("\nPostural")
        click.echo(f"  Sway area (95% ellipse):  {postural.sway_area_cm2:.2f} cm²")
        click.echo(f"  Sway path length:         {postural.sway_path_length_cm:.2f} cm")
        click.echo(f"  Sway velocity:            {postural.sway_velocity_cm_s:.2f} cm/s")
        click.echo(f"  AP / ML sway:             {postural.ap_sway:.2f} / {postural.ml_sway:.2f} cm")
        click.echo(f"  Dominant frequency:       {postural.dominant_frequency:.2f} Hz")
        click.echo(f"  Stability index:          {postural.stability_index:.2f}")

    if respiratory.breathing_rate_bpm == 0:
        click.echo("\nRespiratory: not enough data")
    else:
        click.echo("\nRespiratory")
        click.echo(f"  Breathing rate:           {respiratory.breathing_rate_bpm:.1f} bpm")
        click.echo(f"  Amplitude:                {respiratory.amplitude:.1f}")
        click.echo(f"  I:E ratio:                {respiratory.ie_ratio:.2f}")
        click.echo(f"  Regularity:               {respiratory.regularity:.2f}")
        click.echo(f"  Signal quality:           {respiratory.signal_quality:.2f}")


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--exercise",
    "-e",
    type=EXERCISE_CHOICES,
    default=ExerciseType.ROMBERG_EYES_OPEN.value,
    show_default=True,
    help="Exercise being performed",
)
@click.option("--method", "-m", type=METHOD_CHOICES, help="Orientation fusion method")
@click.option(
    "--every",
    type=click.IntRange(min=1),
    default=50,
    show_default=True,
    help="Print insights every N samples",
)
@click.option("--guided", is_flag=True, help="Score breathing against the guided pattern")
def monitor(
    file: Path, exercise: str, method: str | None, every: int, guided: bool
) -> None:
    """Replay a recording through the real-time sliding processor."""
    config = _processing_config(fusion_method=method)
    samples = load_samples(file)

    processor = RealTimeSlidingProcessor(config)
    processor.start_exercise(exercise)

    feedback_manager = BreathingFeedbackManager() if guided else None
    if feedback_manager is not None:
        pattern = feedback_manager.start_session(
            exercise, now_s=samples[0].timestamp / 1000
        )
        click.echo(f"Guided pattern: {pattern.name} ({pattern.target_rate_bpm:g} bpm)")

    for index, insights in enumerate(processor.process_stream(samples), start=1):
        if index % every != 0:
            continue
        _echo_insights(insights)
        if feedback_manager is not None and insights.respiratory_metrics is not None:
            feedback = feedback_manager.process(
                insights.respiratory_metrics, now_s=insights.timestamp / 1000
            )
            if feedback is not None:
                click.echo(f"    breathing: {feedback.message}")

    processor.stop_exercise()
    latest = processor.latest_insights
    metrics = processor.processing_metrics()

    click.echo("\nProcessing")
    click.echo(f"  Feature passes:     {metrics.passes_completed}")
    click.echo(f"  Buffer utilization: {metrics.buffer_utilization:.0%}")
    click.echo(f"  Data quality:       {metrics.data_quality:.2f}")
    click.echo(f"  Sampling rate:      {metrics.sampling_rate_hz:.1f} Hz")
    click.echo(f"  Last pass latency:  {metrics.processing_latency_ms:.2f} ms")

    if latest is not None and latest.recommendations:
        click.echo("\nRecommendations")
        for recommendation in latest.recommendations:
            click.echo(f"  - {recommendation}")

    if feedback_manager is not None:
        feedback_manager.stop_session()
        stats = feedback_manager.statistics(now_s=samples[-1].timestamp / 1000)
        if stats is not None:
            click.echo("\nGuided breathing")
            click.echo(f"  Feedback updates:   {stats.total_feedback}")
            click.echo(f"  On target:          {stats.on_target_percentage:.0f}%")
            click.echo(f"  Avg rate deviation: {stats.average_rate_deviation_bpm:.1f} bpm")


@cli.command()
@click.argument("pre", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("post", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--user", "-u", default="default", show_default=True, help="User id")
@click.option(
    "--exercise",
    "-e",
    type=EXERCISE_CHOICES,
    default=ExerciseType.ROMBERG_EYES_OPEN.value,
    show_default=True,
    help="Exercise performed in both recordings",
)
@click.option("--method", "-m", type=METHOD_CHOICES, help="Orientation fusion method")
def compare(pre: Path, post: Path, user: str, exercise: str, method: str | None) -> None:
    """Compare a pre-intervention recording against a post-intervention one."""
    config = _processing_config(fusion_method=method)
    comparator = SessionComparator(config)

    pre_session = comparator.create_session(
        user, exercise, TestType.PRE, _orientations(load_samples(pre), config)
    )
    post_session = comparator.create_session(
        user, exercise, TestType.POST, _orientations(load_samples(post), config)
    )
    result = comparator.compare_sessions(pre_session.session_id, post_session.session_id)

    click.echo(f"Pre:    {pre_session.area_cm2:.2f} cm²")
    click.echo(f"Post:   {post_session.area_cm2:.2f} cm²")
    click.echo(
        f"Change: {result.area_change_cm2:+.2f} cm² ({result.percent_change:+.1f}%)"
    )
    click.echo(f"Result: {result.category.value}\n")
    click.echo(result.interpretation_text)
    click.echo("\nRecommendations")
    for recommendation in result.recommendations:
        click.echo(f"  - {recommendation}")


@cli.command()
@click.argument(
    "files",
    nargs=-1,
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.option("--user", "-u", default="default", show_default=True, help="User id")
@click.option(
    "--exercise",
    "-e",
    type=EXERCISE_CHOICES,
    default=ExerciseType.ROMBERG_EYES_OPEN.value,
    show_default=True,
    help="Exercise performed in every recording",
)
@click.option("--method", "-m", type=METHOD_CHOICES, help="Orientation fusion method")
def trend(files: tuple[Path, ...], user: str, exercise: str, method: str | None) -> None:
    """Longitudinal progress over recordings given oldest first."""
    config = _processing_config(fusion_method=method)
    comparator = SessionComparator(config)

    for index, path in enumerate(files):
        session = comparator.create_session(
            user,
            exercise,
            TestType.PRE if index == 0 else TestType.POST,
            _orientations(load_samples(path), config),
        )
        click.echo(f"{path.name}: {session.area_cm2:.2f} cm²")

    progress = comparator.longitudinal_progress(user)
    click.echo(f"\nTrend:          {progress.trend.value}")
    click.echo(f"Average area:   {progress.average_area:.2f} cm²")
    click.echo(f"Progress score: {progress.progress_score}/100")
    click.echo("\nInsights")
    for insight in progress.insights:
        click.echo(f"  - {insight}")


# ============================================================================
# Config
# ============================================================================


@cli.group()
def config() -> None:
    """Configuration management commands."""
    pass


@config.command("show")
def show_config_cmd() -> None:
    """Show config file overrides and the effective processing settings."""
    config_path = get_config_path()
    if config_path.exists():
        click.echo(f"Config file: {config_path}\n")
        config_data = load_config()
        for section, values in config_data.items():
            if not isinstance(values, dict):
                continue
            click.echo(f"  [{section}]")
            for key, value in values.items():
                click.echo(f"    {key} = {value!r}")
        click.echo()
    else:
        click.echo(f"No config file: {config_path}\n")

    click.echo("Effective processing settings:")
    for key, value in load_processing_config().model_dump(mode="json").items():
        click.echo(f"  {key} = {value}")


@config.command("set")
@click.argument("key")
@click.argument("value")
def set_config_cmd(key: str, value: str) -> None:
    """Override a processing setting, e.g. 'config set fusion_method kalman'."""
    try:
        set_processing_value(key, _parse_value(value))
    except KeyError:
        available = ", ".join(ProcessingConfig.model_fields)
        raise click.ClickException(
            f"Unknown setting '{key}'. Available: {available}"
        ) from None
    except ValidationError as e:
        raise click.ClickException(
            f"Invalid value for {key}: {e.errors()[0]['msg']}"
        ) from e

    click.echo(f"✓ [{PROCESSING_SECTION}] {key} = {value}")
    click.echo(f"  Config: {get_config_path()}")


@config.command("unset")
@click.argument("key")
def unset_config_cmd(key: str) -> None:
    """Remove a processing override."""
    section = load_config().get(PROCESSING_SECTION, {})
    if key not in section:
        click.echo(f"No override for {key}.")
        return
    unset_processing_value(key)
    click.echo(f"✓ Removed override: {key}")
