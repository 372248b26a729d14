"""Unit tests for the Jinja2 report renderer."""

import pytest

from jinja2 import TemplateNotFound

from bequalize.analysis.reporting import ReportRenderer


@pytest.fixture
def renderer():
    return ReportRenderer()


class TestReportRenderer:
    def test_lists_bundled_templates(self, renderer):
        assert renderer.list_templates() == [
            "comparison/interpretation.jinja2",
            "longitudinal/insights.jinja2",
        ]

    def test_missing_template(self, renderer):
        with pytest.raises(TemplateNotFound, match="nope.jinja2"):
            renderer.render("nope.jinja2")

    def test_render_lines_drops_blank_lines(self, renderer):
        lines = renderer.render_lines(
            "longitudinal/insights.jinja2",
            session_count=2,
            average_area=12.0,
            trend="stable",
            progress_score=70,
            best_area=None,
            worst_area=None,
            exercise_type_count=1,
            comparison_count=0,
        )

        assert lines == [
            "Analyzed 2 test sessions over time period.",
            "Average sway area: 12.0 cm².",
            "Balance stability has remained stable over time.",
            "Progress score: 70/100.",
        ]

    def test_custom_templates_dir(self, tmp_path):
        (tmp_path / "note.jinja2").write_text("Area {{ area }} cm²\n")

        renderer = ReportRenderer(tmp_path)

        assert renderer.render_paragraph("note.jinja2", area=14) == "Area 14 cm²"
