"""
Clinical summary text rendered from Jinja2 templates.

The pre/post interpretation paragraph and the longitudinal insight list
live under templates/ beside this module, so clinicians can adjust wording
without touching the comparison logic.
"""

from pathlib import Path
from typing import Any

from jinja2 import FileSystemLoader, Template, TemplateNotFound, select_autoescape
from jinja2.sandbox import SandboxedEnvironment

TEMPLATE_SUFFIX = ".jinja2"


class ReportRenderer:
    """Turns comparison and progress figures into report text."""

    def __init__(self, templates_dir: Path | None = None):
        """
        Args:
            templates_dir: Directory searched for *.jinja2 files.
                Defaults to the templates bundled with this package.
        """
        self.templates_dir = Path(templates_dir or Path(__file__).parent / "templates")

        # Plain-text reports, so autoescape only applies to markup templates
        self.env = SandboxedEnvironment(
            loader=FileSystemLoader(self.templates_dir),
            autoescape=select_autoescape(
                enabled_extensions=("html", "xml"),
                default_for_string=False,
                default=False,
            ),
            trim_blocks=True,
            lstrip_blocks=True,
        )

    def _load(self, template_name: str) -> Template:
        try:
            return self.env.get_template(template_name)
        except TemplateNotFound as e:
            raise TemplateNotFound(
                f"No report template '{template_name}' under {self.templates_dir}"
            ) from e

    def render(self, template_name: str, **context: Any) -> str:
        """
        Render a report template verbatim.

        Args:
            template_name: Path relative to templates_dir,
                e.g. "comparison/interpretation.jinja2"
            **context: Values referenced by the template

        Raises:
            TemplateNotFound: The template is not in templates_dir
        """
        return self._load(template_name).render(**context)

    def render_paragraph(self, template_name: str, **context: Any) -> str:
        """Render as one paragraph with runs of whitespace collapsed."""
        return " ".join(self.render(template_name, **context).split())

    def render_lines(self, template_name: str, **context: Any) -> list[str]:
        """Render one insight per line, skipping lines left empty by conditionals."""
        lines = (line.strip() for line in self.render(template_name, **context).splitlines())
        return [line for line in lines if line]

    def list_templates(self) -> list[str]:
        """Sorted template names, relative to templates_dir."""
        return sorted(
            path.relative_to(self.templates_dir).as_posix()
            for path in self.templates_dir.rglob(f"*{TEMPLATE_SUFFIX}")
        )
