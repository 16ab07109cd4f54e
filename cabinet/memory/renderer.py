"""Jinja2-based renderer for memory record bodies and context digests."""

from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, StrictUndefined

TEMPLATE_DIR = Path(__file__).parent / "templates"


def percent(value: float) -> str:
    return f"{value * 100:.0f}%"


class MemoryRenderer:
    """Render Markdown bodies from ``.md.j2`` templates."""

    def __init__(self, template_dir: str | Path = TEMPLATE_DIR):
        """Initialize renderer with template directory.

        Args:
            template_dir: Path to directory containing .md.j2 templates.
                          Defaults to the packaged templates.
        """
        self.template_dir = Path(template_dir)
        self.env = Environment(
            loader=FileSystemLoader(str(self.template_dir)),
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )
        self.env.filters["percent"] = percent

    def render(self, template_name: str, **context: Any) -> str:
        """Render one template.

        Args:
            template_name: Base name of template (without .md.j2)
            **context: Template variables

        Returns:
            Rendered Markdown string

        Raises:
            TemplateNotFound: If template file doesn't exist
        """
        template = self.env.get_template(f"{template_name}.md.j2")
        return template.render(**context)
