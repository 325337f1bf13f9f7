"""Jinja2 environment for email bodies and ticket PDFs."""

from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, select_autoescape

TEMPLATES_DIR = Path(__file__).parent / "templates"

_env = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    autoescape=select_autoescape(["html"]),
    trim_blocks=True,
    lstrip_blocks=True,
)


def format_amount(minor_units: int) -> str:
    """1234 -> '12.34'"""
    return f"{minor_units / 100:.2f}"


_env.filters["amount"] = format_amount


def render_template(name: str, **context: Any) -> str:
    return _env.get_template(name).render(**context)
