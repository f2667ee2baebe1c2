"""Render prompt templates in src/prompt/promptFiles using pystache.

Templates may pull in partials (``{{> name}}``); partial files wrapped in a
code fence have the fence stripped before rendering.

Usage:
    python -m src.prompt.render_prompt [template_filename] [context.json]
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import pystache

PROMPTS_DIR = Path(__file__).parent / "promptFiles"

SYSTEM_TEMPLATE = "system_proofreader.md"
USER_TEMPLATE = "user_proofreader.md"

# Partials each template needs
TEMPLATE_PARTIALS = {
    SYSTEM_TEMPLATE: ["proofreader_categories", "proofreader_output_format"],
    USER_TEMPLATE: [],
}


def _read_prompt(name: str) -> str:
    p = PROMPTS_DIR / name
    if not p.exists():
        raise FileNotFoundError(f"Prompt file not found: {p}")
    return p.read_text(encoding="utf-8")


def _strip_code_fences(s: str) -> str:
    """Strip a single leading and trailing code-fence line if present."""

    lines = s.splitlines()
    if not lines:
        return s
    if lines[0].lstrip().startswith("```"):
        lines = lines[1:]
    if lines and lines[-1].lstrip().startswith("```"):
        lines = lines[:-1]
    return "\n".join(lines).strip()


def render_template(template_name: str, context: dict | None = None) -> str:
    partials = {
        name: _strip_code_fences(_read_prompt(f"{name}.md"))
        for name in TEMPLATE_PARTIALS.get(template_name, [])
    }
    renderer = pystache.Renderer(partials=partials, escape=lambda u: u)
    return renderer.render(_read_prompt(template_name), context or {}).strip()


def render_system_prompt(context: dict | None = None) -> str:
    return render_template(SYSTEM_TEMPLATE, context)


def render_user_prompt(context: dict) -> str:
    """Render the per-check prompt; ``context`` needs ``language`` and ``text``."""

    return render_template(USER_TEMPLATE, context)


def _load_context(path: str) -> dict:
    return json.loads(Path(path).read_text(encoding="utf-8"))


if __name__ == "__main__":
    tpl = sys.argv[1] if len(sys.argv) > 1 else SYSTEM_TEMPLATE
    ctx = _load_context(sys.argv[2]) if len(sys.argv) > 2 else None
    print(render_template(tpl, ctx))
