"""Placeholder substitution for prompt templates."""

from __future__ import annotations

import re
from typing import Mapping

_PLACEHOLDER_RE = re.compile(r"\{\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")


def render_template(template: str, variables: Mapping[str, object]) -> str:
    """Replace ``{{name}}`` placeholders; unknown names are left as written."""

    def _sub(match: re.Match[str]) -> str:
        name = match.group(1)
        if name not in variables:
            return match.group(0)
        return str(variables[name])

    return _PLACEHOLDER_RE.sub(_sub, template)

