"""Merge-tag rendering for feed prompts.

A merge tag has the form ``{prefix|tag|suffix}``.  When ``tag`` has a
non-empty value the whole tag is replaced by ``prefix + value + suffix``;
otherwise the whole tag, prefix and suffix included, disappears.  This lets
a prompt carry optional sections such as ``{\\n\\nQuestion: |question|}``.
"""

from __future__ import annotations

import re

MERGE_TAG_RE = re.compile(r"\{(?P<prefix>[^{}|]*)\|(?P<tag>\w+)\|(?P<suffix>[^{}|]*)\}")


def render_prompt(template: str, values: dict[str, str | None]) -> str:
    """Substitute every merge tag in *template* from *values*.

    Tags missing from *values* are treated as empty.  Text outside merge
    tags is returned unchanged.
    """

    def _replace(match: re.Match) -> str:
        value = values.get(match.group("tag"))
        if value is None or not str(value).strip():
            return ""
        return f"{match.group('prefix')}{value}{match.group('suffix')}"

    return MERGE_TAG_RE.sub(_replace, template).strip()
