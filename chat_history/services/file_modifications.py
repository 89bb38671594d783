"""Serialize pending workspace file edits into outgoing user message text."""

import re
from collections.abc import Sequence
from typing import Literal
from xml.sax.saxutils import quoteattr

from pydantic import BaseModel, ConfigDict

MODIFICATIONS_TAG = "file_modifications"

MODIFICATIONS_BLOCK_RE = re.compile(
    rf"<{MODIFICATIONS_TAG}>.*?</{MODIFICATIONS_TAG}>\s*", re.DOTALL
)


class FileModification(BaseModel):
    """A file the user changed in the workspace since the last turn.

    ``type`` is ``"diff"`` when ``content`` is a unified diff against the
    version the assistant last saw and ``"file"`` when it is the full text.
    """

    model_config = ConfigDict(frozen=True)

    path: str
    type: Literal["diff", "file"]
    content: str


def file_modifications_to_markup(
    modifications: Sequence[FileModification],
) -> str | None:
    """Render modifications as a ``<file_modifications>`` block, or None if empty."""
    if not modifications:
        return None

    parts = [f"<{MODIFICATIONS_TAG}>"]
    for mod in modifications:
        parts.append(f"<{mod.type} path={quoteattr(mod.path)}>")
        parts.append(mod.content)
        parts.append(f"</{mod.type}>")
    parts.append(f"</{MODIFICATIONS_TAG}>")
    return "\n".join(parts)


def compose_user_content(
    text: str, modifications: Sequence[FileModification] = ()
) -> str:
    """Prefix the user's text with the serialized modifications, if any."""
    markup = file_modifications_to_markup(modifications)
    if markup is None:
        return text
    return f"{markup}\n\n{text}"


def strip_file_modifications(content: str) -> str:
    """Remove embedded modification blocks, leaving what the user typed."""
    return MODIFICATIONS_BLOCK_RE.sub("", content).strip()
