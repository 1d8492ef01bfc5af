"""YAML exporter for conversations."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Iterable

import yaml

from branchchat.exporters.base import Exporter

if TYPE_CHECKING:
    from branchchat.models import Conversation


class YamlExporter(Exporter):
    """Export conversations to YAML format."""

    @property
    def extension(self) -> str:
        return "yaml"

    def export(self, conversations: Iterable[Conversation], output_path: Path) -> int:
        output = self.build_document(conversations)
        with open(output_path, "w", encoding="utf-8") as f:
            yaml.safe_dump(output, f, allow_unicode=True, sort_keys=False)
        return output["count"]
