"""JSON exporter for conversations."""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING, Iterable

from branchchat.exporters.base import Exporter

if TYPE_CHECKING:
    from branchchat.models import Conversation


class JsonExporter(Exporter):
    """Export conversations to JSON format."""

    @property
    def extension(self) -> str:
        return "json"

    def export(self, conversations: Iterable[Conversation], output_path: Path) -> int:
        output = self.build_document(conversations)
        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(output, f, indent=2, ensure_ascii=False)
        return output["count"]
