"""Conversation exporters for JSON and YAML formats."""

from branchchat.exporters.base import Exporter
from branchchat.exporters.json_exporter import JsonExporter
from branchchat.exporters.yaml_exporter import YamlExporter

__all__ = [
    "Exporter",
    "JsonExporter",
    "YamlExporter",
]
