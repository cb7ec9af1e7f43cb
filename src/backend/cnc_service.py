"""
CNC processing service for the opencarve backend.

Owns the process-wide tool library and output registry and exposes the
conversion pipeline to the FastAPI endpoints.
"""

from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from opencarve.core.config import ProcessingSettings, ToolLibrary
from opencarve.core.registry import OutputRecord, OutputRegistry
from opencarve.pipeline import ConversionPipeline, Upload


class CncService:
    """Service for file conversion and output lookup."""

    def __init__(self, settings: Optional[ProcessingSettings] = None):
        self.settings = settings or ProcessingSettings()
        self.library = ToolLibrary(self.settings.tool_library_path)
        self.library.load()
        self.registry = OutputRegistry(
            max_entries=self.settings.registry_max_entries,
            max_age_s=self.settings.registry_max_age_s,
        )
        self.pipeline = ConversionPipeline(self.library, self.registry, self.settings)

    def list_tools(self) -> List[dict]:
        """Get all library tools as serialized dicts."""
        return self.library.to_list()

    def convert(
        self,
        data: bytes,
        file_name: str,
        mime_type: Optional[str],
        output_format: Optional[str],
        options: Mapping[str, Any],
    ) -> OutputRecord:
        """Run one conversion synchronously (CPU-bound)."""
        upload = Upload(data=data, file_name=file_name, mime_type=mime_type)
        return self.pipeline.process(upload, output_format, options)

    def get_output(self, output_id: str) -> Optional[OutputRecord]:
        """Look up a registered output whose file still exists."""
        record = self.registry.get(output_id)
        if record is None or not Path(record.path).exists():
            return None
        return record

    def get_summary(self) -> Dict[str, Any]:
        return {
            'tools': len(self.library.list_tools()),
            'outputs': len(self.registry),
            'maxOutputs': self.registry.max_entries,
            'outputDir': str(self.settings.output_dir),
        }
