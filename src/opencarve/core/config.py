"""
Configuration management for opencarve.

Handles loading and validation of the static tool library and of the
processing settings (output directory, registry bounds, tracing and
height-field defaults).
"""

import math
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from opencarve.core.exceptions import ConfigurationError, UnknownTool
from opencarve.core.tools import Tool, ToolShape, legacy_tool

DEFAULT_TOOL_LIBRARY = Path(__file__).parent.parent / "data" / "tool_library.yaml"


class ToolConfig(BaseModel):
    """One tool library entry, as written in the YAML file."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    shape: Literal["flat", "ball", "vbit"]
    diameter_mm: float = Field(alias="diameterMm", gt=0)
    angle_deg: Optional[float] = Field(default=None, alias="angleDeg", gt=0, lt=180)
    max_depth_mm: float = Field(default=math.inf, alias="maxDepthMm", gt=0)
    flute_length_mm: Optional[float] = Field(default=None, alias="fluteLengthMm")
    default_feed_rate_xy: float = Field(default=800.0, alias="defaultFeedRateXY", gt=0)
    default_feed_rate_z: float = Field(default=300.0, alias="defaultFeedRateZ", gt=0)
    default_spindle_speed: float = Field(default=12000.0, alias="defaultSpindleSpeed", ge=0)
    tool_number: int = Field(default=0, alias="toolNumber", ge=0)

    @model_validator(mode="after")
    def _vbit_needs_angle(self) -> "ToolConfig":
        if self.shape == "vbit" and self.angle_deg is None:
            raise ValueError(f"V-bit tool '{self.id}' requires angleDeg")
        return self

    def to_tool(self) -> Tool:
        return Tool(
            id=self.id,
            name=self.name,
            shape=ToolShape(self.shape),
            diameter_mm=self.diameter_mm,
            angle_deg=self.angle_deg,
            max_depth_mm=self.max_depth_mm,
            flute_length_mm=self.flute_length_mm,
            default_feed_rate_xy=self.default_feed_rate_xy,
            default_feed_rate_z=self.default_feed_rate_z,
            default_spindle_speed=self.default_spindle_speed,
            tool_number=self.tool_number,
        )


class ProcessingSettings(BaseModel):
    """Process-wide settings for the conversion pipeline."""

    output_dir: Path = Field(
        default_factory=lambda: Path(tempfile.gettempdir()) / "opencarve-cnc"
    )
    tool_library_path: Path = DEFAULT_TOOL_LIBRARY
    max_upload_bytes: int = 20 * 1024 * 1024
    registry_max_entries: int = Field(default=500, gt=0)
    registry_max_age_s: float = Field(default=24 * 3600.0, gt=0)
    trace_threshold: float = Field(default=0.5, gt=0, lt=1)
    trace_turd_size: int = Field(default=2, ge=0)
    trace_opt_tolerance: float = Field(default=0.2, ge=0)
    height_field_resolution: int = Field(default=140, ge=2)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "ProcessingSettings":
        """
        Load settings from a YAML file with a top-level ``processing`` key.

        Raises:
            ConfigurationError: If the file is missing or invalid
        """
        path = Path(path)
        if not path.exists():
            raise ConfigurationError(f"Settings file not found: {path}")
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
            return cls(**data.get("processing", {}))
        except (yaml.YAMLError, ValidationError) as e:
            raise ConfigurationError(
                f"Failed to load settings: {path}",
                details={"error": str(e)},
            )


@dataclass
class ToolLibrary:
    """
    Static tool library.

    Loaded once from YAML and read-only thereafter.

    Example:
        >>> library = ToolLibrary()
        >>> tool = library.resolve("ball-3", diameter_override=2.5)
    """

    path: Path = DEFAULT_TOOL_LIBRARY
    _tools: dict[str, Tool] = field(default_factory=dict, init=False)
    _loaded: bool = field(default=False, init=False)

    def __post_init__(self) -> None:
        self.path = Path(self.path)
        if not self.path.exists():
            raise ConfigurationError(f"Tool library not found: {self.path}")

    def load(self) -> None:
        """Load all tool entries from disk."""
        try:
            with open(self.path) as f:
                data = yaml.safe_load(f) or {}
            entries = [ToolConfig(**entry) for entry in data.get("tools", [])]
        except (yaml.YAMLError, ValidationError, TypeError) as e:
            raise ConfigurationError(
                f"Failed to load tool library: {self.path}",
                details={"error": str(e)},
            )

        tools: dict[str, Tool] = {}
        for entry in entries:
            if entry.id in tools:
                raise ConfigurationError(
                    f"Duplicate tool id in library: {entry.id}",
                    details={"path": str(self.path)},
                )
            tools[entry.id] = entry.to_tool()
        self._tools = tools
        self._loaded = True

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self.load()

    def get(self, tool_id: str) -> Optional[Tool]:
        self._ensure_loaded()
        return self._tools.get(tool_id)

    def list_tools(self) -> list[Tool]:
        """List library tools in file order."""
        self._ensure_loaded()
        return list(self._tools.values())

    def resolve(
        self,
        tool_id: Optional[str] = None,
        diameter_override: Optional[float] = None,
    ) -> Tool:
        """
        Resolve a tool for a request.

        Args:
            tool_id: Library id; empty or None selects the legacy tool
            diameter_override: Replaces the diameter only if > 0

        Returns:
            Resolved Tool

        Raises:
            UnknownTool: If tool_id is not in the library
        """
        if not tool_id:
            return legacy_tool().with_diameter(diameter_override)

        tool = self.get(tool_id)
        if tool is None:
            raise UnknownTool(
                f"Unknown tool: {tool_id}",
                tool_id=tool_id,
                details={"available": sorted(self._tools)},
            )
        return tool.with_diameter(diameter_override)

    def to_list(self) -> list[dict[str, Any]]:
        return [tool.to_dict() for tool in self.list_tools()]
