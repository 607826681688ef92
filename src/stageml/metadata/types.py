"""
Metadata type definitions.

This module contains the dataclass describing a saved stage.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional


@dataclass
class StageMetadata:
    """Everything needed to rebuild a stage around its learned parameters."""

    stage_type: str
    model_name: str
    timestamp: str
    training_parameters: Dict[str, Any]
    input_schema: Dict[str, str]
    output_schema: Dict[str, str]
    label_type: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "StageMetadata":
        """Create from dictionary."""
        return StageMetadata(**data)
