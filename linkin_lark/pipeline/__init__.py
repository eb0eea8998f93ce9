"""linkin-lark pipeline package.

This package contains the conversion orchestrator and the persisted run state
used to resume interrupted conversions.
"""

from .orchestrator import ConversionPipeline
from .state import RunState, RunStateStore

__all__ = ["ConversionPipeline", "RunState", "RunStateStore"]
