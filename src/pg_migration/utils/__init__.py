"""공통 유틸리티"""

from .formatting import format_duration, format_size
from .logger import setup_logger

__all__ = ["format_duration", "format_size", "setup_logger"]
