"""
Storage Layer.

This package handles everything that touches the local filesystem outside the
final output: the configuration file and the temporary files of a job.
"""

from .config_manager import ConfigManager
from .tempfiles import TempFileRegistry, sweep_tempfiles, temp_directory

__all__ = ["ConfigManager", "TempFileRegistry", "sweep_tempfiles", "temp_directory"]
