"""Print-job driven camera service for Prusa printers."""

from prusacam.config import Config, load_config
from prusacam.service import PrusaCam

__all__ = ["Config", "PrusaCam", "load_config"]
