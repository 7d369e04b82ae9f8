"""
Construction options for the VWAP service.
"""

import logging
import sys
from dataclasses import dataclass
from typing import Optional, TextIO

from ..vwap import DEFAULT_MAX_DATA_POINTS


@dataclass
class ServiceConfig:
    """Service options"""
    # Logger for service and dispatcher messages (module logger when None)
    logger: Optional[logging.Logger] = None

    # Points kept in each trading pair's window; values below 1 use the default
    max_data_points: int = DEFAULT_MAX_DATA_POINTS

    # Where VWAP lines are written (stdout when None)
    output: Optional[TextIO] = None

    def __post_init__(self):
        if self.max_data_points is None or self.max_data_points < 1:
            self.max_data_points = DEFAULT_MAX_DATA_POINTS
        if self.output is None:
            self.output = sys.stdout
