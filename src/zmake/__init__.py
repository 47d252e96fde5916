__version__ = "0.1.0"

from .errors import ConfigError, ExecutionError, ResolutionError, ZMakeError
from .loader import load_config, load_config_data
from .model import Block, Command, Config, ExecutionPolicy, Invoke, OSBlock, Section
from .runner import RunOptions, RunReport, run

__all__ = [
    "Block",
    "Command",
    "Config",
    "ConfigError",
    "ExecutionError",
    "ExecutionPolicy",
    "Invoke",
    "OSBlock",
    "ResolutionError",
    "RunOptions",
    "RunReport",
    "Section",
    "ZMakeError",
    "load_config",
    "load_config_data",
    "run",
]
