"""castio-raspberrypi-agent — runs next to the pins and obeys the host proxy."""

from .agent import AgentState, RaspberryPiAgent
from .config import AgentConfig, load_config
from .hardware import PinController

__version__ = "0.1.0"
__all__ = ["AgentConfig", "AgentState", "PinController", "RaspberryPiAgent", "load_config"]
