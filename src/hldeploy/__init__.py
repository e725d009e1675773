"""
hldeploy - single-host build, migrate, promote and restart for homelab apps
"""

__version__ = "0.3.0"

from .core import Deployer
from .errors import DeployError
from .models import PipelineOutcome

__all__ = ["Deployer", "DeployError", "PipelineOutcome"]
