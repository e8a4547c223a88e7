"""Anvil workflows.

Reusable, parameterised shell workflows run step by step, with a human
approving each risky command before it reaches the terminal.
"""

__version__ = "0.1.0"

from anvil_workflows.engine.config import EngineSettings

__all__ = ["__version__", "EngineSettings"]
