"""Terminal channel used to dispatch workflow commands."""

from anvil_workflows.engine.terminal.channel import (
    ChannelUnavailableError,
    PtyTerminalChannel,
    TerminalChannel,
)

__all__ = ["ChannelUnavailableError", "PtyTerminalChannel", "TerminalChannel"]
