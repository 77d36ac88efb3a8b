"""workstudio - agent-assisted workspace core."""

__version__ = "0.1.0"
__logo__ = "▣"
