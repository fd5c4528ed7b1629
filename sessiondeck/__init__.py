"""sessiondeck: run coding-assistant sessions side by side with an overseer agent."""

__version__ = "0.1.0"
