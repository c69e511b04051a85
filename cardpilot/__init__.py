"""Role-gated action dispatch for a card management copilot."""

__version__ = "1.0.0"
