"""Service modules for the CLI, simulations and the async match driver."""

from . import cli, match, simulation

__all__ = ["cli", "match", "simulation"]
