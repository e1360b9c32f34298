"""File storage for flowsim artifacts."""

from flowsim.storage.scenario_store import ScenarioStore

__all__ = ["ScenarioStore"]
