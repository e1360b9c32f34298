"""
Scenario Schema - Named sets of test inputs for simulation runs.

A scenario seeds the trigger node's output at ``initialize``. Handlers also
read a few well-known keys from it:

- ``webhookPayload``: body of a simulated webhook trigger
- ``aiResponse``: completion returned by AI agent nodes
- ``sentimentText``: text analysed by sentiment nodes
"""

import copy
import json
import logging
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_SCENARIO_NAME = "Default Scenario"


def default_inputs() -> dict[str, Any]:
    return {
        "webhookPayload": {
            "event": "user.created",
            "data": {"id": 123, "name": "John Doe", "email": "john@example.com"},
        },
        "aiResponse": "I'm an AI assistant. How can I help you today?",
        "sentimentText": "I really enjoyed using this product!",
    }


class TestScenario(BaseModel):
    """A named set of test inputs."""

    __test__ = False  # Not a pytest test class

    name: str = Field(min_length=1)
    inputs: dict[str, Any] = Field(default_factory=dict)
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    model_config = {"extra": "allow"}


class ScenarioLibrary(BaseModel):
    """
    Ordered collection of scenarios, unique by name.

    Example:
        library = ScenarioLibrary()
        library.save("Big order", {"webhookPayload": {"amount": 5000}})
        inputs = library.load("Big order")
    """

    scenarios: list[TestScenario] = Field(
        default_factory=lambda: [TestScenario(name=DEFAULT_SCENARIO_NAME, inputs=default_inputs())]
    )

    def names(self) -> list[str]:
        return [s.name for s in self.scenarios]

    def get(self, name: str) -> TestScenario | None:
        for scenario in self.scenarios:
            if scenario.name == name:
                return scenario
        return None

    def save(self, name: str, inputs: dict[str, Any]) -> TestScenario:
        """Insert or replace the scenario called ``name``."""
        scenario = TestScenario(name=name, inputs=copy.deepcopy(inputs))
        for i, existing in enumerate(self.scenarios):
            if existing.name == name:
                self.scenarios[i] = scenario
                logger.debug(f"Updated scenario '{name}'")
                return scenario
        self.scenarios.append(scenario)
        logger.debug(f"Added scenario '{name}'")
        return scenario

    def load(self, name: str) -> dict[str, Any]:
        """Return a copy of the scenario's inputs.

        Raises:
            KeyError: If no scenario has that name
        """
        scenario = self.get(name)
        if scenario is None:
            raise KeyError(f"Unknown scenario '{name}'. Available: {self.names()}")
        return copy.deepcopy(scenario.inputs)

    def delete(self, name: str) -> bool:
        before = len(self.scenarios)
        self.scenarios = [s for s in self.scenarios if s.name != name]
        return len(self.scenarios) < before

    def export_json(self, indent: int = 2) -> str:
        return self.model_dump_json(indent=indent)

    @classmethod
    def import_json(cls, text: str) -> "ScenarioLibrary":
        """Parse a library exported with ``export_json``.

        A bare JSON list of ``{name, inputs}`` objects is accepted too.

        Raises:
            ValueError: If the text is not a valid scenario library
        """
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid scenario file: {e}") from e

        if isinstance(data, list):
            data = {"scenarios": data}
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ValueError(f"Invalid scenario file: {e}") from e
