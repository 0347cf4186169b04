"""
Pytest configuration and shared fixtures.
"""

import pytest
from pathlib import Path
from typing import Dict, Any, List

from devmonitor.directory import ArtifactDirectory
from devmonitor.events import EventBus
from devmonitor.logger import get_logger, reset_logger
from pipelines.versioning.change_classifier import Thresholds


@pytest.fixture(autouse=True)
def isolated_logger(tmp_path):
    """Route the global logger to a temp dir and start each test with fresh metrics."""
    reset_logger()
    logger = get_logger(log_dir=tmp_path / "logs", enable_console=False)
    yield logger
    reset_logger()


@pytest.fixture
def thresholds() -> Thresholds:
    """The default session thresholds: 20 lines, 5 locations, 4 iterations."""
    return Thresholds(
        max_lines_for_update=20,
        max_locations_for_update=5,
        max_iterations_per_update=4,
    )


@pytest.fixture
def db_path(tmp_path) -> Path:
    return tmp_path / "data" / "devmonitor.db"


@pytest.fixture
def recorded_events() -> List[Dict[str, Any]]:
    return []


@pytest.fixture
def directory(db_path, recorded_events, isolated_logger) -> ArtifactDirectory:
    """Directory on a temp database with a subscriber that records every event."""
    bus = EventBus(logger=isolated_logger)
    bus.subscribe(lambda event, data: recorded_events.append({"event": event, "data": data}))
    return ArtifactDirectory(db_path, bus=bus, logger=isolated_logger)


@pytest.fixture
def sample_component() -> str:
    """A small React component used as artifact content."""
    return "\n".join([
        "import React from 'react';",
        "",
        "export function Counter() {",
        "  const [count, setCount] = React.useState(0);",
        "  return (",
        "    <button onClick={() => setCount(count + 1)}>",
        "      Clicked {count} times",
        "    </button>",
        "  );",
        "}",
    ])


@pytest.fixture
def session(directory) -> Dict[str, Any]:
    return directory.create_session("Build counter app", "Session used by tests")


@pytest.fixture
def artifact(directory, session, sample_component) -> Dict[str, Any]:
    return directory.create_artifact(
        session_id=session["id"],
        name="Counter",
        type="react-component",
        path="src/components/Counter.tsx",
        content=sample_component,
    )
