"""
Shared fixtures for nrequire tests.
"""

from pathlib import Path

import pytest
from nrequire import CompileUnitBuilder
from nrequire import FileSourceResolver
from nrequire import ModuleRegistry
from nrequire.testing import RecordingParser

RESOURCES = Path(__file__).parent / "resources"


@pytest.fixture
def resources_dir() -> Path:
    """Directory holding the module fixtures."""
    return RESOURCES


@pytest.fixture
def parser() -> RecordingParser:
    return RecordingParser()


@pytest.fixture
def file_registry(parser) -> ModuleRegistry:
    """Registry resolving bare names against tests/resources."""
    return ModuleRegistry(
        resolver=FileSourceResolver(search_paths=[RESOURCES], base_dir=RESOURCES),
        builder=CompileUnitBuilder(parse=parser),
    )
