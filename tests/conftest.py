"""
Shared test fixtures for the cloth solver tests.
"""
import sys
from pathlib import Path

import pytest
import taichi as ti

# Add the project root (flat module layout) to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from config import ClothSettings
from mesh import build_mesh
from session import ClothSession

# Small grid: 4×3 cells, 3 layers → 20 particles per layer
TEST_COLS = 4
TEST_ROWS = 3
TEST_LAYERS = 3


@pytest.fixture(scope="session", autouse=True)
def taichi_cpu():
    """Initialize Taichi once, on CPU, with bounds checking on."""
    ti.init(arch=ti.cpu, debug=True, default_fp=ti.f32)
    yield


@pytest.fixture
def small_mesh():
    """A freshly built 4×3×3 cloth."""
    return build_mesh(cols=TEST_COLS, rows=TEST_ROWS, layers=TEST_LAYERS)


@pytest.fixture
def session():
    """A session around a freshly built 4×3×3 cloth."""
    return ClothSession(cols=TEST_COLS, rows=TEST_ROWS, layers=TEST_LAYERS)


@pytest.fixture
def settings():
    """Default runtime settings."""
    return ClothSettings()


@pytest.fixture
def still_settings():
    """No gravity, rest-length tension: a cloth at rest stays at rest."""
    return ClothSettings(gravity_enabled=False, tension_factor=1.0)
