"""
Pytest configuration and shared fixtures
"""

import pytest
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from infrastructure.timeouts import SessionOptions, TimeoutKey  # noqa: E402
from session.session import Session  # noqa: E402
from fakes import FakeSqlService  # noqa: E402


@pytest.fixture
def project_root_path():
    """Path to project root"""
    return project_root


@pytest.fixture
def service():
    """Scriptable in-memory SQL service"""
    return FakeSqlService()


@pytest.fixture
def session_options():
    """Session options with short timeouts so hanging operations fail fast"""
    return SessionOptions({TimeoutKey.DEFAULT: 0.2})


@pytest.fixture
def session(service, session_options):
    """Session over the fake service"""
    s = Session(service, session_options)
    yield s
    s.close()

