"""
Pytest configuration
Loads test environment variables and registers markers
"""

from pathlib import Path

from dotenv import load_dotenv


def load_env_file():
    """Load TXPILOT_* settings from .env.test if it exists (existing variables win)"""
    env_file = Path(__file__).parent / ".env.test"
    if env_file.exists():
        load_dotenv(env_file)


def pytest_configure(config):
    """Configure pytest and load environment"""
    load_env_file()

    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
