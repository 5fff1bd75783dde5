"""Global test configuration for waivern-dsar tests."""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables from .env file for testing
env_file = Path(__file__).parent.parent / ".env"
if env_file.exists():
    load_dotenv(env_file)

# Logging set up by CLI commands under test uses the test configuration
os.environ.setdefault("WAIVERN_DSAR_ENV", "test")
