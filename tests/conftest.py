"""
Shared test setup.

Points the daemon's data directory and settings file at a temporary location
before any deploywatch module is imported, so tests never touch ~/.deploywatch
or a settings.json in the working directory.
"""

import os
import tempfile
from pathlib import Path

_test_home = Path(tempfile.mkdtemp(prefix="deploywatch-test-"))
os.environ["DEPLOYWATCH_HOME"] = str(_test_home)
os.environ["DEPLOYWATCH_SETTINGS"] = str(_test_home / "settings.json")
