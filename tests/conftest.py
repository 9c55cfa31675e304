"""Test configuration and setup for pytest.

Puts the project root on the Python path so the tests can import
``redmine_api_client`` without installing the package first.
"""

import sys
from pathlib import Path

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))
