"""
vaultharness.harness - blocking test client and round driver.
"""

from vaultharness.harness.responses import expect_response
from vaultharness.harness.test_client import TestClient

__all__ = [
    "TestClient",
    "expect_response",
]
