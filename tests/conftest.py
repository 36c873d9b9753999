"""Root conftest - shared test configuration."""

import os

# Fixed test key: never a real secret
TEST_ENCRYPTION_KEY = "00112233445566778899aabbccddeeff00112233445566778899aabbccddeeff"

os.environ.setdefault("INVENTORY_ENCRYPTION_KEY", TEST_ENCRYPTION_KEY)
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault(
    "DATABASE_URL",
    "sqlite+aiosqlite:///test.db",
)
