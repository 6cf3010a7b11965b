import os
import tempfile

import pytest

# Must be set before walkie.load_secrets is imported
_db_dir = tempfile.mkdtemp(prefix="walkie-test-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_db_dir, 'walkie.sqlite3')}"
os.environ["VRF_LOCAL_DELAY_SECONDS"] = ""
os.environ["HOUSE_FEE_BPS"] = "500"
os.environ["MIN_BET"] = str(10**17)
os.environ["MAX_BET"] = str(10 * 10**18)

from walkie.db import create_tables, drop_tables  # noqa: E402


@pytest.fixture
async def db():
    await create_tables()
    yield
    await drop_tables()
