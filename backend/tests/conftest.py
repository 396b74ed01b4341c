"""Shared test fixtures for Spoolstock backend tests."""

import logging
import os
from collections.abc import AsyncGenerator
from unittest.mock import patch

import pytest

# IMPORTANT: Set environment variables BEFORE any app imports
# This must happen before settings/config are loaded
os.environ["LOG_TO_FILE"] = "false"
os.environ["DEBUG"] = "false"
os.environ["ALLOCATION_POLICY"] = "recency_first"

from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402

# Ensure settings use our env vars - import and override before database import
from backend.app.core.config import settings  # noqa: E402

settings.log_to_file = False

from backend.app.core.database import Base  # noqa: E402

# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
async def test_engine():
    """Create a test database engine."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False)

    # Import all models to register them
    from backend.app.models import (  # noqa: F401
        consumption,
        filament,
        spool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async_session_maker = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)
    async with async_session_maker() as session:
        yield session


@pytest.fixture
async def async_client(test_engine, db_session) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client."""
    from backend.app.core.database import get_db
    from backend.app.main import app

    # Create a new session maker for the test engine
    test_async_session = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)

    async def override_get_db():
        async with test_async_session() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    # Also patch the module-level async_session in case anything opens its own session
    with patch("backend.app.core.database.async_session", test_async_session):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            yield client

    app.dependency_overrides.clear()


# ============================================================================
# Factory Fixtures for Test Data
# ============================================================================


@pytest.fixture
def filament_factory(db_session):
    """Factory to create test filaments."""
    _counter = [0]  # Use list to allow mutation in nested function

    async def _create_filament(**kwargs):
        from backend.app.models.filament import Filament

        _counter[0] += 1
        counter = _counter[0]

        defaults = {
            "name": f"Test PLA {counter}",
            "material": "PLA",
            "color_name": "Black",
            "color_hex": "#000000",
            "manufacturer": "Generic",
            "archived": False,
        }
        defaults.update(kwargs)

        filament = Filament(**defaults)
        db_session.add(filament)
        await db_session.commit()
        await db_session.refresh(filament)
        return filament

    return _create_filament


@pytest.fixture
def spool_factory(db_session):
    """Factory to create test spools.

    ``weight_g`` defaults to ``starting_weight_g`` (an unused spool).
    """

    async def _create_spool(filament_id: int, **kwargs):
        from backend.app.models.spool import Spool

        defaults = {
            "filament_id": filament_id,
            "starting_weight_g": 1000.0,
            "empty_weight_g": None,
            "archived": False,
        }
        defaults.update(kwargs)
        defaults.setdefault("weight_g", defaults["starting_weight_g"])

        spool = Spool(**defaults)
        db_session.add(spool)
        await db_session.commit()
        await db_session.refresh(spool)
        return spool

    return _create_spool


@pytest.fixture
def entry_factory(db_session):
    """Factory to create consumption entries without touching spool weights."""

    async def _create_entry(filament_id: int, **kwargs):
        from backend.app.models.consumption import ConsumptionEntry

        defaults = {
            "filament_id": filament_id,
            "amount_g": 10.0,
            "kind": "manual",
        }
        defaults.update(kwargs)

        entry = ConsumptionEntry(**defaults)
        db_session.add(entry)
        await db_session.commit()
        await db_session.refresh(entry)
        return entry

    return _create_entry


# ============================================================================
# Sample Data Fixtures
# ============================================================================


@pytest.fixture
def sample_prusaslicer_gcode():
    """Trimmed PrusaSlicer output with a header and the config footer."""
    return "\n".join(
        [
            "; generated by PrusaSlicer 2.7.1+win64 on 2024-01-15 at 10:22:11 UTC",
            "M83 ; use relative distances for extrusion",
            "G1 X10 Y10 E1.5",
            "G1 X20 Y10 E2.0",
            "; filament used [mm] = 4520.12",
            "; filament used [cm3] = 10.87",
            "; filament used [g] = 13.48",
            "; estimated printing time (normal mode) = 1h 2m 3s",
            "; filament_type = PETG",
            "; filament_colour = #ff8800",
        ]
    )


@pytest.fixture
def sample_cura_gcode():
    """Trimmed Cura output; usage is reported in meters only."""
    return "\n".join(
        [
            ";FLAVOR:Marlin",
            ";TIME:3725",
            ";Filament used: 2.5m",
            ";Layer height: 0.2",
            ";MESH:benchy.stl",
            ";Generated with Cura_SteamEngine 5.6.0",
            "G1 X10 Y10 E5",
        ]
    )


# ============================================================================
# Log Capture Fixtures for Error Detection
# ============================================================================


class LogCapture(logging.Handler):
    """Handler that captures log records for testing."""

    def __init__(self):
        super().__init__()
        self.records: list[logging.LogRecord] = []

    def emit(self, record: logging.LogRecord):
        self.records.append(record)

    def clear(self):
        self.records.clear()

    def get_errors(self) -> list[logging.LogRecord]:
        """Get all ERROR and CRITICAL level records."""
        return [r for r in self.records if r.levelno >= logging.ERROR]

    def get_warnings(self) -> list[logging.LogRecord]:
        """Get all WARNING level records."""
        return [r for r in self.records if r.levelno == logging.WARNING]

    def messages(self, logger_name: str | None = None) -> list[str]:
        """Formatted messages, optionally only those from one logger."""
        return [r.getMessage() for r in self.records if logger_name is None or r.name == logger_name]

    def has_errors(self) -> bool:
        """Check if any errors were logged."""
        return len(self.get_errors()) > 0

    def format_errors(self) -> str:
        """Format all errors as a string for assertion messages."""
        errors = self.get_errors()
        if not errors:
            return "No errors"
        formatter = logging.Formatter("%(name)s - %(levelname)s - %(message)s")
        return "\n".join(formatter.format(r) for r in errors)


@pytest.fixture
def capture_logs():
    """Fixture that captures log output during a test.

    Usage:
        def test_something(capture_logs):
            # Do something that might log errors
            some_function()

            # Check no errors were logged
            assert not capture_logs.has_errors(), capture_logs.format_errors()
    """
    handler = LogCapture()
    handler.setLevel(logging.DEBUG)

    # Attach to root logger to capture all logs
    root_logger = logging.getLogger()
    previous_level = root_logger.level
    root_logger.setLevel(logging.DEBUG)
    root_logger.addHandler(handler)

    yield handler

    root_logger.removeHandler(handler)
    root_logger.setLevel(previous_level)


@pytest.fixture
def assert_no_log_errors(capture_logs):
    """Fixture that automatically asserts no errors were logged.

    Usage:
        def test_something(assert_no_log_errors):
            # If any ERROR logs occur during this test, it will fail
            some_function()
    """
    yield capture_logs

    errors = capture_logs.get_errors()
    if errors:
        pytest.fail(f"Unexpected log errors:\n{capture_logs.format_errors()}")
