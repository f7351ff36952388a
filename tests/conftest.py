"""Root conftest for test suite.

Auto-skips integration tests that need a running Postgres.
Run explicitly with: DATABASE_URL=... pytest tests/integration -m integration
"""

import pytest

from docflow.core.resilience import reset_circuits


def pytest_collection_modifyitems(config, items):
    """Skip integration and slow tests unless explicitly requested."""
    markexpr = config.getoption("-m", default="")
    explicit_integration = "integration" in markexpr
    explicit_slow = "slow" in markexpr

    args = config.args
    running_integration_path = any("tests/integration" in str(arg) for arg in args)

    skip_integration = pytest.mark.skip(
        reason="integration tests require Postgres. Run with: pytest tests/integration -m integration"
    )
    skip_slow = pytest.mark.skip(
        reason="slow tests skipped by default. Run with: pytest -m slow"
    )

    for item in items:
        if (
            "integration" in item.keywords
            and not explicit_integration
            and not running_integration_path
        ):
            item.add_marker(skip_integration)

        if "slow" in item.keywords and not explicit_slow:
            item.add_marker(skip_slow)


@pytest.fixture(autouse=True)
def _reset_db_circuit():
    """Circuit breaker state is module-global; isolate it per test."""
    reset_circuits()
    yield
    reset_circuits()
