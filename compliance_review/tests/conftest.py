import pytest


@pytest.fixture
def anyio_backend():
    # The service is built on asyncio (asyncio.create_task in the SSE path).
    return "asyncio"
