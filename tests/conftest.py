import asyncio
import inspect

import pytest
import structlog


def pytest_configure(config):
    config.addinivalue_line("markers", "anyio: mark test as requiring an event loop")


@pytest.fixture(autouse=True)
def _reset_structlog():
    """Keep logging config set up by one test (e.g. the CLI) out of the next."""
    yield
    structlog.reset_defaults()


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem):
    """Run ``async def`` tests to completion on a private event loop."""
    test_function = pyfuncitem.obj
    if not inspect.iscoroutinefunction(test_function):
        return None

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        signature = inspect.signature(test_function)
        kwargs = {
            name: value
            for name, value in pyfuncitem.funcargs.items()
            if name in signature.parameters
        }
        loop.run_until_complete(test_function(**kwargs))
    finally:
        loop.run_until_complete(loop.shutdown_asyncgens())
        loop.close()
        asyncio.set_event_loop(None)
    return True
