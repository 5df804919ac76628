"""
Pytest fixtures for pagedriver tests
"""
import pytest
import pytest_asyncio

from pagedriver import WebPage

from .fakes import FakeEngine

START_URL = "http://example.test/"


@pytest.fixture
def engine():
    """Engine handing out in-memory surfaces"""
    return FakeEngine()


@pytest.fixture
def page(engine):
    """A page that was never opened"""
    return WebPage(engine)


@pytest_asyncio.fixture
async def opened(page):
    """A page after a successful open(START_URL)"""
    status = await page.open(START_URL)
    assert status == "success"
    yield page
    await page.close()


@pytest.fixture
def surface(opened):
    return opened.surface


@pytest.fixture
def recorded():
    """Attach recorders to every event slot of a page: ``recorded(page) -> list``"""

    def attach(page, *events):
        from pagedriver.page.events import EVENTS

        calls = []
        for name in events or EVENTS:
            page.on(name, lambda *args, _name=name: calls.append((_name,) + args))
        return calls

    return attach
