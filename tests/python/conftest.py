import os
import time
from collections.abc import Callable
from typing import Any, Optional

import pytest
import pytest_asyncio
import requests
from playwright.async_api import async_playwright

from climatedata_e2e.polling import PollConfig
from climatedata_e2e.portal import StationDataPage


DEFAULT_PORTAL_URL = "http://localhost:8080"
DEFAULT_API_URL = "https://api.weather.gc.ca"

# Network waits in the portal scenarios
TIMEOUT_MS = 6500
INTERVAL_MS = 2000


# ============================================================================
#  Service Availability
# ============================================================================

def wait_for_service_ready(url: str, timeout: float = 10, interval: float = 1.0) -> bool:
    """
    Wait for a service to answer with a non-error status.

    Args:
        url: URL to probe
        timeout: Maximum time to wait in seconds
        interval: Time between checks in seconds

    Returns:
        True if service became ready, False if timeout
    """
    start_time = time.time()

    while time.time() - start_time < timeout:
        try:
            response = requests.get(url, timeout=5)
            if response.status_code < 400:
                return True
        except requests.exceptions.RequestException:
            pass
        time.sleep(interval)

    return False


# ============================================================================
#  Connection Fixtures
# ============================================================================

@pytest.fixture(scope="session")
def portal_base_url() -> str:
    """
    Get the base URL of the climate data portal.

    Priority:
    1. CLIMATEDATA_PORTAL_URL environment variable
    2. CYPRESS_BASE_URL environment variable (legacy)
    3. Local development server (http://localhost:8080)

    Skips the dependent tests when the portal does not answer.
    """
    base = os.getenv("CLIMATEDATA_PORTAL_URL") or os.getenv("CYPRESS_BASE_URL") or DEFAULT_PORTAL_URL
    base = base.rstrip("/")
    if not wait_for_service_ready(base, timeout=5):
        pytest.skip(f"Climate data portal not available at {base}")
    print(f"\n✓ Climate data portal reachable at {base}")
    return base


@pytest.fixture(scope="session")
def api_base_url() -> str:
    """Get the OGC API base URL, skipping the dependent tests when it does not answer."""
    base = (os.getenv("CLIMATEDATA_API_URL") or DEFAULT_API_URL).rstrip("/")
    if not wait_for_service_ready(f"{base}/collections?f=json", timeout=5):
        pytest.skip(f"OGC API not available at {base}")
    return base


@pytest.fixture(scope="session")
def api_bearer_token() -> Optional[str]:
    """Get bearer token for authenticated API requests (if required)."""
    return os.getenv("CLIMATEDATA_API_BEARER")


@pytest.fixture(scope="session")
def api_session(api_bearer_token: Optional[str]) -> requests.Session:
    """Create requests session with optional authentication."""
    session = requests.Session()
    if api_bearer_token:
        session.headers.update({"Authorization": f"Bearer {api_bearer_token}"})
    session.headers.update({"Accept-Encoding": "gzip, deflate"})

    # Set reasonable timeouts
    session.request = lambda *args, **kwargs: requests.Session.request(
        session, *args, **{**kwargs, 'timeout': kwargs.get('timeout', 30)}
    )

    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="session")
def api_request(api_session: requests.Session, api_base_url: str) -> Callable[..., requests.Response]:
    """Factory function for making API requests."""
    def _request(method: str, path: str, **kwargs: Any) -> requests.Response:
        url = path if path.startswith("http") else f"{api_base_url}{path}"
        timeout = kwargs.pop("timeout", 30)
        response = api_session.request(method, url, timeout=timeout, **kwargs)
        return response

    return _request


# ============================================================================
#  Browser Fixtures
# ============================================================================

@pytest.fixture(scope="session")
def browser_name() -> str:
    """Browser engine used for portal tests (chromium, firefox or webkit)."""
    return os.getenv("CLIMATEDATA_BROWSER", "chromium")


@pytest.fixture(scope="session")
def headless() -> bool:
    return not os.getenv("CLIMATEDATA_HEADED")


@pytest.fixture(scope="session")
def poll_config() -> PollConfig:
    """Poll options shared by every network wait in the portal scenarios."""
    return PollConfig(
        timeout_ms=TIMEOUT_MS,
        interval_ms=INTERVAL_MS,
        error_message="Timeout reached",
        verbose=True,
        check_message="WaitUntil Check Happened",
    )


@pytest_asyncio.fixture
async def page(portal_base_url: str, browser_name: str, headless: bool):
    """Fresh browser page whose relative navigations resolve against the portal."""
    async with async_playwright() as playwright:
        browser_type = getattr(playwright, browser_name)
        browser = await browser_type.launch(headless=headless)
        context = await browser.new_context(base_url=portal_base_url, viewport={"width": 1400, "height": 1000})
        try:
            yield await context.new_page()
        finally:
            await context.close()
            await browser.close()


@pytest_asyncio.fixture
async def station_page(page, poll_config: PollConfig) -> StationDataPage:
    """Adjusted station data page, already opened."""
    station_data = StationDataPage(page, poll_config)
    await station_data.visit()
    return station_data


# ============================================================================
#  Pytest Configuration
# ============================================================================

def pytest_configure(config: pytest.Config) -> None:  # pragma: no cover - pytest hook
    """Configure pytest markers for the portal test suite."""

    # Test scope markers
    config.addinivalue_line("markers", "unit: Fast tests with no browser or network access")
    config.addinivalue_line("markers", "integration: Tests against a live OGC API")
    config.addinivalue_line("markers", "e2e: Browser scenarios against a live portal")

    # Test type markers
    config.addinivalue_line("markers", "requires_portal: Needs a running climate data portal")
    config.addinivalue_line("markers", "requires_api: Needs a reachable OGC API")
    config.addinivalue_line("markers", "browser: Tests driving a Playwright browser")
    config.addinivalue_line("markers", "polling: Tests for the condition poller")

    # Collection markers
    config.addinivalue_line("markers", "ogc_features: Tests for OGC API - Features responses")
    config.addinivalue_line("markers", "ahccd: Tests for the AHCCD collections")

    # Misc markers
    config.addinivalue_line("markers", "slow: Marks tests as slow (deselect with '-m \"not slow\"')")


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """
    Modify test collection to add automatic markers.
    """
    for item in items:
        if "portal_base_url" in item.fixturenames:
            item.add_marker(pytest.mark.requires_portal)
        if "api_base_url" in item.fixturenames:
            item.add_marker(pytest.mark.requires_api)

        # Auto-mark tests based on file name
        test_file = str(item.fspath)
        if "test_ahccd_e2e" in test_file:
            item.add_marker(pytest.mark.browser)
            item.add_marker(pytest.mark.ahccd)
            item.add_marker(pytest.mark.slow)
        elif "test_ahccd_api" in test_file:
            item.add_marker(pytest.mark.ogc_features)
            item.add_marker(pytest.mark.ahccd)
        elif "test_polling" in test_file:
            item.add_marker(pytest.mark.polling)
