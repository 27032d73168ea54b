"""
Page object for the adjusted station data (AHCCD) page of the climate data portal.
"""
import logging
import re
from typing import Callable, Optional

from playwright.async_api import Locator, Page, expect

from .polling import PollConfig, poll

logger = logging.getLogger(__name__)

# Fragment route, resolved against the page base URL so a path prefix is kept
STATION_DATA_PATH = "#/adjusted-station-data"
STATION_TABLE = "table#station-select-table"
RECORD_COUNT_TEXT = re.compile(r"Total number of records: \d+")

# Pause after scrolling, before interacting
SCROLL_SETTLE_MS = 250
# Mimic a user pause after a zoom click
ZOOM_PAUSE_MS = 500


class StationDataPage:
    """Interactions with the map, filters, station table and download panel."""

    def __init__(self, page: Page, poll_config: Optional[PollConfig] = None):
        self.page = page
        self.poll_config = poll_config or PollConfig()

    async def visit(self) -> None:
        await self.page.goto(STATION_DATA_PATH)

    async def scroll_to(self, selector: str) -> Locator:
        locator = self.page.locator(selector).first
        await locator.scroll_into_view_if_needed()
        await self.page.wait_for_timeout(SCROLL_SETTLE_MS)
        return locator

    async def click(self, selector: str, force: bool = False) -> None:
        locator = await self.scroll_to(selector)
        await locator.click(force=force)

    # ------------------------------------------------------------------
    #  Form commands
    # ------------------------------------------------------------------

    async def select_var(self, selector: str, label: str, value: str) -> None:
        """Pick the option labelled ``label`` and check the select now holds ``value``."""
        select = await self.scroll_to(selector)
        await select.select_option(label=label)
        await expect(select).to_have_value(value)
        logger.debug("selected %r (%s) in %s", label, value, selector)

    async def input_text(self, selector: str, text: str) -> None:
        """Replace the input's content. A trailing ``{enter}`` submits with the Enter key."""
        submit = text.endswith("{enter}")
        if submit:
            text = text[: -len("{enter}")]
        field = await self.scroll_to(selector)
        await field.fill(text)
        if submit:
            await field.press("Enter")

    async def check_marker_clusters(self, min_count: int) -> int:
        """Wait until at least ``min_count`` marker clusters are drawn on the map."""
        clusters = self.page.locator(".marker-cluster:visible")

        async def probe() -> int:
            count = await clusters.count()
            assert count >= min_count, f"Expected at least {min_count} marker clusters, found {count}"
            return count

        return await poll(probe, self.poll_config)

    # ------------------------------------------------------------------
    #  Map
    # ------------------------------------------------------------------

    async def open_map_filters(self) -> None:
        await self.click("#map-filters-header")

    async def reset_map_view(self) -> None:
        await self.click("#reset-map-view")

    async def wait_for_map_loaded(self) -> None:
        await expect(self.page.locator("#map-loading-screen")).to_be_hidden()

    async def zoom_in(self, times: int = 1) -> None:
        for _ in range(times):
            await self.click("a.leaflet-control-zoom-in")
            await self.page.wait_for_timeout(ZOOM_PAUSE_MS)

    # ------------------------------------------------------------------
    #  Station table
    # ------------------------------------------------------------------

    async def _row_count(self, row_selector: str) -> int:
        await self.scroll_to(STATION_TABLE)
        return await self.page.locator(f"{STATION_TABLE} {row_selector}").count()

    async def selectable_station_count(self) -> int:
        return await self._row_count("tr.selectableStation")

    async def selected_station_count(self) -> int:
        return await self._row_count("tr.selectedStation")

    async def wait_for_station_count(self, predicate: Callable[[int], bool], description: str, selected: bool = False) -> int:
        """Poll the station table until ``predicate(count)`` holds."""
        counter = self.selected_station_count if selected else self.selectable_station_count

        async def probe() -> int:
            count = await counter()
            assert predicate(count), f"Expected {description} stations, found {count}"
            return count

        return await poll(probe, self.poll_config)

    async def select_station(self, station_id: str) -> None:
        row = self.page.locator(f"{STATION_TABLE} tr.selectable").filter(has_text=station_id).first
        await row.click()

    async def show_selected_stations(self) -> None:
        await self.page.locator("button#show-selected-stations").click()

    async def clear_selected_stations(self) -> None:
        await self.click("#clear-selected-stations", force=True)

    # ------------------------------------------------------------------
    #  Dates and downloads
    # ------------------------------------------------------------------

    async def expect_date_range_hidden(self) -> None:
        await expect(self.page.locator("#date-range-field")).to_be_hidden()

    async def retrieve_download_links(self, scroll: bool = True) -> None:
        if scroll:
            await self.click("#retrieve-download-links")
        else:
            await self.page.locator("#retrieve-download-links").click()

    async def expect_record_count_visible(self) -> None:
        record_count = self.page.locator("#num-records-oapif-download")
        await expect(record_count).to_contain_text(RECORD_COUNT_TEXT)
        await expect(record_count).to_be_visible()

    async def first_download_href(self) -> str:
        link_list = await self.scroll_to("#oapif-link-list")
        await link_list.wait_for(state="visible")
        first_link = self.page.locator("#oapif-link-list a").first
        href = await first_link.get_attribute("href")
        assert href, "First download link has no href"
        return href
