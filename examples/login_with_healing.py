"""
Example: Login With Healing

Drives a login form through an AutomationSession. Patterns are saved to
a snapshot file, so a later run whose selectors no longer match can heal
from what worked before.
"""

import asyncio

from playwright.async_api import async_playwright

from resilient_agent import AutomationSession, ElementQuery, PatternMemoryStore
from resilient_agent.config import load_config
from resilient_agent.drivers import PlaywrightDriver
from resilient_agent.utils import setup_logging_from_settings


async def main():
    """Log in, then print what the session learned."""

    # Load configuration (from env vars, config files, or defaults)
    settings = load_config(memory={"snapshot_path": "patterns.rapm"})
    setup_logging_from_settings(settings.logging)

    store = PatternMemoryStore.from_settings(settings.memory)

    async with async_playwright() as p:
        browser = await p.chromium.launch(headless=False)
        page = await browser.new_page()
        await page.goto("https://www.saucedemo.com/")

        driver = await PlaywrightDriver.attach(page)
        session = AutomationSession(driver, store, settings)

        await session.type(ElementQuery.of("id:user-name", "attr:placeholder=Username", field_name="username"),
                           "standard_user")
        await session.type(ElementQuery.of("id:password", "attr:placeholder=Password", field_name="password"),
                           "secret_sauce")
        outcome = await session.click(
            ElementQuery.of("id:login-button", "attr:data-test=login-button", "text:Login", field_name="loginButton")
        )

        print(f"Login {'succeeded' if outcome.success else 'failed'}"
              f"{' (healed)' if outcome.healed else ''}")
        print(f"Current URL: {page.url}")
        print(f"Session stats: {session.get_stats()}")

        await browser.close()

    store.flush()
    print(f"Pattern memory: {store.get_statistics()}")


if __name__ == "__main__":
    asyncio.run(main())
