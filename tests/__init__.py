"""Hermetic test suite for the NSE stock validator.

Test modules mirror the nse_stock/ package one-to-one. Nothing here
launches a browser or touches the network; the live checks against
nseindia.com live in suites/ and run only with ``-m live``.

Testing Philosophy:
    - Playwright pages are MagicMocks keyed by XPath (see conftest.py)
    - Focus coverage on the locator fallback chain and provisioner resolution
    - All output (logs, reports, screenshots) goes to tmp_path
"""
