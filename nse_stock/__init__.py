"""NSE stock validator core package.

Browser-driven checks of equity quote data on nseindia.com:
- provisioner: browser binary resolution, launch and thread-scoped handles
- locators: declarative per-field XPath fallback chains
- parsing / extractor: text-to-number conversion and StockRecord assembly
- navigator / details: page objects for the landing and quote pages
- models / dataset: StockRecord, check results and portfolio test data
- validator / retry: assertions, 52-week analysis and the retry policy
- workflow: check orchestration, one worker thread per browser
- reporter / screenshots: CSV, summary, HTML dashboard and PNG artefacts
- logger / exceptions: structured logging and the exception hierarchy
"""

__version__ = "1.0.0"
