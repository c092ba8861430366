"""Portfolio test data.

The suite is driven by a JSON file of portfolio entries (symbol, company
name, purchase price) and named scenarios. The file is read once, eagerly,
into a ``StockDataSet`` which is then handed to whoever needs it.
"""

import json
import random
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from nse_stock.exceptions import DataSetError
from nse_stock.logger import get_logger
from nse_stock.models import UNKNOWN_COMPANY, StockRecord

log = get_logger(__name__)


class PortfolioEntry(BaseModel):
    """One holding from the ``nifty50_stocks`` collection."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    symbol: str = Field(..., min_length=1)
    company_name: str = Field(default=UNKNOWN_COMPANY, alias="companyName")
    purchase_price: float = Field(default=0.0, ge=0.0, alias="purchasePrice")

    @field_validator("symbol")
    @classmethod
    def normalize_symbol(cls, value: str) -> str:
        return value.strip().upper()

    def to_record(self) -> StockRecord:
        """Seed a record with what the portfolio already knows."""
        return StockRecord(
            symbol=self.symbol,
            company_name=self.company_name,
            purchase_price=self.purchase_price,
        )


class ScenarioDescriptor(BaseModel):
    """One entry of the ``test_scenarios`` collection."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str = Field(..., alias="testName")
    description: str = ""


class StockDataSet(BaseModel):
    """In-memory view of the test-data file with lookup helpers."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    stocks: list[PortfolioEntry] = Field(default_factory=list, alias="nifty50_stocks")
    scenarios: list[ScenarioDescriptor] = Field(default_factory=list, alias="test_scenarios")

    def symbols(self) -> list[str]:
        return [entry.symbol for entry in self.stocks]

    def get_stock(self, symbol: str) -> PortfolioEntry | None:
        """Case-insensitive lookup by symbol."""
        wanted = symbol.strip().upper()
        for entry in self.stocks:
            if entry.symbol == wanted:
                return entry
        return None

    def purchase_price(self, symbol: str) -> float:
        entry = self.get_stock(symbol)
        return entry.purchase_price if entry is not None else 0.0

    def company_name(self, symbol: str) -> str:
        entry = self.get_stock(symbol)
        return entry.company_name if entry is not None else UNKNOWN_COMPANY

    def stocks_for_parallel_testing(self, count: int) -> list[PortfolioEntry]:
        """First ``count`` entries (fewer if the file holds fewer)."""
        return self.stocks[: max(count, 0)]

    def random_stock(self, rng: random.Random | None = None) -> PortfolioEntry | None:
        if not self.stocks:
            return None
        return (rng or random).choice(self.stocks)

    def scenario_descriptions(self) -> list[str]:
        """``"name: description"`` lines, for the report header."""
        return [f"{scenario.name}: {scenario.description}" for scenario in self.scenarios]

    def is_valid(self) -> bool:
        return bool(self.stocks)


def load_test_data(path: Path) -> StockDataSet:
    """Read and validate the test-data JSON file.

    Args:
        path: Location of the JSON file.

    Returns:
        The parsed data set.

    Raises:
        DataSetError: If the file is missing, not JSON, or fails validation.
    """
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise DataSetError(path=str(path), reason="file not found") from exc
    except json.JSONDecodeError as exc:
        raise DataSetError(path=str(path), reason=f"invalid JSON: {exc}") from exc
    except OSError as exc:
        raise DataSetError(path=str(path), reason=str(exc)) from exc

    try:
        data_set = StockDataSet.model_validate(raw)
    except ValidationError as exc:
        raise DataSetError(path=str(path), reason=str(exc)) from exc

    log.info(
        "Test data loaded",
        path=str(path),
        stocks=len(data_set.stocks),
        scenarios=len(data_set.scenarios),
    )
    return data_set
