from inventory_oracle.market.service import MarketDataService
from inventory_oracle.market.suppliers import PriceSource, SimulatedSupplierSource

__all__ = ["MarketDataService", "PriceSource", "SimulatedSupplierSource"]
