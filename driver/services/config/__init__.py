"""Configuration package (Facade).

Re-exports the public config types so the rest of the codebase can import from a
single, stable path:

	from driver.services.config import DriverConfig

Keeps imports consistent and lets the internal module layout change without
touching call sites.
"""

from driver.services.config.database_config import DatabaseConfig
from driver.services.config.driver_config import DriverConfig

__all__ = ["DatabaseConfig", "DriverConfig"]
