from .errors import ConnectionClosed, ConnectionFailure, InvalidLabel, RouterError
from .fiscal_year import FiscalYear, fiscal_year_label, parse_fiscal_year_label, schema_name, utc_now

__all__ = [
    "ConnectionClosed",
    "ConnectionFailure",
    "FiscalYear",
    "InvalidLabel",
    "RouterError",
    "fiscal_year_label",
    "parse_fiscal_year_label",
    "schema_name",
    "utc_now",
]
