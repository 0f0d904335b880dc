from app.utils.hashing import generate_hash, generate_chain_hash
from app.utils.formatting import to_minor_units, format_currency, format_long_date

__all__ = [
    "generate_hash", "generate_chain_hash",
    "to_minor_units", "format_currency", "format_long_date",
]
