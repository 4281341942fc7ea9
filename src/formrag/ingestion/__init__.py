"""Customer data ingestion pipeline."""

from .chunking import TextWindow, Tokenizer, token_windows
from .flatten import flatten
from .service import CustomerDataIngestor, IngestionConfig, make_chunk_id

__all__ = [
    "CustomerDataIngestor",
    "IngestionConfig",
    "TextWindow",
    "Tokenizer",
    "flatten",
    "make_chunk_id",
    "token_windows",
]
