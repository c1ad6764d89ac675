"""CSV import module - bank statement parsing and deduplicated insertion."""
from app.imports.engine import (
    CsvImportEngine,
    CsvImportError,
    ImportJobNotFound,
    ImportConfig,
    ImportResult,
    BatchFailurePolicy,
)

__all__ = [
    "CsvImportEngine",
    "CsvImportError",
    "ImportJobNotFound",
    "ImportConfig",
    "ImportResult",
    "BatchFailurePolicy",
]
