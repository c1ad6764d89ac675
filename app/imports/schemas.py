"""Pydantic schemas for CSV import."""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

from app.imports.csv_parser import ColumnPatterns


CAMEL_CONFIG = {"alias_generator": to_camel, "populate_by_name": True}


class MappingConfig(BaseModel):
    """Caller-supplied column aliases. Replaces bank detection entirely."""
    date_column: List[str] = Field(..., min_length=1)
    amount_column: List[str] = Field(..., min_length=1)
    description_column: List[str] = Field(..., min_length=1)

    model_config = CAMEL_CONFIG

    def to_patterns(self) -> ColumnPatterns:
        return ColumnPatterns(
            date_columns=tuple(self.date_column),
            amount_columns=tuple(self.amount_column),
            description_columns=tuple(self.description_column),
        )


class ImportRequest(BaseModel):
    """Body of POST /process-csv-import."""
    job_id: str
    csv_content: str
    mapping_config: Optional[MappingConfig] = None

    model_config = CAMEL_CONFIG


class ImportResponse(BaseModel):
    """Counts for one import. Row-level problems are counted, not raised."""
    success: bool = True
    imported: int
    duplicates: int
    errors: int
    bank_format: str

    model_config = CAMEL_CONFIG


class ImportJobCreate(BaseModel):
    file_name: Optional[str] = Field(default=None, max_length=255)

    model_config = CAMEL_CONFIG


class ImportJobResponse(BaseModel):
    """Progress record, polled by the client while an import runs."""
    id: str
    status: str
    file_name: Optional[str] = None
    total_rows: int
    processed_rows: int
    successful_rows: int
    failed_rows: int
    error_log: List[Dict[str, Any]]
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime

    model_config = {**CAMEL_CONFIG, "from_attributes": True}
