"""Domain models for the BEG legacy migration.

The migration context lives in ``models.context`` and is not re-exported
here; it depends on the legacy readers, which depend on these models.
"""

from .config_models import CoordinatesConfig, DatabaseConfig, InvoiceGridLayout, MigrationSettings
from .error_record import ErrorRecord
from .invoice import AttachedFile, Container, RateLine
from .legacy_record import LegacyRecord
from .processing_result import InvoiceImportResult, MigrationResult, StageResult

__all__ = [
    # Configuration models
    "CoordinatesConfig",
    "DatabaseConfig",
    "InvoiceGridLayout",
    "MigrationSettings",
    # Legacy data
    "LegacyRecord",
    "Container",
    "RateLine",
    "AttachedFile",
    # Results
    "ErrorRecord",
    "StageResult",
    "InvoiceImportResult",
    "MigrationResult",
]
