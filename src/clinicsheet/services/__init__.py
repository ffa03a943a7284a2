"""Service layer for billing sheet logic.

This package contains the pure functions and stateless services behind the
provider sheet. Services separate business logic from UI and storage
concerns and provide clear contracts for operations.

Services:
- projection_service: (view context, permission, locks) -> grid columns
- derivation_service: side effects of editing one field
- RowService: padding, placeholder conversion, delete, reorder, insert
"""

from .derivation_service import DerivationContext, HighlightEffect, RowPatch, derive_on_edit
from .projection_service import ColumnProjection, ColumnSpec, project_columns
from .row_service import RowService

__all__ = [
    "ColumnProjection",
    "ColumnSpec",
    "DerivationContext",
    "HighlightEffect",
    "RowPatch",
    "RowService",
    "derive_on_edit",
    "project_columns",
]
