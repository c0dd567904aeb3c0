"""
Column Mapping Module

Tenant- and product-scoped column configurations, and the resolver that maps
a spreadsheet's human-readable headers onto internal field keys.
"""

from datetime import datetime, timezone
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence
from enum import Enum
import uuid

from .storage import StorageInterface, StorageRecord
from .tenancy import TenantScopedStorage
from .errors import (
    DuplicateColumnConfiguration, MissingIdentifierColumn, NoColumnsMatched,
    NotFoundError, ValidationError
)
from .logging_config import get_logger, log_action


logger = get_logger("loan_recovery.column_mapping")

IDENTIFIER_KEY = "EMPID"


class ColumnDataType(Enum):
    TEXT = "text"
    NUMBER = "number"
    DATE = "date"
    PHONE = "phone"
    EMAIL = "email"
    URL = "url"
    CURRENCY = "currency"


@dataclass
class ColumnConfiguration(StorageRecord):
    """Internal field key -> display label for one tenant and product"""
    tenant_id: str
    column_name: str
    display_name: str
    product_name: Optional[str] = None
    data_type: ColumnDataType = ColumnDataType.TEXT
    is_active: bool = True
    is_custom: bool = False
    column_order: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ColumnConfiguration':
        data = dict(data)
        data['data_type'] = ColumnDataType(data.get('data_type', 'text'))
        return super().from_dict(data)


def _normalize(header: Any) -> str:
    if header is None:
        return ""
    return str(header).strip().lower()


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        # spreadsheet readers hand back 45.0 for a cell typed as 45
        value = int(value)
    return str(value).strip()


@dataclass
class ColumnMapping:
    """Resolved header row: column index -> internal key"""
    identifier_index: int
    columns: Dict[int, str] = field(default_factory=dict)
    ignored_headers: List[str] = field(default_factory=list)

    @property
    def matched_keys(self) -> List[str]:
        return list(self.columns.values())

    def map_row(self, cells: Sequence[Any]) -> Dict[str, str]:
        """Map one data row to {EMPID, <key>...}; missing or empty cells become ''"""
        def cell(index: int) -> str:
            return _cell_text(cells[index]) if index < len(cells) else ""

        record = {IDENTIFIER_KEY: cell(self.identifier_index)}
        for index, key in self.columns.items():
            record[key] = cell(index)
        return record


def resolve_headers(configurations: Sequence[ColumnConfiguration],
                    headers: Sequence[Any],
                    identifier_header: str = IDENTIFIER_KEY) -> ColumnMapping:
    """
    Resolve a header row against the active column configurations.

    The first header must be the identifier column (case-insensitive,
    trimmed). Other headers are matched against display names; unmatched
    ones are reported as ignored.

    Raises:
        MissingIdentifierColumn: first header is not the identifier
        NoColumnsMatched: no other header matched a configuration
    """
    if not headers or _normalize(headers[0]) != identifier_header.strip().lower():
        raise MissingIdentifierColumn(
            f'{identifier_header} column not found. The first column must be named '
            f'"{identifier_header}" (case insensitive).'
        )

    by_label: Dict[str, str] = {}
    for config in configurations:
        if config.is_active:
            by_label.setdefault(_normalize(config.display_name), config.column_name)

    mapping = ColumnMapping(identifier_index=0)
    for index, header in enumerate(headers[1:], start=1):
        label = _normalize(header)
        if not label:
            continue
        key = by_label.get(label)
        if key is None:
            mapping.ignored_headers.append(str(header).strip())
        else:
            mapping.columns[index] = key

    if not mapping.columns:
        expected = ", ".join(c.display_name for c in configurations if c.is_active)
        raise NoColumnsMatched(
            "No columns in the file match the configured columns for this product. "
            f"Expected columns: {expected}"
        )

    if mapping.ignored_headers:
        logger.warning("Unmapped headers will be ignored: %s", mapping.ignored_headers)
    return mapping


class ColumnConfigManager:
    """Tenant column configurations, unique per (tenant, column, product)"""

    def __init__(self, storage: StorageInterface,
                 clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)):
        self.storage = storage
        self.clock = clock
        self.columns_table = "column_configurations"

    def _scoped(self, tenant_id: str) -> TenantScopedStorage:
        return TenantScopedStorage(self.storage, tenant_id)

    def create_column(self, tenant_id: str, column_name: str, display_name: str,
                      product_name: Optional[str] = None,
                      data_type: ColumnDataType = ColumnDataType.TEXT,
                      is_custom: bool = False,
                      column_order: Optional[int] = None) -> ColumnConfiguration:
        """Create a column configuration"""
        column_name = (column_name or "").strip()
        display_name = (display_name or "").strip()
        if not column_name or not display_name:
            raise ValidationError("column_name and display_name are required")
        if _normalize(display_name) == IDENTIFIER_KEY.lower():
            raise ValidationError(f"'{IDENTIFIER_KEY}' is reserved for the identifier column")

        existing = self._scoped(tenant_id).find(
            self.columns_table, {"column_name": column_name, "product_name": product_name}
        )
        if existing:
            raise DuplicateColumnConfiguration(
                f"Column '{column_name}' already configured for product '{product_name}'"
            )

        if column_order is None:
            column_order = len(self.list_columns(tenant_id, product_name, active_only=False)) + 1

        now = self.clock()
        config = ColumnConfiguration(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            tenant_id=tenant_id,
            column_name=column_name,
            display_name=display_name,
            product_name=product_name,
            data_type=data_type,
            is_custom=is_custom,
            column_order=column_order
        )
        self._scoped(tenant_id).save(self.columns_table, config.id, config.to_dict())
        log_action(logger, "info", "Column configured", action="create_column",
                   resource=config.id, tenant_id=tenant_id,
                   extra={"column_name": column_name, "product_name": product_name})
        return config

    def get_column(self, tenant_id: str, column_id: str) -> Optional[ColumnConfiguration]:
        data = self._scoped(tenant_id).load(self.columns_table, column_id)
        if data:
            return ColumnConfiguration.from_dict(data)
        return None

    def list_columns(self, tenant_id: str, product_name: Optional[str] = None,
                     active_only: bool = True) -> List[ColumnConfiguration]:
        """Columns for a product, ordered by column_order"""
        filters: Dict[str, Any] = {"product_name": product_name}
        if active_only:
            filters["is_active"] = True
        columns = [
            ColumnConfiguration.from_dict(data)
            for data in self._scoped(tenant_id).find(self.columns_table, filters)
        ]
        columns.sort(key=lambda c: c.column_order)
        return columns

    def deactivate_column(self, tenant_id: str, column_id: str) -> ColumnConfiguration:
        config = self.get_column(tenant_id, column_id)
        if not config:
            raise NotFoundError(f"Column configuration {column_id} not found", column_id)
        config.is_active = False
        config.updated_at = self.clock()
        self._scoped(tenant_id).save(self.columns_table, config.id, config.to_dict())
        return config

    def labels(self, tenant_id: str, product_name: Optional[str] = None) -> Dict[str, str]:
        """Export direction: internal key -> display label"""
        return {c.column_name: c.display_name for c in self.list_columns(tenant_id, product_name)}
