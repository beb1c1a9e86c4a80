"""
Excel parser for master mapping workbooks.

Reads the "Productos" and "Tiendas" sheets of a mapping workbook into
create models ready for bulk import. Row problems are collected as
ParseErrors; only an unreadable workbook raises.
"""

from dataclasses import dataclass, field
from io import BytesIO
from pathlib import Path
from typing import Optional, Union
import structlog

import pandas as pd

from models.master import ProductMappingCreate, StoreMappingCreate
from exceptions import ExcelParseError

logger = structlog.get_logger(__name__)

PRODUCT_SHEETS = ("Productos", "PRODUCTOS")
STORE_SHEETS = ("Tiendas", "TIENDAS")


@dataclass
class ParseError:
    """Single validation error from parsing."""
    sheet: str
    row: int
    field: str
    error: str


@dataclass
class MappingParseResult:
    """Result of parsing a mapping workbook."""
    products: list[ProductMappingCreate] = field(default_factory=list)
    stores: list[StoreMappingCreate] = field(default_factory=list)
    errors: list[ParseError] = field(default_factory=list)

    @property
    def success(self) -> bool:
        """True if no errors occurred."""
        return len(self.errors) == 0

    @property
    def has_data(self) -> bool:
        return len(self.products) > 0 or len(self.stores) > 0

    def to_dict(self) -> dict:
        """Convert to dictionary for API response."""
        return {
            "products": [p.model_dump() for p in self.products],
            "stores": [s.model_dump() for s in self.stores],
            "errors": [
                {
                    "sheet": e.sheet,
                    "row": e.row,
                    "field": e.field,
                    "error": e.error,
                }
                for e in self.errors
            ],
        }


def parse_mapping_excel(file: Union[str, Path, BytesIO]) -> MappingParseResult:
    """
    Parse a master mapping workbook.

    Args:
        file: File path (str/Path) or file-like object (BytesIO)

    Returns:
        MappingParseResult with product and store mappings plus errors

    Raises:
        ExcelParseError: If file cannot be read or has no mapping sheet
    """
    logger.info("parsing_mapping_excel", file_type=type(file).__name__)

    result = MappingParseResult()

    try:
        excel = pd.ExcelFile(file, engine="openpyxl")
    except Exception as e:
        logger.error("excel_read_failed", error=str(e))
        raise ExcelParseError(
            message="Failed to read Excel file",
            details={"original_error": str(e)}
        )

    product_sheet = _find_sheet(excel, PRODUCT_SHEETS)
    store_sheet = _find_sheet(excel, STORE_SHEETS)

    if product_sheet is None and store_sheet is None:
        raise ExcelParseError(
            message="Workbook has no Productos or Tiendas sheet",
            details={"sheets": list(excel.sheet_names)}
        )

    if product_sheet:
        _parse_product_sheet(excel, product_sheet, result)
    else:
        logger.debug("productos_sheet_not_found")

    if store_sheet:
        _parse_store_sheet(excel, store_sheet, result)
    else:
        logger.debug("tiendas_sheet_not_found")

    logger.info(
        "mapping_excel_parsed",
        product_count=len(result.products),
        store_count=len(result.stores),
        error_count=len(result.errors),
        success=result.success
    )

    return result


def _parse_product_sheet(
    excel: pd.ExcelFile,
    sheet_name: str,
    result: MappingParseResult
) -> None:
    """Parse the PRODUCTOS sheet."""
    df = _read_sheet(excel, sheet_name, ["distribuidor", "producto_distribuidor", "descripcion"], result)
    if df is None:
        return

    seen: dict[str, int] = {}

    for idx, row in df.iterrows():
        row_num = idx + 2  # Excel row (1-indexed + header)

        distributor = _cell_text(row.get("distribuidor"))
        product_code = _cell_text(row.get("producto_distribuidor"))
        description = _cell_text(row.get("descripcion"))

        # Skip empty rows
        if not (distributor or product_code or description):
            continue

        if not distributor:
            result.errors.append(ParseError(
                sheet=sheet_name,
                row=row_num,
                field="Distribuidor",
                error="Required field is empty"
            ))
            continue
        if not product_code:
            result.errors.append(ParseError(
                sheet=sheet_name,
                row=row_num,
                field="Producto Distribuidor",
                error="Required field is empty"
            ))
            continue

        mapping = ProductMappingCreate(
            distributor=distributor,
            product_distributor=product_code,
            product_description=description,
            code_product=_cell_text(row.get("codigo_producto")),
        )

        if mapping.search_key in seen:
            result.errors.append(ParseError(
                sheet=sheet_name,
                row=row_num,
                field="Producto Distribuidor",
                error=f"Duplicate of row {seen[mapping.search_key]}"
            ))
            continue

        seen[mapping.search_key] = row_num
        result.products.append(mapping)


def _parse_store_sheet(
    excel: pd.ExcelFile,
    sheet_name: str,
    result: MappingParseResult
) -> None:
    """Parse the TIENDAS sheet."""
    df = _read_sheet(excel, sheet_name, ["distribuidor", "tienda_distribuidor"], result)
    if df is None:
        return

    seen: dict[str, int] = {}

    for idx, row in df.iterrows():
        row_num = idx + 2

        distributor = _cell_text(row.get("distribuidor"))
        store_code = _cell_text(row.get("tienda_distribuidor"))

        if not (distributor or store_code):
            continue

        if not distributor or not store_code:
            result.errors.append(ParseError(
                sheet=sheet_name,
                row=row_num,
                field="Distribuidor" if not distributor else "Tienda Distribuidor",
                error="Required field is empty"
            ))
            continue

        mapping = StoreMappingCreate(
            distributor=distributor,
            store_distributor=store_code,
            code_store=_cell_text(row.get("codigo_tienda")),
        )

        if mapping.search_key in seen:
            result.errors.append(ParseError(
                sheet=sheet_name,
                row=row_num,
                field="Tienda Distribuidor",
                error=f"Duplicate of row {seen[mapping.search_key]}"
            ))
            continue

        seen[mapping.search_key] = row_num
        result.stores.append(mapping)


# ===================
# HELPER FUNCTIONS
# ===================

def _find_sheet(excel: pd.ExcelFile, candidates: tuple[str, ...]) -> Optional[str]:
    for name in candidates:
        if name in excel.sheet_names:
            return name
    return None


def _read_sheet(
    excel: pd.ExcelFile,
    sheet_name: str,
    required: list[str],
    result: MappingParseResult
) -> Optional[pd.DataFrame]:
    """Load a sheet as text with normalized headers, or record why not."""
    logger.debug("parsing_mapping_sheet", sheet=sheet_name)

    try:
        df = excel.parse(sheet_name, dtype=object)
    except Exception as e:
        result.errors.append(ParseError(
            sheet=sheet_name,
            row=0,
            field="sheet",
            error=f"Failed to read sheet: {str(e)}"
        ))
        return None

    df.columns = [_normalize_column(col) for col in df.columns]

    missing = [col for col in required if col not in df.columns]
    if missing:
        result.errors.append(ParseError(
            sheet=sheet_name,
            row=0,
            field="columns",
            error=f"Missing required columns: {', '.join(_denormalize_columns(missing))}"
        ))
        return None

    return df


def _normalize_column(col: str) -> str:
    """
    Normalize column name for consistent matching.

    "Producto Distribuidor" -> "producto_distribuidor"
    "Código Tienda" -> "codigo_tienda"
    "Descripción" -> "descripcion"
    """
    col = str(col).lower().strip()
    col = col.replace(" ", "_")
    col = col.replace("á", "a").replace("é", "e").replace("í", "i")
    col = col.replace("ó", "o").replace("ú", "u")
    return col


def _denormalize_columns(cols: list[str]) -> list[str]:
    """Convert normalized column names back to display names."""
    mapping = {
        "distribuidor": "Distribuidor",
        "producto_distribuidor": "Producto Distribuidor",
        "descripcion": "Descripción",
        "codigo_producto": "Código Producto",
        "tienda_distribuidor": "Tienda Distribuidor",
        "codigo_tienda": "Código Tienda",
    }
    return [mapping.get(col, col) for col in cols]


def _cell_text(value) -> Optional[str]:
    """
    Cell value as stripped text.

    Whole-number floats lose their ".0" so 1001.0 reads as "1001".
    """
    if value is None or pd.isna(value):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    return text or None
