"""
Excel processing service for invited guest import
"""

import io
import logging
import os
import zipfile
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from app.core.config import settings
from app.core.errors import ValidationError
from app.schemas.guest import GuestImportRow, ImportResult
from app.services.guest_service import GuestLifecycleService

logger = logging.getLogger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


class ExcelService:
    """Service for handling Excel operations"""

    REQUIRED_COLUMNS = ['name', 'phone', 'category']
    # normalized header -> import field
    COLUMN_ALIASES = {
        'name': 'name',
        'phone': 'phone',
        'category': 'category',
        'session': 'session',
        'limit': 'limit',
        'table': 'table_no',
        'table no': 'table_no',
        'table no.': 'table_no',
        'info': 'info',
        'code': 'code',
    }

    @staticmethod
    def create_template() -> bytes:
        """Create Excel template with the import columns"""
        df = pd.DataFrame(columns=[
            'Name', 'Phone', 'Category', 'Session', 'Limit', 'Table', 'Info', 'Code'
        ])

        # Add sample data for guidance
        sample_data = [
            ['Budi Santoso', '081234567890', 'VIP', 'Resepsi', 2, 'A1', 'Keluarga mempelai', ''],
            ['Siti Rahma', '+6281298765432', 'Regular', 'Akad', 1, 'B3', '', ''],
        ]

        for row in sample_data:
            df.loc[len(df)] = row

        buffer = io.BytesIO()
        with pd.ExcelWriter(buffer, engine='openpyxl') as writer:
            df.to_excel(writer, index=False, sheet_name='Guest List')

        return buffer.getvalue()

    @staticmethod
    def column_mapping(df: pd.DataFrame) -> Dict[str, Any]:
        mapping = {}
        for col in df.columns:
            field = ExcelService.COLUMN_ALIASES.get(str(col).lower().strip())
            if field and field not in mapping:
                mapping[field] = col
        return mapping

    @staticmethod
    def validate_excel_structure(df: pd.DataFrame) -> Tuple[bool, List[str]]:
        """Validate Excel file structure"""
        errors = []

        normalized_columns = [str(col).lower().strip() for col in df.columns]
        missing_columns = [col for col in ExcelService.REQUIRED_COLUMNS if col not in normalized_columns]

        if missing_columns:
            errors.append(f"Missing required columns: {', '.join(missing_columns)}")
        if df.empty:
            errors.append("The file contains no guest rows")

        return len(errors) == 0, errors

    @staticmethod
    def validate_data_constraints(df: pd.DataFrame) -> Tuple[bool, List[str]]:
        """Validate file-level constraints: numeric limits and codes unique within the file"""
        errors = []
        mapping = ExcelService.column_mapping(df)

        if 'limit' in mapping:
            limits = df[mapping['limit']].dropna()
            limits = limits[limits.astype(str).str.strip() != '']
            numeric = pd.to_numeric(limits, errors='coerce').astype(float)
            finite = numeric[np.isfinite(numeric)]
            if len(finite) != len(numeric) or (finite < 0).any() or (finite % 1 != 0).any():
                errors.append("Limit must be a non-negative whole number")

        if 'code' in mapping:
            codes = df[mapping['code']].dropna().astype(str).str.strip()
            codes = codes[codes != '']
            duplicates = codes[codes.duplicated()].unique()
            for code in duplicates:
                errors.append(f"Duplicate code '{code}' in file")

        return len(errors) == 0, errors

    @staticmethod
    def _cell(row: pd.Series, mapping: Dict[str, Any], field: str) -> str:
        if field not in mapping:
            return ''
        value = row[mapping[field]]
        if pd.isna(value):
            return ''
        return str(value).strip()

    @staticmethod
    def parse_rows(df: pd.DataFrame) -> List[GuestImportRow]:
        """Turn sheet rows into import rows, skipping rows without a name"""
        mapping = ExcelService.column_mapping(df)
        rows = []
        for _, row in df.iterrows():
            name = ExcelService._cell(row, mapping, 'name')
            if not name:
                continue

            limit_raw = ExcelService._cell(row, mapping, 'limit')
            limit: Optional[int] = int(float(limit_raw)) if limit_raw else None

            rows.append(GuestImportRow(
                name=name,
                phone=ExcelService._cell(row, mapping, 'phone'),
                category=ExcelService._cell(row, mapping, 'category'),
                session=ExcelService._cell(row, mapping, 'session'),
                limit=limit,
                table_no=ExcelService._cell(row, mapping, 'table_no'),
                info=ExcelService._cell(row, mapping, 'info'),
                code=ExcelService._cell(row, mapping, 'code') or None,
            ))
        return rows

    @staticmethod
    def read_excel(file_content: bytes) -> pd.DataFrame:
        try:
            # read as text so phone numbers keep their leading zero
            return pd.read_excel(io.BytesIO(file_content), dtype=str)
        except (ValueError, OSError, zipfile.BadZipFile) as e:
            raise ValidationError(f"Could not read Excel file: {e}")

    @staticmethod
    def save_original_file(file_content: bytes, account_id: str, filename: str, artifacts) -> str:
        """Save original uploaded file under the account's upload directory and record it"""
        upload_dir = os.path.join(settings.UPLOAD_DIR, account_id)
        os.makedirs(upload_dir, exist_ok=True)

        safe_name = os.path.basename(filename or 'guests.xlsx')
        stamp = datetime.utcnow().strftime('%Y%m%d%H%M%S')
        file_path = os.path.join(upload_dir, f"{stamp}_{safe_name}")
        with open(file_path, 'wb') as f:
            f.write(file_content)

        artifacts.add(account_id, safe_name, file_path)
        logger.info(f"Stored original upload {file_path} for account {account_id}")
        return file_path

    @staticmethod
    def process_excel_upload(
        file_content: bytes,
        filename: str,
        account_id: str,
        lifecycle: GuestLifecycleService,
    ) -> ImportResult:
        """Validate an uploaded sheet, keep the original and import its rows"""
        if len(file_content) > settings.MAX_UPLOAD_SIZE:
            raise ValidationError(
                "File too large",
                details={"max_bytes": settings.MAX_UPLOAD_SIZE},
            )

        df = ExcelService.read_excel(file_content)

        valid_structure, structure_errors = ExcelService.validate_excel_structure(df)
        if not valid_structure:
            raise ValidationError("Invalid Excel structure", details=structure_errors)

        valid_data, data_errors = ExcelService.validate_data_constraints(df)
        if not valid_data:
            raise ValidationError("Invalid Excel data", details=data_errors)

        rows = ExcelService.parse_rows(df)
        if not rows:
            raise ValidationError("The file contains no guest rows")

        ExcelService.save_original_file(file_content, account_id, filename, lifecycle.repos.artifacts)
        return lifecycle.import_invited_guests(account_id, rows)
