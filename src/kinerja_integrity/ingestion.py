"""
kinerja_integrity/ingestion.py - Upload Boundary

Everything that touches bytes or files before the pipeline runs:
1. UTF-8 decoding with BOM tolerance and reported replacement
2. SHA-256 hashing for the audit trail
3. Wide-format CSV performance sheets (pandas) as pre-parsed records
4. File loading with format dispatch

The validation and recovery stages never do I/O; they receive what this
module produces.

Author: Kinerja Dashboard Project
License: MIT
"""

import hashlib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, IO, List, Optional, Tuple, Union
import logging

import numpy as np
import pandas as pd

from .models import ErrorType, IntegrityError, Severity

logger = logging.getLogger(__name__)

# Lower-cased, underscore/space-free header -> record field
DESCRIPTIVE_COLUMNS = {
    'name': 'name', 'nama': 'name', 'employeename': 'name',
    'id': 'id', 'employeeid': 'id',
    'nip': 'nip',
    'gol': 'gol', 'golongan': 'gol',
    'pangkat': 'pangkat',
    'position': 'position', 'jabatan': 'position',
    'subposition': 'sub_position', 'subjabatan': 'sub_position',
    'organizationallevel': 'organizational_level', 'level': 'organizational_level',
}

TEXT_SUFFIXES = ('.json', '.txt')


@dataclass
class UploadPayload:
    """One upload: either raw text/bytes or already-parsed records."""
    source_name: str
    input_hash: str
    size_bytes: int
    raw: Optional[Union[str, bytes]] = None
    records: Optional[List[Dict[str, Any]]] = None

    @property
    def is_pre_parsed(self) -> bool:
        return self.records is not None


# =============================================================================
# BYTES
# =============================================================================

def hash_payload(raw: Union[str, bytes]) -> str:
    """SHA-256 hex digest of the payload (text is hashed as UTF-8)."""
    if isinstance(raw, str):
        raw = raw.encode('utf-8', errors='surrogatepass')
    return hashlib.sha256(raw).hexdigest()


def _hash_file(filepath: Path) -> str:
    sha256 = hashlib.sha256()
    with open(filepath, 'rb') as f:
        for chunk in iter(lambda: f.read(8192), b''):
            sha256.update(chunk)
    return sha256.hexdigest()


def decode_payload(raw: bytes) -> Tuple[str, List[IntegrityError]]:
    """
    Decode an uploaded byte payload.

    A leading BOM is dropped. Invalid UTF-8 is replaced with U+FFFD and
    reported once as a recoverable encoding error.
    """
    try:
        return raw.decode('utf-8-sig'), []
    except UnicodeDecodeError as exc:
        text = raw.decode('utf-8-sig', errors='replace')
        invalid = text.count('\ufffd')
        logger.warning(f"Payload is not valid UTF-8; replaced {invalid} characters")
        return text, [IntegrityError(
            type=ErrorType.ENCODING_ERROR,
            message="Payload is not valid UTF-8",
            details=f"First invalid byte at offset {exc.start}; {invalid} characters replaced",
            severity=Severity.MEDIUM,
            recoverable=True,
            field_name='payload',
        )]


# =============================================================================
# CSV
# =============================================================================

def _header_key(column: str) -> str:
    return str(column).strip().lower().replace(' ', '').replace('_', '')


def _cell(value: Any) -> Optional[str]:
    if value is None or (isinstance(value, float) and np.isnan(value)):
        return None
    text = str(value).strip()
    return text or None


def load_performance_csv(source: Union[str, Path, IO]) -> List[Dict[str, Any]]:
    """
    Read a wide performance sheet into pre-parsed records.

    Descriptive columns are matched case-insensitively; every other column
    is a competency. Blank cells are missing values. Numeric cells become
    numbers; anything else is kept as text so the record validator can
    report it.
    """
    df = pd.read_csv(source, dtype=str, skipinitialspace=True)
    df.columns = [str(c).strip() for c in df.columns]

    rename_map = {}
    competency_columns = []
    for col in df.columns:
        target = DESCRIPTIVE_COLUMNS.get(_header_key(col))
        if target is not None and target not in rename_map.values():
            rename_map[col] = target
        else:
            competency_columns.append(col)

    numeric = {
        col: pd.to_numeric(df[col], errors='coerce') for col in competency_columns
    }

    records: List[Dict[str, Any]] = []
    for row_number in range(len(df)):
        record: Dict[str, Any] = {}
        for col, target in rename_map.items():
            value = _cell(df[col].iloc[row_number])
            if value is not None:
                record[target] = value

        performance = []
        for col in competency_columns:
            raw = _cell(df[col].iloc[row_number])
            if raw is None:
                continue
            number = numeric[col].iloc[row_number]
            score = float(number) if not pd.isna(number) else raw
            performance.append({'name': col, 'score': score})
        record['performance'] = performance
        records.append(record)

    logger.info(
        f"Loaded {len(records)} CSV records with {len(competency_columns)} competency columns"
    )
    return records


# =============================================================================
# FILES
# =============================================================================

def load_payload_file(filepath: Union[str, Path]) -> UploadPayload:
    """
    Load an upload from disk.

    ``.json``/``.txt`` files are kept as raw bytes for the parse cascade;
    ``.csv`` files are read into pre-parsed records.
    """
    filepath = Path(filepath)
    file_hash = _hash_file(filepath)
    size = filepath.stat().st_size
    logger.info(f"Loading file: {filepath.name} (SHA-256: {file_hash[:16]}...)")

    suffix = filepath.suffix.lower()
    if suffix in TEXT_SUFFIXES:
        return UploadPayload(
            source_name=filepath.name,
            input_hash=file_hash,
            size_bytes=size,
            raw=filepath.read_bytes(),
        )
    if suffix == '.csv':
        return UploadPayload(
            source_name=filepath.name,
            input_hash=file_hash,
            size_bytes=size,
            records=load_performance_csv(filepath),
        )
    raise ValueError(f"Unsupported file format: {filepath.suffix}")
