"""
Flat JSON export of the catalog.

The snapshot is rebuilt from the store at the end of every scan, so right
after a scan both hold the same records.
"""
import os
import json
import logging
from datetime import datetime, UTC
from pathlib import Path
from typing import Any, Dict, Optional

from .. import config
from .store import CatalogStore


def build_snapshot(store: CatalogStore,
                   directory: Optional[Path] = None,
                   scan_duration: float = 0.0) -> Dict[str, Any]:
    now_iso = datetime.now(UTC).isoformat()
    summary = store.summary()
    summary['scanned_at'] = now_iso
    summary['scan_duration'] = round(scan_duration, 3)

    return {
        'version': config.SNAPSHOT_VERSION,
        'generated_at': now_iso,
        'directory': str(directory) if directory else None,
        'summary': summary,
        'files': [rec.to_dict() for rec in store.query()],
    }


def write_snapshot(store: CatalogStore,
                   json_path: Path,
                   directory: Optional[Path] = None,
                   scan_duration: float = 0.0) -> Dict[str, Any]:
    """Writes the snapshot atomically (temp file + rename) and returns it."""
    payload = build_snapshot(store, directory, scan_duration)

    json_path = Path(json_path)
    json_path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = json_path.with_name(json_path.name + '.tmp')
    tmp_path.write_text(json.dumps(payload, indent=2), encoding='utf-8')
    os.replace(tmp_path, json_path)

    logging.info(f"Snapshot saved: {json_path} ({len(payload['files'])} files)")
    return payload


def load_snapshot(json_path: Path) -> Dict[str, Any]:
    return json.loads(Path(json_path).read_text(encoding='utf-8'))
