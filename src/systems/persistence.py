import json
import os
import re
import hashlib
import shutil
from datetime import datetime
from typing import Any, Dict, List, Optional

from core.logger import get_logger

logger = get_logger(__name__)

SAVE_FORMAT_VERSION = "1.0"
AUTOSAVE_ID = "autosave"
MAX_MANUAL_SAVES = 10
BACKUPS_KEPT = 5

ENVELOPE_FIELDS = ["id", "name", "timestamp", "version", "data"]


def compute_checksum(envelope: dict) -> str:
    """
    Compute a SHA-256 checksum for save data integrity verification.
    Excludes the checksum field itself from computation.
    """
    data_copy = {k: v for k, v in envelope.items() if k != "checksum"}
    json_str = json.dumps(data_copy, sort_keys=True, separators=(',', ':'))
    return hashlib.sha256(json_str.encode('utf-8')).hexdigest()[:16]


def validate_save_data(envelope: dict) -> tuple:
    """
    Validate envelope structure and checksum.

    Returns:
        (is_valid: bool, error_message: str or None)
    """
    if not isinstance(envelope, dict):
        return False, "Save data is not a valid dictionary"

    missing = [f for f in ENVELOPE_FIELDS if f not in envelope]
    if missing:
        return False, f"Missing required fields: {', '.join(missing)}"

    if not isinstance(envelope["data"], dict):
        return False, "Save payload is not a dictionary"

    stored_checksum = envelope.get("checksum")
    if stored_checksum and stored_checksum != compute_checksum(envelope):
        return False, "Save file checksum mismatch - file may be corrupted"

    return True, None


def sanitize_slot_name(name: str) -> str:
    """Strip everything except letters, digits, underscore, dash and space."""
    safe = re.sub(r'[^a-zA-Z0-9_\- ]', '', str(name)).strip()
    return safe.replace(' ', '_')


def _payload(snapshot) -> Dict[str, Any]:
    if hasattr(snapshot, "to_dict"):
        return snapshot.to_dict()
    # Round-trip through JSON so callers never share structure with the save
    return json.loads(json.dumps(snapshot))


class SaveManager:
    """
    File-backed save/load collaborator. Every save is a self-describing JSON
    envelope; failures are logged and reported through return values.
    """

    def __init__(self, save_dir="data/saves", max_manual_saves=MAX_MANUAL_SAVES):
        self.save_dir = save_dir
        self.max_manual_saves = max_manual_saves
        self._counter = 0
        if not os.path.exists(self.save_dir):
            os.makedirs(self.save_dir)

    def _path(self, save_id: str) -> str:
        return os.path.join(self.save_dir, f"{sanitize_slot_name(save_id)}.json")

    def _new_id(self, name: str) -> str:
        self._counter += 1
        slug = sanitize_slot_name(name) or "save"
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
        return f"{slug}_{stamp}_{self._counter}"

    def _build_envelope(self, save_id: str, name: str, data: Dict[str, Any]) -> Dict[str, Any]:
        envelope = {
            "id": save_id,
            "name": name,
            "timestamp": datetime.now().isoformat(),
            "version": SAVE_FORMAT_VERSION,
            "data": data,
        }
        envelope["checksum"] = compute_checksum(envelope)
        return envelope

    def _write(self, envelope: Dict[str, Any]) -> bool:
        filepath = self._path(envelope["id"])
        try:
            with open(filepath, 'w') as f:
                json.dump(envelope, f, indent=4)
            return True
        except (OSError, TypeError, ValueError) as e:
            logger.error("Failed to write save %s: %s", filepath, e)
            return False

    def _read(self, filepath: str) -> Optional[Dict[str, Any]]:
        try:
            with open(filepath, 'r') as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            logger.error("Malformed save file %s: %s", filepath, e)
        except OSError as e:
            logger.error("Failed to read save file %s: %s", filepath, e)
        return None

    # --- Saving ---------------------------------------------------------

    def save(self, snapshot, name: Optional[str] = None) -> Optional[str]:
        """Write a named manual save. Returns its id, or None on failure."""
        name = name or f"Save {datetime.now():%Y-%m-%d %H:%M}"
        try:
            data = _payload(snapshot)
        except (TypeError, ValueError) as e:
            logger.error("Snapshot is not serializable: %s", e)
            return None

        save_id = self._new_id(name)
        if not self._write(self._build_envelope(save_id, name, data)):
            return None
        logger.info("Game saved as %s", save_id)
        self._prune_manual_saves()
        return save_id

    def autosave(self, snapshot) -> Optional[str]:
        """Overwrite the single autosave slot, keeping a rolling backup of the previous one."""
        try:
            data = _payload(snapshot)
        except (TypeError, ValueError) as e:
            logger.error("Snapshot is not serializable: %s", e)
            return None

        self.backup_save(self._path(AUTOSAVE_ID))
        if not self._write(self._build_envelope(AUTOSAVE_ID, "Autosave", data)):
            return None
        logger.debug("Autosave written")
        return AUTOSAVE_ID

    def backup_save(self, filepath: str) -> bool:
        """
        Create a backup of an existing save file before overwriting.

        Returns:
            True if backup succeeded or no backup needed, False on error
        """
        if not os.path.exists(filepath):
            return True

        try:
            backup_dir = os.path.join(self.save_dir, "backups")
            if not os.path.exists(backup_dir):
                os.makedirs(backup_dir)

            name, ext = os.path.splitext(os.path.basename(filepath))
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
            shutil.copy2(filepath, os.path.join(backup_dir, f"{name}_{timestamp}{ext}"))

            self._cleanup_old_backups(backup_dir, name, keep=BACKUPS_KEPT)
            return True
        except OSError as e:
            logger.warning("Backup of %s failed: %s", filepath, e)
            return False

    def _cleanup_old_backups(self, backup_dir: str, slot_prefix: str, keep: int = BACKUPS_KEPT):
        backups = sorted(
            (f for f in os.listdir(backup_dir) if f.startswith(slot_prefix) and f.endswith('.json')),
            reverse=True,
        )
        for old_backup in backups[keep:]:
            os.remove(os.path.join(backup_dir, old_backup))

    def _prune_manual_saves(self):
        manual = [s for s in self.list_saves() if s["id"] != AUTOSAVE_ID]
        for stale in manual[self.max_manual_saves:]:
            logger.info("Pruning old save %s", stale["id"])
            self.delete(stale["id"])

    # --- Loading --------------------------------------------------------

    def load(self, save_id: str) -> Optional[Dict[str, Any]]:
        """Return the saved payload for an id, or None if missing or corrupt."""
        filepath = self._path(save_id)
        if not os.path.exists(filepath):
            logger.warning("Save file not found: %s", filepath)
            return None

        envelope = self._read(filepath)
        is_valid, error = validate_save_data(envelope)
        if not is_valid:
            logger.error("Save validation failed for %s: %s", save_id, error)
            envelope = self._try_load_backup(sanitize_slot_name(save_id))
            if envelope is None:
                return None
            logger.info("Loaded %s from backup instead", save_id)
        return envelope["data"]

    def _try_load_backup(self, slot_name: str) -> Optional[Dict[str, Any]]:
        backup_dir = os.path.join(self.save_dir, "backups")
        if not os.path.exists(backup_dir):
            return None

        backups = sorted(
            (f for f in os.listdir(backup_dir) if f.startswith(slot_name) and f.endswith('.json')),
            reverse=True,
        )
        for backup in backups:
            envelope = self._read(os.path.join(backup_dir, backup))
            if validate_save_data(envelope)[0]:
                return envelope
        return None

    def list_saves(self) -> List[Dict[str, Any]]:
        """Metadata for every readable save, newest first."""
        saves = []
        for filename in os.listdir(self.save_dir):
            if not filename.endswith('.json'):
                continue
            envelope = self._read(os.path.join(self.save_dir, filename))
            if not isinstance(envelope, dict) or "id" not in envelope:
                continue
            saves.append({
                "id": envelope["id"],
                "name": envelope.get("name", envelope["id"]),
                "timestamp": envelope.get("timestamp", ""),
                "version": envelope.get("version"),
            })
        saves.sort(key=lambda s: s["timestamp"], reverse=True)
        return saves

    def delete(self, save_id: str) -> bool:
        filepath = self._path(save_id)
        if not os.path.exists(filepath):
            return False
        try:
            os.remove(filepath)
            return True
        except OSError as e:
            logger.error("Failed to delete save %s: %s", save_id, e)
            return False

    # --- Import / export ------------------------------------------------

    def export_save(self, save_id: str) -> Optional[str]:
        """The envelope for a save as a JSON string."""
        filepath = self._path(save_id)
        if not os.path.exists(filepath):
            return None
        envelope = self._read(filepath)
        if not validate_save_data(envelope)[0]:
            return None
        return json.dumps(envelope, indent=2)

    def import_save(self, text: str) -> Optional[str]:
        """Store an exported envelope under a fresh id. Returns the new id or None."""
        try:
            envelope = json.loads(text)
        except (TypeError, json.JSONDecodeError) as e:
            logger.error("Import failed, not valid JSON: %s", e)
            return None

        is_valid, error = validate_save_data(envelope)
        if not is_valid:
            logger.error("Import failed: %s", error)
            return None

        name = f"{envelope['name']} (imported)"
        save_id = self._new_id(envelope["name"])
        if not self._write(self._build_envelope(save_id, name, envelope["data"])):
            return None
        self._prune_manual_saves()
        return save_id
