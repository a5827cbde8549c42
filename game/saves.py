"""
Epoch Atlas - Saves Module

What gets persisted for a player, and where:
- PlayerSave: cursors, round records, display alias, first-round flag
- FileSaveManager: one JSON file per user
- DatabaseSaveManager: one JSONB row per user (see db.py)

Older browser-era saves stored the same data under history_* keys with
scores as "Region_start-end" strings; from_save_dict() migrates those.
"""

import json
import logging
import os
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from config import DATABASE_URL, SAVE_DIR, SAVE_FORMAT_VERSION
from progress import ProgressStore
from scoring import ScoringEngine

logger = logging.getLogger(__name__)

# Legacy key -> current key
LEGACY_KEYS = {
    "history_progress": "progress",
    "history_continentScores": "records",
    "continentScores": "records",
    "history_userName": "player_name",
    "history_scrambledName": "alias",
    "history_firstRoundComplete": "first_round_complete",
}

KNOWN_KEYS = {"version", "progress", "records", "player_name", "alias",
              "first_round_complete", "saved_at", "user_id"}


def make_alias(name: str) -> str:
    """Display alias for a player: their name reversed"""
    return name[::-1]


def _maybe_json(value):
    """Legacy values were stored as strings"""
    if isinstance(value, str):
        try:
            return json.loads(value)
        except ValueError:
            return value
    return value


def _as_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


@dataclass
class PlayerSave:
    """Everything that survives between sessions"""

    progress: ProgressStore = field(default_factory=ProgressStore)
    scoring: ScoringEngine = field(default_factory=ScoringEngine)
    player_name: str = ""
    alias: str = ""
    first_round_complete: bool = False

    # Fields written by newer versions, passed through untouched
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_save_dict(self) -> Dict[str, Any]:
        data = dict(self.extra)
        data.update({
            "version": SAVE_FORMAT_VERSION,
            "player_name": self.player_name,
            "alias": self.alias,
            "first_round_complete": self.first_round_complete,
            "progress": self.progress.to_dict(),
            "records": self.scoring.to_list(),
            "saved_at": datetime.now().isoformat(),
        })
        return data

    @classmethod
    def from_save_dict(cls, data: Optional[Dict[str, Any]]) -> "PlayerSave":
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ValueError(f"Save data must be an object, not {type(data).__name__}")
        data = dict(data)
        for legacy, current in LEGACY_KEYS.items():
            if legacy in data:
                value = _maybe_json(data.pop(legacy))
                data.setdefault(current, value)

        progress = data.get("progress")
        if not isinstance(progress, dict):
            progress = {}

        save = cls(
            progress=ProgressStore.from_dict(progress),
            scoring=ScoringEngine.from_save(data.get("records")),
            player_name=data.get("player_name") or "",
            alias=data.get("alias") or "",
            first_round_complete=_as_bool(data.get("first_round_complete", False)),
            extra={k: v for k, v in data.items() if k not in KNOWN_KEYS},
        )
        if save.player_name and not save.alias:
            save.alias = make_alias(save.player_name)
        return save


def _safe_user_id(user_id: str) -> str:
    return re.sub(r'[^A-Za-z0-9_.-]', '_', user_id) or "anonymous"


class FileSaveManager:
    """Manages saving and loading progress as JSON files"""

    def __init__(self, save_dir: str = SAVE_DIR):
        self.save_dir = save_dir
        self._ensure_dir()

    def _ensure_dir(self):
        """Ensure save directory exists"""
        if not os.path.exists(self.save_dir):
            try:
                os.makedirs(self.save_dir)
            except OSError as e:
                logger.error(f"Could not create save directory {self.save_dir}: {e}")

    def _get_save_path(self, user_id: str) -> str:
        return os.path.join(self.save_dir, f"{_safe_user_id(user_id)}.json")

    def save(self, user_id: str, save: PlayerSave) -> bool:
        """
        Save progress to file.
        Returns True if successful.
        """
        try:
            save_data = save.to_save_dict()
            save_data["user_id"] = user_id
            with open(self._get_save_path(user_id), 'w', encoding='utf-8') as f:
                json.dump(save_data, f, indent=2, ensure_ascii=False)
            return True
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Save error for {user_id}: {e}")
            return False

    def load(self, user_id: str) -> Optional[PlayerSave]:
        """
        Load progress from file.
        Returns PlayerSave or None if not found.
        """
        filepath = self._get_save_path(user_id)
        if not os.path.exists(filepath):
            return None
        try:
            with open(filepath, 'r', encoding='utf-8') as f:
                return PlayerSave.from_save_dict(json.load(f))
        except (OSError, TypeError, ValueError, AttributeError) as e:
            logger.error(f"Load error for {user_id}: {e}")
            return None

    def delete(self, user_id: str) -> bool:
        """Delete a saved progress file"""
        try:
            filepath = self._get_save_path(user_id)
            if os.path.exists(filepath):
                os.remove(filepath)
            return True
        except OSError as e:
            logger.error(f"Delete error for {user_id}: {e}")
            return False


class DatabaseSaveManager:
    """Manages saving and loading progress in PostgreSQL"""

    def __init__(self, storage=None):
        if storage is None:
            from db import storage
        self.storage = storage

    def save(self, user_id: str, save: PlayerSave) -> bool:
        try:
            self.storage.save_progress(user_id, save.player_name or None, save.to_save_dict())
            return True
        except Exception as e:
            logger.error(f"Database save error for {user_id}: {e}")
            return False

    def load(self, user_id: str) -> Optional[PlayerSave]:
        try:
            row = self.storage.load_progress(user_id)
        except Exception as e:
            logger.error(f"Database load error for {user_id}: {e}")
            return None
        if not row:
            return None
        try:
            state = row.get("state")
            if isinstance(state, str):
                state = json.loads(state)
            return PlayerSave.from_save_dict(state)
        except (TypeError, ValueError, AttributeError) as e:
            logger.error(f"Corrupt database save for {user_id}: {e}")
            return None

    def delete(self, user_id: str) -> bool:
        try:
            self.storage.delete_progress(user_id)
            return True
        except Exception as e:
            logger.error(f"Database delete error for {user_id}: {e}")
            return False


def get_save_manager():
    """Database saves when DATABASE_URL is set, JSON files otherwise"""
    if DATABASE_URL:
        return DatabaseSaveManager()
    return FileSaveManager()
