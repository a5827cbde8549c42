"""
Migration script to import browser-era progress exports.

Each export is a JSON object holding the old localStorage keys
(history_progress, history_continentScores, history_userName, ...).
Files are read from a directory; the file name (without .json) is used as
the user id. Converted progress goes to the active save manager.
"""

import json
import os
import sys

from saves import PlayerSave, get_save_manager


def migrate_export(filepath: str, save_manager) -> bool:
    """Convert one export file and save it. Returns True on success."""
    user_id = os.path.splitext(os.path.basename(filepath))[0]
    try:
        with open(filepath, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        print(f"  Error reading {filepath}: {e}")
        return False

    if not isinstance(data, dict):
        print(f"  Skipped {filepath}: not a JSON object")
        return False

    try:
        save = PlayerSave.from_save_dict(data)
    except (TypeError, ValueError, AttributeError) as e:
        print(f"  Skipped {filepath}: {e}")
        return False

    if save_manager.save(user_id, save):
        score = save.scoring.aggregate()
        print(f"  Migrated: {user_id} - {len(save.scoring.records)} records, {score.total_score} points")
        return True
    print(f"  Failed: {user_id}")
    return False


def migrate_directory(export_dir: str, save_manager=None) -> int:
    """Migrate every *.json file in export_dir"""
    if not os.path.isdir(export_dir):
        print(f"No export directory at {export_dir}, skipping")
        return 0

    save_manager = save_manager or get_save_manager()
    files = sorted(f for f in os.listdir(export_dir) if f.endswith('.json'))
    print(f"Found {len(files)} exports to migrate")

    migrated = 0
    for filename in files:
        if migrate_export(os.path.join(export_dir, filename), save_manager):
            migrated += 1

    print(f"Migrated {migrated}/{len(files)} exports")
    return migrated


def main():
    export_dir = sys.argv[1] if len(sys.argv) > 1 else "exports"

    print("=" * 60)
    print("EPOCH ATLAS PROGRESS MIGRATION")
    print("Browser exports -> Save storage")
    print("=" * 60)
    print()

    count = migrate_directory(export_dir)

    print()
    print("=" * 60)
    print("MIGRATION COMPLETE")
    print(f"  Exports migrated: {count}")
    print("=" * 60)


if __name__ == "__main__":
    main()
