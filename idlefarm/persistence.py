"""Saving, loading and migrating idlefarm game state.

Save records are plain JSON objects tagged with a ``version``. Loading runs
parse -> migrate -> validate/sanitize before anything touches the live game,
so a broken record never leaves the game half-restored. Records can also be
exported as base64 text for manual backup.
"""

from __future__ import annotations

import base64
import binascii
import copy
import json
import logging
import math
import os
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from .catalog import CROP, TREE, TREES, Catalog
from .constants import (
    BACKUP_FILENAME,
    BASE_XP_TO_NEXT,
    CURRENT_SAVE_VERSION,
    DEFAULT_CROP,
    DEFAULT_TREE,
    FARM_MAX_TILES,
    MAX_LEVEL,
    RECOVERY_OPTIONS,
    SAVE_FILENAME,
    TILE_STATES,
    TREE_MAX_TILES,
)
from .progression import xp_for_level
from .state import GameState
from .tile import EMPTY, GROWING, now_ms

logger = logging.getLogger(__name__)

MANDATORY_FIELDS = ("coins", "farm", "player")


# ----------------------------------------------------------------------
# Errors
# ----------------------------------------------------------------------
class SaveFormatError(Exception):
    """A save record cannot be turned into game state."""


class CorruptSaveError(SaveFormatError):
    """The record is not parsable or is structurally broken."""


class MissingFieldsError(CorruptSaveError):
    """Mandatory fields are still missing after migration."""


class UnsupportedVersionError(SaveFormatError):
    """The record was written by a newer version of the game."""


# ----------------------------------------------------------------------
# Serialization
# ----------------------------------------------------------------------
def serialize(game: GameState, now: Optional[int] = None) -> Dict[str, Any]:
    """Snapshot the whole game as a current-version save record."""

    return {
        "version": CURRENT_SAVE_VERSION,
        "savedAt": now_ms() if now is None else int(now),
        "coins": game.wallet.coins,
        "selectedCrop": game.selected_crop,
        "selectedTree": game.selected_tree,
        "farm": {
            "unlockedTiles": game.farm.unlocked_tiles,
            "tiles": [tile.to_record() for tile in game.farm.tiles],
        },
        "trees": {
            "unlocked": game.orchard.unlocked,
            "unlockedTiles": game.orchard.unlocked_tiles,
            "saplingsUnlocked": dict(game.orchard.saplings_unlocked),
            "tiles": [tile.to_record() for tile in game.orchard.tiles],
        },
        "player": game.progression.snapshot(),
    }


def encode_text(record: Dict[str, Any]) -> str:
    """Encode a record as base64 text safe to copy and paste."""

    raw = json.dumps(record, sort_keys=True).encode("utf-8")
    return base64.b64encode(raw).decode("ascii")


def decode_text(text: str) -> str:
    """Inverse of :func:`encode_text`. Returns the JSON string."""

    if not isinstance(text, str) or not text.strip():
        raise CorruptSaveError("Invalid save data - expected text")
    try:
        return base64.b64decode(text.strip(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as exc:
        raise CorruptSaveError(f"Save text is not valid base64: {exc}") from exc


def parse(raw: Any) -> Dict[str, Any]:
    """Turn JSON text (or an already parsed object) into a record dict."""

    try:
        if isinstance(raw, (str, bytes)):
            data = json.loads(raw)
        else:
            data = copy.deepcopy(raw)
    except ValueError as exc:
        raise CorruptSaveError(f"Save data is not valid JSON: {exc}") from exc
    except RecursionError as exc:
        raise CorruptSaveError("Save data is nested too deeply") from exc
    if not isinstance(data, dict):
        raise CorruptSaveError("Invalid save format!")
    return data


# ----------------------------------------------------------------------
# Migration
# ----------------------------------------------------------------------
def _read_version(data: Dict[str, Any]) -> int:
    version = data.get("version", 1)
    if version is None:
        return 1
    if isinstance(version, bool) or not isinstance(version, (int, float)) or not math.isfinite(version):
        raise CorruptSaveError(f"Invalid save version: {version!r}")
    return max(1, int(version))


def migrate(record: Dict[str, Any], tree_ids: Optional[Iterable[str]] = None) -> Dict[str, Any]:
    """Bring a record forward to the current schema version.

    Returns a new dict; the input is left untouched. Records that are
    already current come back unchanged, so migrating twice is the same as
    migrating once. Raises :class:`UnsupportedVersionError` for records newer
    than this game.
    """

    if tree_ids is None:
        tree_ids = [s.id for s in TREES]
    data = copy.deepcopy(record)
    version = _read_version(data)
    if version > CURRENT_SAVE_VERSION:
        raise UnsupportedVersionError(
            f"Save version {version} is too new. Current version: {CURRENT_SAVE_VERSION}"
        )

    if version < 2:
        # v1 prototypes kept the farm grid at the top level.
        if "farm" not in data and "farmGrid" in data:
            data["farm"] = {
                "unlockedTiles": data.pop("unlockedTiles", 1),
                "tiles": data.pop("farmGrid"),
            }

        # ... and had no leveling.
        if "player" not in data:
            data["player"] = {"level": 1, "xp": 0, "xpToNext": BASE_XP_TO_NEXT}

        trees = data.get("trees")
        if not isinstance(trees, dict):
            trees = {"unlocked": False, "saplingsUnlocked": {}}
            data["trees"] = trees
        saplings = trees.get("saplingsUnlocked")
        if not isinstance(saplings, dict):
            saplings = {}

        # Old saves stored unlocked saplings as a list of ids.
        legacy = trees.pop("unlockedTrees", None)
        if isinstance(legacy, list):
            for tree_id in legacy:
                if isinstance(tree_id, str):
                    saplings[tree_id] = True

        for tree_id in tree_ids:
            saplings.setdefault(tree_id, False)
        trees["saplingsUnlocked"] = saplings
        version = 2

    data["version"] = version
    return data


def _require_fields(data: Dict[str, Any]) -> None:
    missing = [key for key in MANDATORY_FIELDS if key not in data]
    missing += [key for key in ("farm", "player") if key in data and not isinstance(data[key], dict)]
    if missing:
        raise MissingFieldsError(f"Corrupted save data - missing required fields: {', '.join(missing)}")


# ----------------------------------------------------------------------
# Validation / sanitization
# ----------------------------------------------------------------------
def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _clamp_int(value: Any, low: int, high: int, label: str) -> int:
    if not _is_number(value):
        logger.warning("Invalid %s %r, resetting to %s", label, value, low)
        return low
    clamped = max(low, min(int(value), high))
    if clamped != value:
        logger.warning("Out of range %s %r, clamped to %s", label, value, clamped)
    return clamped


def _empty_tile() -> Dict[str, Any]:
    return {"state": EMPTY, "cropId": None, "plantedAt": None, "isCooldown": False}


def _sanitize_tile(data: Any, catalog: Catalog, category: str) -> Dict[str, Any]:
    if not isinstance(data, dict):
        return _empty_tile()

    state = data.get("state")
    if state not in TILE_STATES:
        if state is not None:
            logger.warning("Invalid tile state %r, clearing tile", state)
        return _empty_tile()
    if state == EMPTY:
        return _empty_tile()

    species = catalog.get(data.get("cropId"))
    if species is None or species.category != category:
        logger.warning("Invalid %s species %r on tile, clearing tile", category, data.get("cropId"))
        return _empty_tile()

    planted_at = data.get("plantedAt")
    if not _is_number(planted_at) or planted_at < 0:
        logger.warning("Invalid plantedAt %r on tile, clearing tile", planted_at)
        return _empty_tile()

    # Only a growing tree can be on cooldown.
    is_cooldown = data.get("isCooldown") is True and category == TREE and state == GROWING
    return {
        "state": state,
        "cropId": species.id,
        "plantedAt": int(planted_at),
        "isCooldown": is_cooldown,
    }


def _sanitize_tiles(tiles: Any, catalog: Catalog, category: str, size: int) -> List[Dict[str, Any]]:
    if not isinstance(tiles, list):
        logger.warning("Tiles for %s grid are not a list, resetting", category)
        tiles = []
    result = [_sanitize_tile(t, catalog, category) for t in tiles[:size]]
    while len(result) < size:
        result.append(_empty_tile())
    return result


def validate_and_sanitize(record: Dict[str, Any], catalog: Catalog) -> Dict[str, Any]:
    """Return a fully normalized copy of a migrated record.

    Out-of-range numbers are clamped, invalid ids fall back to defaults and
    malformed tiles become empty. Each fix is logged.
    """

    out: Dict[str, Any] = {"version": CURRENT_SAVE_VERSION}
    if _is_number(record.get("savedAt")):
        out["savedAt"] = int(record["savedAt"])

    coins = record.get("coins")
    if not _is_number(coins) or coins < 0:
        logger.warning("Invalid coins value %r, resetting to 0", coins)
        coins = 0
    out["coins"] = coins

    selected_crop = record.get("selectedCrop")
    if not catalog.is_valid_crop(selected_crop):
        logger.warning("Invalid selected crop %r, resetting to %s", selected_crop, DEFAULT_CROP)
        selected_crop = DEFAULT_CROP
    out["selectedCrop"] = selected_crop

    selected_tree = record.get("selectedTree")
    if not catalog.is_valid_tree(selected_tree):
        logger.warning("Invalid selected tree %r, resetting to %s", selected_tree, DEFAULT_TREE)
        selected_tree = DEFAULT_TREE
    out["selectedTree"] = selected_tree

    player = record.get("player")
    if not isinstance(player, dict):
        player = {}
    level = player.get("level")
    xp = player.get("xp")
    xp_to_next = player.get("xpToNext")
    out["player"] = {
        "level": min(int(level), MAX_LEVEL) if _is_number(level) and level >= 1 else 1,
        "xp": xp if _is_number(xp) and xp >= 0 else 0,
        "xpToNext": (
            min(int(xp_to_next), xp_for_level(MAX_LEVEL))
            if _is_number(xp_to_next) and xp_to_next >= BASE_XP_TO_NEXT
            else BASE_XP_TO_NEXT
        ),
    }
    if any(player.get(key) != value for key, value in out["player"].items()):
        logger.warning("Player data sanitized: %r -> %r", player, out["player"])

    farm = record.get("farm")
    if not isinstance(farm, dict):
        farm = {}
    out["farm"] = {
        "unlockedTiles": _clamp_int(farm.get("unlockedTiles"), 1, FARM_MAX_TILES, "farm unlockedTiles"),
        "tiles": _sanitize_tiles(farm.get("tiles"), catalog, CROP, FARM_MAX_TILES),
    }

    trees = record.get("trees")
    if not isinstance(trees, dict):
        trees = {}
    unlocked = trees.get("unlocked")
    if not isinstance(unlocked, bool):
        unlocked = False
    saplings_in = trees.get("saplingsUnlocked")
    if not isinstance(saplings_in, dict):
        saplings_in = {}
    saplings = {tree_id: saplings_in.get(tree_id) is True for tree_id in catalog.trees()}
    out["trees"] = {
        "unlocked": unlocked,
        "unlockedTiles": _clamp_int(trees.get("unlockedTiles", 1), 1, TREE_MAX_TILES, "tree unlockedTiles"),
        "saplingsUnlocked": saplings,
        "tiles": _sanitize_tiles(trees.get("tiles", []), catalog, TREE, TREE_MAX_TILES),
    }
    return out


def deserialize(raw: Any, catalog: Catalog) -> Dict[str, Any]:
    """Parse, migrate and sanitize a record.

    Raises :class:`SaveFormatError` (or a subclass) if the record cannot be
    used. The returned record is ready for :meth:`GameState.apply_record`.
    """

    data = parse(raw)
    migrated = migrate(data, catalog.trees())
    _require_fields(migrated)
    return validate_and_sanitize(migrated, catalog)


def export_text(game: GameState, now: Optional[int] = None) -> str:
    return encode_text(serialize(game, now))


# ----------------------------------------------------------------------
# Save slots
# ----------------------------------------------------------------------
@dataclass
class SaveResult:
    """Outcome of a save-slot operation, for display by the UI."""

    ok: bool
    reason: str
    failure: Optional[str] = None
    recovery_options: Tuple[str, ...] = ()
    ready_counts: Dict[str, int] = field(default_factory=dict)


class SaveManager:
    """Reads and writes a game to a main slot and a backup slot on disk."""

    def __init__(self, game: GameState, base_dir: str) -> None:
        self.game = game
        self.base_dir = base_dir

    @property
    def path(self) -> str:
        return os.path.join(self.base_dir, SAVE_FILENAME)

    @property
    def backup_path(self) -> str:
        return os.path.join(self.base_dir, BACKUP_FILENAME)

    def has_save(self) -> bool:
        return os.path.exists(self.path)

    def has_backup(self) -> bool:
        return os.path.exists(self.backup_path)

    # ------------------------------------------------------------------
    # Low-level I/O
    # ------------------------------------------------------------------
    def _safe_write(self, target: str, text: str) -> None:
        """Write text via a temporary file so a crash never truncates ``target``."""

        tmp = target + ".tmp"
        os.makedirs(os.path.dirname(target) or ".", exist_ok=True)
        with open(tmp, "w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, target)

    def _write_record(self, target: str, now: Optional[int]) -> None:
        text = json.dumps(serialize(self.game, now), indent=2, sort_keys=True)
        self._safe_write(target, text)

    def _read(self, target: str) -> str:
        try:
            with open(target, "r", encoding="utf-8") as f:
                return f.read()
        except UnicodeDecodeError as exc:
            raise CorruptSaveError(f"Save file is not valid UTF-8: {exc}") from exc

    # ------------------------------------------------------------------
    # Saving
    # ------------------------------------------------------------------
    def save(self, now: Optional[int] = None) -> SaveResult:
        """Write the live game to the main slot. Safe to call repeatedly."""

        try:
            self._write_record(self.path, now)
        except OSError as exc:
            logger.error("Save failed: %s", exc)
            return SaveResult(False, f"Save failed: {exc.strerror or exc}", failure="storage")
        return SaveResult(True, "Game saved!")

    def backup(self, now: Optional[int] = None) -> SaveResult:
        """Write the live game to the backup slot."""

        try:
            self._write_record(self.backup_path, now)
        except OSError as exc:
            logger.error("Backup failed: %s", exc)
            return SaveResult(False, f"Backup failed: {exc.strerror or exc}", failure="storage")
        return SaveResult(True, "Backup written.")

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------
    def _restore_from(self, raw: Any, now: Optional[int]) -> None:
        record = deserialize(raw, self.game.catalog)
        self.game.apply_record(record, now)

    def _format_failure(self, exc: SaveFormatError, recovery_options: Tuple[str, ...]) -> SaveResult:
        failure = "unsupported_version" if isinstance(exc, UnsupportedVersionError) else "corrupt"
        return SaveResult(False, str(exc), failure=failure, recovery_options=recovery_options)

    def load(self, now: Optional[int] = None) -> SaveResult:
        """Restore the game from the main slot.

        On a corrupt or too-new save the live game is left untouched and the
        result lists the recovery options the UI should offer.
        """

        if not self.has_save():
            return SaveResult(False, "No saved game found.", failure="no_save")
        try:
            self._restore_from(self._read(self.path), now)
        except OSError as exc:
            logger.error("Load failed: %s", exc)
            return SaveResult(False, f"Load failed: {exc.strerror or exc}", failure="storage")
        except SaveFormatError as exc:
            logger.error("Load failed: %s", exc)
            return self._format_failure(exc, RECOVERY_OPTIONS)

        # Write back in canonical format.
        written = self.save(now)
        if not written.ok:
            logger.warning("Loaded game could not be written back: %s", written.reason)

        counts = self.game.ready_counts()
        crops, trees = counts["crops"], counts["trees"]
        if crops or trees:
            message = (
                f"Welcome back! {crops} crop{'s' if crops != 1 else ''} and "
                f"{trees} tree{'s' if trees != 1 else ''} are ready to harvest!"
            )
        else:
            message = "Game loaded!"
        return SaveResult(True, message, ready_counts=counts)

    # ------------------------------------------------------------------
    # Export / import
    # ------------------------------------------------------------------
    def export_text(self, now: Optional[int] = None) -> str:
        return export_text(self.game, now)

    def import_text(self, text: str, confirm: Callable[[], bool], now: Optional[int] = None) -> SaveResult:
        """Replace the live game with an exported save.

        The text is fully validated first. ``confirm`` is then asked before
        anything is overwritten, and the current game is written to the
        backup slot immediately before the import is applied.
        """

        try:
            record = deserialize(decode_text(text), self.game.catalog)
        except SaveFormatError as exc:
            logger.error("Import failed: %s", exc)
            options = ("restore_backup",) if self.has_backup() else ()
            result = self._format_failure(exc, options)
            result.reason = f"Import failed: {exc}"
            return result

        if not confirm():
            return SaveResult(False, "Import cancelled.", failure="cancelled")

        backed_up = self.backup(now)
        if not backed_up.ok:
            return SaveResult(False, f"Import aborted: {backed_up.reason}", failure="storage")

        self.game.apply_record(record, now)
        written = self.save(now)
        if not written.ok:
            logger.warning("Imported game could not be written: %s", written.reason)
            return SaveResult(True, f"Save imported, but not written: {written.reason}", failure="storage")
        return SaveResult(True, "Save imported!", ready_counts=self.game.ready_counts())

    # ------------------------------------------------------------------
    # Recovery
    # ------------------------------------------------------------------
    def restore_backup(self, now: Optional[int] = None) -> SaveResult:
        if not self.has_backup():
            return SaveResult(False, "No backup found!", failure="no_backup")
        try:
            self._restore_from(self._read(self.backup_path), now)
        except OSError as exc:
            logger.error("Reading backup failed: %s", exc)
            return SaveResult(False, f"Backup restore failed: {exc.strerror or exc}", failure="storage")
        except SaveFormatError as exc:
            logger.error("Backup restore failed: %s", exc)
            result = self._format_failure(exc, ("reset", "discard"))
            result.reason = f"Backup restore also failed: {exc}"
            return result
        self.save(now)
        return SaveResult(True, "Restored from backup!", ready_counts=self.game.ready_counts())

    def reset_to_defaults(self, now: Optional[int] = None) -> SaveResult:
        self.game.reset()
        written = self.save(now)
        if not written.ok:
            return SaveResult(False, f"Reset to defaults, but {written.reason}", failure="storage")
        return SaveResult(True, "Reset to defaults!")

    def clear_corrupt_save(self) -> SaveResult:
        """Delete both slots. The live game is not changed."""

        try:
            for target in (self.path, self.backup_path):
                if os.path.exists(target):
                    os.remove(target)
        except OSError as exc:
            logger.error("Clearing saves failed: %s", exc)
            return SaveResult(False, f"Failed to clear corrupted save: {exc.strerror or exc}", failure="storage")
        return SaveResult(True, "Corrupted save cleared. Starting fresh!")

    def recover(self, option: str, now: Optional[int] = None) -> SaveResult:
        """Run one of the recovery options offered after a failed load."""

        if option == "restore_backup":
            return self.restore_backup(now)
        if option == "reset":
            return self.reset_to_defaults(now)
        if option == "discard":
            return self.clear_corrupt_save()
        raise ValueError(f"Unknown recovery option: {option}")
