"""Tests for saving, loading and migrating game state."""

import copy
import json

import pytest

from idlefarm.constants import CURRENT_SAVE_VERSION, FARM_GRID, HOUR, MAX_LEVEL, ORCHARD_GRID, RECOVERY_OPTIONS
from idlefarm.persistence import (
    CorruptSaveError,
    MissingFieldsError,
    SaveManager,
    UnsupportedVersionError,
    decode_text,
    deserialize,
    encode_text,
    export_text,
    migrate,
    serialize,
    validate_and_sanitize,
)
from idlefarm.progression import xp_for_level
from idlefarm.state import GameState
from idlefarm.tile import EMPTY, GROWING, READY


def _played_game(t0):
    """A game with coins, levels, crops and a tree on cooldown."""
    game = GameState()
    game.wallet.credit(20000)
    game.progression.gain_xp(300)
    game.farm.unlock()
    game.click_tile(FARM_GRID, 0, t0)
    game.click_tile(FARM_GRID, 1, t0 + 5000)
    game.tick(t0 + 25000)
    game.orchard.purchase_access()
    game.click_tile(ORCHARD_GRID, 0, t0 - 12 * HOUR)
    game.tick(t0)
    game.orchard.harvest_at(0, t0)
    return game


def _assert_same_state(a, b):
    assert a.coins == b.coins
    assert a.progression == b.progression
    assert a.selected_crop == b.selected_crop
    assert a.selected_tree == b.selected_tree
    for grid_a, grid_b in ((a.farm, b.farm), (a.orchard, b.orchard)):
        assert grid_a.unlocked_tiles == grid_b.unlocked_tiles
        assert grid_a.tiles == grid_b.tiles
    assert a.orchard.unlocked == b.orchard.unlocked
    assert a.orchard.saplings_unlocked == b.orchard.saplings_unlocked


def _legacy_record(t0):
    return {
        "coins": 50,
        "unlockedTiles": 3,
        "farmGrid": [
            {"state": "growing", "cropId": "corn", "plantedAt": t0},
            {"state": "empty", "cropId": None, "plantedAt": None},
        ],
        "trees": {"unlocked": True, "unlockedTiles": 1, "unlockedTrees": ["oak", "birch"], "tiles": []},
    }


class TestSerialize:
    def test_record_shape(self, t0):
        game = _played_game(t0)
        record = serialize(game, t0)
        assert record["version"] == CURRENT_SAVE_VERSION
        assert record["savedAt"] == t0
        assert record["coins"] == game.coins
        assert record["farm"]["unlockedTiles"] == 2
        assert len(record["farm"]["tiles"]) == 25
        assert record["farm"]["tiles"][0] == {"state": READY, "cropId": "corn", "plantedAt": t0, "isCooldown": False}
        assert record["trees"]["tiles"][0]["isCooldown"] is True
        assert record["trees"]["saplingsUnlocked"]["oak"] is True
        assert record["player"] == game.progression.snapshot()
        json.dumps(record)

    def test_round_trip(self, t0):
        game = _played_game(t0)
        restored = GameState()
        restored.apply_record(deserialize(json.dumps(serialize(game, t0)), restored.catalog), t0)
        _assert_same_state(game, restored)


class TestMigrate:
    def test_legacy_record_is_brought_forward(self, t0):
        legacy = _legacy_record(t0)
        original = copy.deepcopy(legacy)
        migrated = migrate(legacy)

        assert legacy == original
        assert migrated["version"] == 2
        assert migrated["farm"]["unlockedTiles"] == 3
        assert migrated["farm"]["tiles"][0]["cropId"] == "corn"
        assert "farmGrid" not in migrated
        assert "unlockedTrees" not in migrated["trees"]
        assert migrated["trees"]["saplingsUnlocked"]["oak"] is True
        assert migrated["trees"]["saplingsUnlocked"]["birch"] is True
        assert migrated["trees"]["saplingsUnlocked"]["maple"] is False
        assert migrated["player"] == {"level": 1, "xp": 0, "xpToNext": 100}

    def test_missing_trees_section(self):
        migrated = migrate({"version": 1, "coins": 0, "farm": {}, "player": {}})
        assert migrated["trees"]["unlocked"] is False
        assert set(migrated["trees"]["saplingsUnlocked"]) >= {"oak", "worldTree"}

    def test_migration_is_idempotent(self, t0):
        once = migrate(_legacy_record(t0))
        assert migrate(once) == once

        current = serialize(_played_game(t0), t0)
        assert migrate(current) == current

    def test_newer_version_is_rejected(self):
        with pytest.raises(UnsupportedVersionError):
            migrate({"version": CURRENT_SAVE_VERSION + 1})

    def test_invalid_version_is_corrupt(self):
        with pytest.raises(CorruptSaveError):
            migrate({"version": "two"})


class TestDeserialize:
    def test_rejects_bad_json(self, game):
        with pytest.raises(CorruptSaveError):
            deserialize("{not json", game.catalog)
        with pytest.raises(CorruptSaveError):
            deserialize("[1, 2]", game.catalog)

    def test_rejects_deeply_nested_json(self, game):
        with pytest.raises(CorruptSaveError):
            deserialize("[" * 100000 + "]" * 100000, game.catalog)

    def test_rejects_missing_mandatory_fields(self, game):
        with pytest.raises(MissingFieldsError):
            deserialize({"version": 2, "coins": 5, "farm": {}}, game.catalog)
        with pytest.raises(MissingFieldsError):
            deserialize({"version": 2, "farm": {}, "player": {}}, game.catalog)

    def test_legacy_record_loads(self, game, t0):
        record = deserialize(_legacy_record(t0), game.catalog)
        game.apply_record(record, t0 + 1000)
        assert game.coins == 50
        assert game.farm.unlocked_tiles == 3
        assert game.farm.tiles[0].state == GROWING
        assert game.orchard.unlocked
        assert game.orchard.is_sapling_unlocked("birch")

    def test_offline_growth_is_applied_on_restore(self, game, t0):
        record = serialize(game, t0)
        record["farm"]["tiles"][0] = {"state": "growing", "cropId": "corn", "plantedAt": t0, "isCooldown": False}
        record["trees"]["tiles"][0] = {"state": "growing", "cropId": "oak", "plantedAt": t0, "isCooldown": True}
        record["trees"]["tiles"][1] = {"state": "growing", "cropId": "oak", "plantedAt": t0, "isCooldown": False}

        game.apply_record(deserialize(record, game.catalog), t0 + 8 * HOUR)

        assert game.farm.tiles[0].state == READY
        assert game.orchard.tiles[0].state == READY
        assert game.orchard.tiles[0].is_cooldown is False
        assert game.orchard.tiles[1].state == GROWING


class TestSanitize:
    def test_clamps_and_defaults(self, game, t0):
        record = {
            "version": 2,
            "coins": -5,
            "selectedCrop": "nope",
            "selectedTree": "corn",
            "player": {"level": 0, "xp": -3, "xpToNext": 10},
            "farm": {
                "unlockedTiles": 99,
                "tiles": [
                    {"state": "growing", "cropId": "unknown", "plantedAt": t0},
                    {"state": "ready", "cropId": "oak", "plantedAt": t0},
                    {"state": "growing", "cropId": "corn", "plantedAt": "yesterday"},
                    {"state": "sleeping", "cropId": "corn", "plantedAt": t0},
                    {"state": "growing", "cropId": "corn", "plantedAt": t0, "isCooldown": True},
                    "garbage",
                ],
            },
            "trees": "not a dict",
        }
        clean = validate_and_sanitize(record, game.catalog)

        assert clean["coins"] == 0
        assert clean["selectedCrop"] == "corn"
        assert clean["selectedTree"] == "oak"
        assert clean["player"] == {"level": 1, "xp": 0, "xpToNext": 100}
        assert clean["farm"]["unlockedTiles"] == 25
        tiles = clean["farm"]["tiles"]
        assert len(tiles) == 25
        assert [t["state"] for t in tiles[:4]] == [EMPTY] * 4
        assert tiles[4] == {"state": GROWING, "cropId": "corn", "plantedAt": t0, "isCooldown": False}
        assert tiles[5]["state"] == EMPTY
        assert clean["trees"]["unlocked"] is False
        assert clean["trees"]["unlockedTiles"] == 1
        assert len(clean["trees"]["tiles"]) == 9
        assert not any(clean["trees"]["saplingsUnlocked"].values())

    def test_level_is_capped(self, game):
        clean = validate_and_sanitize(
            {"coins": 1, "farm": {}, "player": {"level": 5000, "xp": 200, "xpToNext": 1e300}}, game.catalog
        )
        assert clean["player"] == {"level": MAX_LEVEL, "xp": 200, "xpToNext": xp_for_level(MAX_LEVEL)}

    def test_only_growing_trees_keep_cooldown(self, game, t0):
        clean = validate_and_sanitize(
            {
                "coins": 1,
                "farm": {},
                "player": {},
                "trees": {
                    "tiles": [
                        {"state": "ready", "cropId": "oak", "plantedAt": t0, "isCooldown": True},
                        {"state": "growing", "cropId": "oak", "plantedAt": t0, "isCooldown": True},
                    ]
                },
            },
            game.catalog,
        )
        tiles = clean["trees"]["tiles"]
        assert tiles[0]["isCooldown"] is False
        assert tiles[1]["isCooldown"] is True

    def test_non_numeric_unlocked_tiles(self, game):
        clean = validate_and_sanitize(
            {"coins": 1, "player": {}, "farm": {"unlockedTiles": "x", "tiles": None}}, game.catalog
        )
        assert clean["farm"]["unlockedTiles"] == 1
        assert all(t["state"] == EMPTY for t in clean["farm"]["tiles"])

    def test_unknown_saplings_are_dropped(self, game):
        clean = validate_and_sanitize(
            {"coins": 1, "player": {}, "farm": {}, "trees": {"saplingsUnlocked": {"oak": True, "baobab": True}}},
            game.catalog,
        )
        assert clean["trees"]["saplingsUnlocked"]["oak"] is True
        assert "baobab" not in clean["trees"]["saplingsUnlocked"]


class TestTextEncoding:
    def test_export_decodes_to_record(self, t0):
        game = _played_game(t0)
        text = export_text(game, t0)
        assert json.loads(decode_text(text)) == serialize(game, t0)

    def test_decode_rejects_garbage(self):
        with pytest.raises(CorruptSaveError):
            decode_text("%%% not base64 %%%")
        with pytest.raises(CorruptSaveError):
            decode_text("")

    def test_encode_is_plain_ascii(self):
        assert encode_text({"icon": "🌽"}).isascii()


class TestSaveManager:
    def test_save_and_load(self, tmp_path, t0):
        game = _played_game(t0)
        assert SaveManager(game, str(tmp_path)).save(t0).ok

        loaded = GameState()
        result = SaveManager(loaded, str(tmp_path)).load(t0)

        assert result.ok
        _assert_same_state(game, loaded)
        assert result.ready_counts == {"crops": 2, "trees": 0}
        assert result.reason.startswith("Welcome back! 2 crops and 0 trees")

    def test_repeated_saves_are_identical(self, manager, tmp_path, t0):
        manager.save(t0)
        first = (tmp_path / "farm_game.json").read_text(encoding="utf-8")
        manager.save(t0)
        assert (tmp_path / "farm_game.json").read_text(encoding="utf-8") == first

    def test_load_without_save(self, manager):
        result = manager.load()
        assert not result.ok
        assert result.failure == "no_save"

    def test_corrupt_save_offers_recovery(self, manager, game, tmp_path, t0):
        game.wallet.credit(42)
        (tmp_path / "farm_game.json").write_text("{broken", encoding="utf-8")

        result = manager.load(t0)

        assert not result.ok
        assert result.failure == "corrupt"
        assert result.recovery_options == RECOVERY_OPTIONS
        assert game.coins == 42

    def test_too_new_save_is_not_applied(self, manager, game, tmp_path, t0):
        record = serialize(GameState(), t0)
        record["version"] = CURRENT_SAVE_VERSION + 1
        record["coins"] = 999
        (tmp_path / "farm_game.json").write_text(json.dumps(record), encoding="utf-8")

        result = manager.load(t0)

        assert result.failure == "unsupported_version"
        assert game.coins == 0

    def test_save_with_huge_level_loads(self, manager, game, tmp_path, t0):
        record = serialize(GameState(), t0)
        record["player"] = {"level": 5000, "xp": 200, "xpToNext": 100}
        (tmp_path / "farm_game.json").write_text(json.dumps(record), encoding="utf-8")

        result = manager.load(t0)

        assert result.ok, result.reason
        assert game.progression.level == MAX_LEVEL
        assert game.progression.xp < game.progression.xp_to_next
        game.progression.gain_xp(10 ** 6)
        assert game.progression.level == MAX_LEVEL

    def test_invalid_utf8_save_is_corrupt(self, manager, game, tmp_path, t0):
        game.wallet.credit(42)
        (tmp_path / "farm_game.json").write_bytes(b'{"coins": "\xff\xfe"}')

        result = manager.load(t0)

        assert result.failure == "corrupt"
        assert result.recovery_options == RECOVERY_OPTIONS
        assert game.coins == 42

    def test_storage_failure_is_reported(self, manager, game, monkeypatch, t0):
        def no_space(target, text):
            raise OSError(28, "No space left on device")

        monkeypatch.setattr(manager, "_safe_write", no_space)
        game.wallet.credit(7)
        result = manager.save(t0)

        assert not result.ok
        assert result.failure == "storage"
        assert "No space left" in result.reason
        assert game.coins == 7


class TestImport:
    def test_import_replaces_state_and_writes_backup(self, manager, game, t0):
        game.wallet.credit(123)
        source = _played_game(t0)

        result = manager.import_text(export_text(source, t0), confirm=lambda: True, now=t0)

        assert result.ok
        _assert_same_state(source, game)
        with open(manager.backup_path, encoding="utf-8") as f:
            backup = json.load(f)
        assert backup["coins"] == 123

    def test_cancelled_import_changes_nothing(self, manager, game, t0):
        game.wallet.credit(5)
        result = manager.import_text(export_text(_played_game(t0), t0), confirm=lambda: False, now=t0)
        assert result.failure == "cancelled"
        assert game.coins == 5
        assert not manager.has_backup()

    def test_invalid_text_is_rejected_before_confirmation(self, manager, game):
        asked = []
        result = manager.import_text("bm90IGpzb24=", confirm=lambda: asked.append(1) or True)
        assert not result.ok
        assert result.failure == "corrupt"
        assert asked == []

    def test_newer_version_import_is_rejected(self, manager, game, t0):
        game.wallet.credit(9)
        record = serialize(_played_game(t0), t0)
        record["version"] = CURRENT_SAVE_VERSION + 1

        result = manager.import_text(encode_text(record), confirm=lambda: True, now=t0)

        assert result.failure == "unsupported_version"
        assert game.coins == 9
        assert game.farm.tiles[0].is_empty()

    def test_regretted_import_can_be_undone(self, manager, game, t0):
        game.wallet.credit(77)
        manager.import_text(export_text(_played_game(t0), t0), confirm=lambda: True, now=t0)
        assert game.coins != 77

        result = manager.recover("restore_backup", t0)

        assert result.ok
        assert game.coins == 77


class TestRecovery:
    def test_restore_without_backup(self, manager):
        result = manager.restore_backup()
        assert result.failure == "no_backup"

    def test_reset(self, manager, game, t0):
        game.wallet.credit(10)
        result = manager.recover("reset", t0)
        assert result.ok
        assert game.coins == 0
        assert manager.has_save()

    def test_discard_removes_slots(self, manager, game, t0):
        manager.save(t0)
        manager.backup(t0)
        result = manager.recover("discard")
        assert result.ok
        assert not manager.has_save()
        assert not manager.has_backup()

    def test_unreadable_backup_is_corrupt(self, manager, game, tmp_path, t0):
        (tmp_path / "farm_game.backup.json").write_bytes(b"\xff\xfe\x00")
        result = manager.restore_backup(t0)
        assert result.failure == "corrupt"
        assert result.recovery_options == ("reset", "discard")

    def test_unknown_option(self, manager):
        with pytest.raises(ValueError):
            manager.recover("pray")
