"""
Tests for backup export, validation and restore.
"""

import datetime as dt
import json

import pytest

from harvestlog.services.backup import (
    BackupReadError,
    BackupValidationError,
    backup_filename,
    build_backup_payload,
    import_backup,
    load_backup_text,
    needs_safety_export,
    normalize_backup,
    read_backup_file,
    reconcile,
    write_backup,
)


def trip_json(**overrides):
    t = {"id": "t_file1", "dateISO": "2024-02-01", "dealer": "Bay Clam", "pounds": 40, "amount": 120, "area": "Area 61"}
    t.update(overrides)
    return t


def backup_text(trips=None, areas=None, dealers=None, settings=None, **top):
    data = {
        "trips": trips if trips is not None else [trip_json()],
        "areas": areas if areas is not None else ["Area 61"],
        "dealers": dealers if dealers is not None else ["Bay Clam"],
    }
    if settings is not None:
        data["settings"] = settings
    return json.dumps({"app": "Shellfish Tracker", "schemaVersion": 1, "data": data, **top})


class TestExport:
    """Payload shape and files."""

    def test_payload_shape(self, state):
        """Test the backup layout and legacy keys."""
        payload = build_backup_payload(state, exported_at="2024-03-01T00:00:00+00:00")
        assert payload["app"] == "Shellfish Tracker"
        assert payload["schemaVersion"] == payload["schema"] == 1
        assert payload["appVersion"] == payload["version"]
        assert payload["exportedAt"] == "2024-03-01T00:00:00+00:00"
        assert payload["data"]["trips"][0]["dateISO"] == "2024-01-15"
        assert payload["data"]["settings"] == {"units": "lb"}

    def test_filename(self):
        """Test the timestamped file name."""
        name = backup_filename("shellfish_backup", dt.datetime(2024, 3, 1, 7, 5))
        assert name == "shellfish_backup_2024-03-01_0705.json"

    def test_write_and_read_back(self, state, tmp_path):
        """Test that an exported file validates cleanly."""
        path = write_backup(build_backup_payload(state), str(tmp_path / "out"))
        result = normalize_backup(read_backup_file(path))
        assert result.ok
        assert result.warnings == []
        assert [t.id for t in result.payload.trips] == ["t_existing"]

    def test_needs_safety_export(self, state):
        """Test the safety export prompt condition."""
        assert needs_safety_export(state)
        state.trips, state.areas, state.dealers = [], [], []
        assert not needs_safety_export(state)


class TestReadErrors:
    """Unreadable input."""

    def test_not_json(self):
        """Test a non-JSON payload."""
        with pytest.raises(BackupReadError):
            load_backup_text("{oops")

    def test_missing_file(self, tmp_path):
        """Test a file that cannot be opened."""
        with pytest.raises(BackupReadError):
            read_backup_file(str(tmp_path / "nope.json"))


class TestNormalizeBackup:
    """Structural errors and warnings."""

    def test_missing_trips_rejected_without_mutation(self, state):
        """Test that a payload without trips is refused and nothing changes."""
        before = state.to_dict()
        saved = []
        text = json.dumps({"data": {"areas": [], "dealers": []}})
        with pytest.raises(BackupValidationError) as exc:
            import_backup(state, text, "merge", save=saved.append)
        assert any("trips" in e for e in exc.value.errors)
        assert state.to_dict() == before
        assert saved == []

    @pytest.mark.parametrize("raw, fragment", [
        ([1, 2], "not a JSON object"),
        ({"trips": {}, "areas": [], "dealers": []}, "trips must be a list"),
        ({"trips": [], "areas": [], "dealers": [], "settings": []}, "settings must be an object"),
        ({"trips": [], "areas": []}, "missing dealers"),
    ])
    def test_structural_errors(self, raw, fragment):
        """Test each blocking error."""
        result = normalize_backup(raw)
        assert not result.ok
        assert any(fragment in e for e in result.errors)

    def test_flat_legacy_layout(self):
        """Test a backup without a data section."""
        result = normalize_backup({"trips": [trip_json()], "areas": [], "dealers": []})
        assert result.ok
        assert len(result.payload.trips) == 1

    def test_warnings_skip_entries(self):
        """Test non-string names and unusable trips are skipped with warnings."""
        raw = json.loads(backup_text(
            trips=[trip_json(), trip_json(id="t_zero", pounds=0), "junk"],
            areas=["Area 61", 5, "  "],
            dealers=[None, "Bay Clam"],
            schemaVersion=99,
        ))
        result = normalize_backup(raw)
        assert result.ok
        assert [t.id for t in result.payload.trips] == ["t_file1"]
        assert result.payload.trips_skipped == 2
        assert result.payload.areas == ["Area 61"]
        assert result.payload.dealers == ["Bay Clam"]
        assert len(result.warnings) == 4

    def test_large_backup_warning(self, tmp_path, monkeypatch):
        """Test the configurable trip-count warning."""
        cfg = tmp_path / "cfg.yml"
        cfg.write_text("backup:\n  max_trips_warning: 1\n", encoding="utf-8")
        monkeypatch.setenv("HARVESTLOG_CONFIG", str(cfg))
        raw = json.loads(backup_text(trips=[trip_json(), trip_json(id="t_file2", dateISO="2024-02-02")]))
        result = normalize_backup(raw)
        assert result.ok
        assert any("Large backup" in w for w in result.warnings)


class TestReconcile:
    """Replace and merge."""

    def test_replace(self, state):
        """Test wholesale replacement; unusable trips are left out."""
        trips = [trip_json(), trip_json(id="t_zero", pounds=0)]
        result = normalize_backup(json.loads(backup_text(trips=trips, settings={"theme": "dark"})))
        assert result.payload.trips_skipped == 1
        summary = reconcile(state, result.payload, "replace")
        assert len(state.trips) == summary.trips_in_file == 1
        assert summary.trips_added == 1
        assert [t.id for t in state.trips] == ["t_file1"]
        assert state.areas == ["Area 61"]
        assert state.dealers == ["Bay Clam"]
        assert state.settings == {"theme": "dark"}

    def test_merge_is_non_destructive(self, state):
        """Test that merge keeps everything already present."""
        result = normalize_backup(json.loads(backup_text(settings={"units": "kg", "theme": "dark"})))
        summary = reconcile(state, result.payload, "merge")
        assert summary.trips_added == 1
        assert [t.id for t in state.trips] == ["t_existing", "t_file1"]
        assert state.areas == ["Area 62", "Area 61"]
        assert state.dealers == ["Acme Seafood", "Bay Clam"]
        assert state.settings == {"units": "lb", "theme": "dark"}

    def test_merge_skips_duplicates(self, state):
        """Test composite-key, likely-duplicate and same-file suppression."""
        trips = [
            trip_json(id="t_a", dateISO="2024-01-15", dealer="ACME SEAFOOD", pounds=43.5, amount=152.25, area=""),
            trip_json(id="t_b", dateISO="2024-01-15", dealer="Acme Seafood", pounds=43.6, amount=153.00),
            trip_json(id="t_c"),
            trip_json(id="t_d", pounds=40.1),
        ]
        result = normalize_backup(json.loads(backup_text(trips=trips)))
        summary = reconcile(state, result.payload, "merge")
        assert summary.trips_in_file == 4
        assert summary.trips_added == 1
        assert [t.id for t in state.trips] == ["t_existing", "t_c"]

    def test_merge_names_by_canonical_key(self, state):
        """Test that spelling variants are not appended twice."""
        result = normalize_backup(json.loads(backup_text(trips=[], areas=["AREA 62."], dealers=["acme seafood"])))
        reconcile(state, result.payload, "merge")
        assert state.areas == ["Area 62"]
        assert state.dealers == ["Acme Seafood"]

    def test_id_collision_gets_fresh_id(self, state):
        """Test that an imported id already in use is replaced."""
        result = normalize_backup(json.loads(backup_text(trips=[trip_json(id="t_existing")])))
        reconcile(state, result.payload, "merge")
        assert len(state.trips) == 2
        ids = [t.id for t in state.trips]
        assert len(set(ids)) == 2
        assert ids[0] == "t_existing"

    def test_unknown_mode(self, state):
        """Test that only replace and merge are accepted."""
        result = normalize_backup(json.loads(backup_text()))
        with pytest.raises(ValueError):
            reconcile(state, result.payload, "append")


class TestImportBackup:
    """End-to-end restore."""

    def test_merge_persists(self, state):
        """Test that a successful restore is saved exactly once."""
        saved = []
        summary = import_backup(state, backup_text(), "merge", save=saved.append)
        assert summary.mode == "merge"
        assert saved == [state]
        assert summary.to_dict()["tripsAdded"] == 1

    def test_replace_writes_safety_export(self, state, tmp_path):
        """Test the safety export before replacing a non-empty store."""
        safety = tmp_path / "safety"
        import_backup(state, backup_text(), "replace", safety_dir=str(safety), save=lambda s: None)
        files = list(safety.iterdir())
        assert len(files) == 1
        assert files[0].name.startswith("shellfish_safety_before_restore_")
        exported = json.loads(files[0].read_text(encoding="utf-8"))
        assert exported["data"]["trips"][0]["id"] == "t_existing"

    def test_read_error_bubbles(self, state):
        """Test that unreadable text raises before any change."""
        with pytest.raises(BackupReadError):
            import_backup(state, "not json", "replace", save=lambda s: None)
        assert [t.id for t in state.trips] == ["t_existing"]
