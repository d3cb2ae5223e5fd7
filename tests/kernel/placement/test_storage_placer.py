import os

import pytest

from sysextboot.adapters.storage_fs import point_symlink, read_link_target
from sysextboot.kernel.artifacts import ArtifactLocation
from sysextboot.kernel.errors import DownloadFailure, PlacementFailure, VerificationFailure
from sysextboot.kernel.placement import OemSlot, StoragePlacer
from tests.kernel.mocks import MockArtifactSource, MockMetadataReader, SpaceLimitedMover, write_image

# --- Fixtures ---

@pytest.fixture
def slot(boot_config):
    return OemSlot.from_config(boot_config, "azure")


@pytest.fixture
def source():
    return MockArtifactSource({"oem-azure.raw": b"fresh-oem-image"})


@pytest.fixture
def metadata():
    return MockMetadataReader()


@pytest.fixture
def mover():
    return SpaceLimitedMover()


@pytest.fixture
def placer(source, metadata, mover):
    return StoragePlacer(source=source, read_metadata=metadata, move=mover)


# --- Slot layout ---

def test_slot_layout(slot, boot_config):
    assert slot.name == "oem-azure"
    assert slot.download_name == "oem-azure.raw"
    assert slot.oem_path == boot_config.oem_store / "oem-azure-3510.2.1.raw"
    assert slot.root_path == boot_config.root_oem_store / "oem-azure-3510.2.1.raw"
    assert slot.initial_path == boot_config.oem_store / "oem-azure-initial.raw"
    assert slot.symlink == boot_config.extensions_dir / "oem-azure.raw"
    assert slot.migration_manifest == boot_config.oem_store / "migrate-oem-azure"


# --- Rule 1: pinned image already on the OEM partition ---

def test_pinned_oem_image_is_used_as_is(placer, slot, source, mover):
    write_image(slot.oem_path)

    placement = placer.place(slot)

    assert placement.location is ArtifactLocation.OEM_PARTITION
    assert placement.path == slot.oem_path
    assert read_link_target(slot.symlink) == slot.oem_path
    assert source.calls == []
    assert mover.moves == []


def test_oem_partition_wins_over_root_copy(placer, slot):
    write_image(slot.oem_path, b"on-oem")
    write_image(slot.root_path, b"on-root")

    placement = placer.place(slot)

    assert placement.location is ArtifactLocation.OEM_PARTITION
    assert slot.root_path.exists()


# --- Rule 2: pinned image only on the root partition ---

def test_root_image_is_promoted_to_oem_partition(placer, slot):
    write_image(slot.root_path, b"pinned")

    placement = placer.place(slot)

    assert placement.location is ArtifactLocation.OEM_PARTITION
    assert slot.oem_path.read_bytes() == b"pinned"
    assert not slot.root_path.exists()
    assert read_link_target(slot.symlink) == slot.oem_path


def test_root_image_stays_when_oem_partition_is_full(source, metadata, slot):
    placer = StoragePlacer(source=source, read_metadata=metadata, move=SpaceLimitedMover(full_dir=slot.oem_store))
    write_image(slot.root_path, b"pinned")

    placement = placer.place(slot)

    assert placement.location is ArtifactLocation.ROOT_PARTITION
    assert slot.root_path.exists()
    assert not slot.oem_path.exists()
    assert read_link_target(slot.symlink) == slot.root_path


def test_stale_active_image_is_moved_off_oem_partition_first(placer, slot, mover):
    old = write_image(slot.oem_store / "oem-azure-3500.0.0.raw", b"old")
    point_symlink(slot.symlink, old)
    write_image(slot.root_path, b"pinned")

    placement = placer.place(slot)

    assert placement.location is ArtifactLocation.OEM_PARTITION
    assert not old.exists()
    assert (slot.root_store / old.name).read_bytes() == b"old"
    assert mover.moves[0] == (old, slot.root_store / old.name)
    assert read_link_target(slot.symlink) == slot.oem_path


def test_stale_active_image_behind_relative_symlink_is_found(placer, slot):
    old = write_image(slot.oem_store / "oem-azure-3500.0.0.raw", b"old")
    slot.symlink.parent.mkdir(parents=True, exist_ok=True)
    slot.symlink.symlink_to(os.path.relpath(old, slot.symlink.parent))
    write_image(slot.root_path, b"pinned")

    placer.place(slot)

    assert (slot.root_store / old.name).exists()
    assert not old.exists()


def test_active_image_already_in_root_store_is_not_moved(placer, slot, mover):
    older = write_image(slot.root_store / "oem-azure-3500.0.0.raw", b"old")
    point_symlink(slot.symlink, older)
    write_image(slot.root_path, b"pinned")

    placer.place(slot)

    assert older.exists()
    assert mover.moves == [(slot.root_path, slot.oem_path)]


def test_failed_eviction_is_not_fatal(source, metadata, slot):
    placer = StoragePlacer(source=source, read_metadata=metadata, move=SpaceLimitedMover(full_dir=slot.root_store))
    old = write_image(slot.oem_store / "oem-azure-3500.0.0.raw", b"old")
    point_symlink(slot.symlink, old)
    write_image(slot.root_path, b"pinned")

    placement = placer.place(slot)

    assert old.exists()
    assert placement.location is ArtifactLocation.OEM_PARTITION


def test_dangling_active_symlink_is_ignored(placer, slot):
    point_symlink(slot.symlink, slot.oem_store / "gone.raw")
    write_image(slot.root_path, b"pinned")

    placement = placer.place(slot)

    assert placement.location is ArtifactLocation.OEM_PARTITION
    assert read_link_target(slot.symlink) == slot.oem_path


# --- Rule 3: legacy initial image ---

def test_legacy_initial_image_is_used(placer, slot, source):
    write_image(slot.initial_path, b"legacy-image")

    placement = placer.place(slot)

    assert placement.location is ArtifactLocation.LEGACY_INITIAL
    assert placement.path == slot.initial_path
    assert read_link_target(slot.symlink) == slot.initial_path
    assert source.calls == []


def test_non_legacy_initial_image_is_treated_as_absent(placer, slot, source):
    write_image(slot.initial_path, b"versioned-image")

    placement = placer.place(slot)

    assert source.calls == [("oem-azure.raw", slot.root_store)]
    assert placement.location is ArtifactLocation.OEM_PARTITION
    assert slot.initial_path.exists()


# --- Rule 4: nothing on disk ---

def test_fresh_image_is_placed_on_oem_partition(placer, slot, source):
    placement = placer.place(slot)

    assert source.calls == [("oem-azure.raw", slot.root_store)]
    assert placement.location is ArtifactLocation.OEM_PARTITION
    assert slot.oem_path.read_bytes() == b"fresh-oem-image"
    assert not (slot.root_store / "oem-azure.raw").exists()
    assert read_link_target(slot.symlink) == slot.oem_path


def test_fresh_image_falls_back_to_root_partition(source, metadata, slot):
    placer = StoragePlacer(source=source, read_metadata=metadata, move=SpaceLimitedMover(full_dir=slot.oem_store))

    placement = placer.place(slot)

    assert placement.location is ArtifactLocation.ROOT_PARTITION
    assert slot.root_path.read_bytes() == b"fresh-oem-image"
    assert read_link_target(slot.symlink) == slot.root_path


def test_fresh_legacy_image_becomes_initial(metadata, mover, slot):
    source = MockArtifactSource({"oem-azure.raw": b"legacy-fresh"})
    placer = StoragePlacer(source=source, read_metadata=metadata, move=mover)

    placement = placer.place(slot)

    assert placement.location is ArtifactLocation.LEGACY_INITIAL
    assert slot.initial_path.read_bytes() == b"legacy-fresh"
    assert read_link_target(slot.symlink) == slot.initial_path


def test_fresh_legacy_image_never_lands_on_root_partition(metadata, slot):
    source = MockArtifactSource({"oem-azure.raw": b"legacy-fresh"})
    placer = StoragePlacer(source=source, read_metadata=metadata, move=SpaceLimitedMover(full_dir=slot.oem_store))

    with pytest.raises(PlacementFailure):
        placer.place(slot)

    assert not slot.root_path.exists()
    assert not slot.initial_path.exists()
    assert list(slot.root_store.iterdir()) == []
    assert not slot.symlink.is_symlink()


def test_offline_with_nothing_present_removes_symlink(metadata, slot):
    point_symlink(slot.symlink, slot.oem_store / "oem-azure-3500.0.0.raw")
    placer = StoragePlacer(source=None, read_metadata=metadata)

    placement = placer.place(slot)

    assert placement.location is ArtifactLocation.ABSENT
    assert placement.path is None
    assert not slot.symlink.is_symlink()


def test_download_failure_propagates(placer, slot, source):
    source.force_download_failure = True

    with pytest.raises(DownloadFailure):
        placer.place(slot)
    assert not slot.symlink.is_symlink()


def test_verification_failure_propagates(placer, slot, source):
    source.force_verification_failure = True

    with pytest.raises(VerificationFailure):
        placer.place(slot)
    assert list(slot.root_store.glob("*.raw")) == []


# --- Idempotency ---

def test_second_run_changes_nothing(placer, slot, source, mover):
    placer.place(slot)
    link_stat = os.lstat(slot.symlink)
    moves_after_first = list(mover.moves)

    placement = placer.place(slot)

    assert placement.location is ArtifactLocation.OEM_PARTITION
    assert len(source.calls) == 1
    assert mover.moves == moves_after_first
    assert os.lstat(slot.symlink).st_ino == link_stat.st_ino


def test_promotion_is_retried_on_next_boot(source, metadata, slot):
    write_image(slot.root_path, b"pinned")
    StoragePlacer(source=source, read_metadata=metadata, move=SpaceLimitedMover(full_dir=slot.oem_store)).place(slot)
    assert read_link_target(slot.symlink) == slot.root_path

    placement = StoragePlacer(source=source, read_metadata=metadata, move=SpaceLimitedMover()).place(slot)

    assert placement.location is ArtifactLocation.OEM_PARTITION
    assert read_link_target(slot.symlink) == slot.oem_path
