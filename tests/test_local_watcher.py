import os

from sync_latency.local_watcher import DONE, WATCHING, LocalDeletionWatcher


def make_files(folder, *names):
    for name in names:
        (folder / name).write_text("<empty>")


def test_emits_signal_only_for_removed_file(tmp_path):
    make_files(tmp_path, "iteration-0.txt", "iteration-1.txt")
    seen = []
    watcher = LocalDeletionWatcher(str(tmp_path), "iteration", lambda name, ts: seen.append((name, ts)),
                                   clock=lambda: 1234.5)
    assert watcher.prime() == {"iteration-0.txt", "iteration-1.txt"}
    (tmp_path / "iteration-0.txt").unlink()
    assert watcher.tick() is True
    assert seen == [("iteration-0.txt", 1234.5)]
    assert watcher.state == WATCHING


def test_done_when_watched_set_empties(tmp_path):
    make_files(tmp_path, "iteration-0.txt")
    seen = []
    watcher = LocalDeletionWatcher(str(tmp_path), "iteration", lambda name, ts: seen.append(name))
    watcher.prime()
    (tmp_path / "iteration-0.txt").unlink()
    assert watcher.tick() is False
    assert watcher.state == DONE
    assert watcher.done.is_set()
    assert seen == ["iteration-0.txt"]
    assert watcher.tick() is False


def test_ignores_files_without_prefix(tmp_path):
    make_files(tmp_path, "iteration-0.txt", "notes.txt")
    seen = []
    watcher = LocalDeletionWatcher(str(tmp_path), "iteration", lambda name, ts: seen.append(name))
    watcher.prime()
    (tmp_path / "notes.txt").unlink()
    assert watcher.tick() is True
    assert seen == []


def test_empty_folder_is_done_immediately(tmp_path):
    watcher = LocalDeletionWatcher(str(tmp_path), "iteration", lambda name, ts: None)
    watcher.prime()
    assert watcher.state == DONE


def test_listing_failure_skips_tick(tmp_path):
    folder = tmp_path / "sub"
    folder.mkdir()
    make_files(folder, "iteration-0.txt")
    watcher = LocalDeletionWatcher(str(folder), "iteration", lambda name, ts: None)
    watcher.prime()
    (folder / "iteration-0.txt").unlink()
    folder.rmdir()
    assert watcher.tick() is True
    assert watcher.state == WATCHING


def test_thread_stops_by_itself(tmp_path):
    make_files(tmp_path, "iteration-0.txt", "iteration-1.txt")
    seen = []
    watcher = LocalDeletionWatcher(str(tmp_path), "iteration", lambda name, ts: seen.append(name), interval=0.01)
    watcher.start()
    (tmp_path / "iteration-1.txt").unlink()
    (tmp_path / "iteration-0.txt").unlink()
    assert watcher.done.wait(5)
    watcher.stop()
    assert sorted(seen) == ["iteration-0.txt", "iteration-1.txt"]


def test_rename_out_of_prefix_counts_as_deleted(tmp_path):
    make_files(tmp_path, "iteration-0.txt", "iteration-1.txt")
    seen = []
    watcher = LocalDeletionWatcher(str(tmp_path), "iteration", lambda name, ts: seen.append(name))
    watcher.prime()
    os.rename(tmp_path / "iteration-0.txt", tmp_path / ".trash-0")
    assert watcher.tick() is True
    assert seen == ["iteration-0.txt"]


def test_replace_under_same_name_is_not_a_deletion(tmp_path):
    make_files(tmp_path, "iteration-0.txt", "iteration-1.txt")
    seen = []
    watcher = LocalDeletionWatcher(str(tmp_path), "iteration", lambda name, ts: seen.append(name))
    watcher.prime()
    (tmp_path / "tmp-write").write_text("<empty>")
    os.replace(tmp_path / "tmp-write", tmp_path / "iteration-1.txt")
    assert watcher.tick() is True
    assert seen == []
    (tmp_path / "iteration-1.txt").unlink()
    watcher.tick()
    assert seen == ["iteration-1.txt"]


def test_missing_folder_at_start_retries_on_next_tick(tmp_path):
    folder = tmp_path / "later"
    seen = []
    watcher = LocalDeletionWatcher(str(folder), "iteration", lambda name, ts: seen.append(name), interval=0.01)
    assert watcher.prime() == set()
    assert watcher.state == WATCHING
    folder.mkdir()
    make_files(folder, "iteration-0.txt")
    assert watcher.tick() is True
    (folder / "iteration-0.txt").unlink()
    assert watcher.tick() is False
    assert seen == ["iteration-0.txt"]


def test_start_survives_missing_folder(tmp_path):
    watcher = LocalDeletionWatcher(str(tmp_path / "nope"), "iteration", lambda name, ts: None, interval=0.01)
    watcher.start()
    assert watcher.state == WATCHING
    watcher.stop()
    assert watcher._thread is None
