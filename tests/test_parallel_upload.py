import threading

import pytest

from composite_upload import errors
from composite_upload.parallel_upload import (_upload_shard,
                                              create_upload_shards,
                                              default_shard_prefix,
                                              parallel_upload_file)
from composite_upload.upload_configuration import ParallelUploadConfig

from fakes import FakeBackend

CONTENTS = bytes(range(256)) * 4


class FailingThread(threading.Thread):
    """Refuses to start the second shard's thread."""

    def start(self):
        if self.name == "upload-shard-1":
            raise RuntimeError("can't start new thread")
        super().start()


@pytest.fixture
def source(tmp_path):
    path = tmp_path / "source.bin"
    path.write_bytes(CONTENTS)
    return str(path)


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def config():
    return ParallelUploadConfig({
        "max_streams": 4,
        "min_stream_size": 100,
        "upload_buffer_size": 64,
        "shard_prefix": "tmp/part-",
    })


class TestCreateUploadShards:
    def test_splits_evenly_with_remainder_in_last_shard(self):
        assert create_upload_shards(10, 3, 3) == [(0, 3), (3, 3), (6, 4)]

    def test_respects_max_streams(self):
        assert create_upload_shards(1000, 2, 10) == [(0, 500), (500, 500)]

    def test_small_file_is_one_shard(self):
        assert create_upload_shards(150, 64, 100) == [(0, 150)]

    def test_empty_file_is_one_empty_shard(self):
        assert create_upload_shards(0, 64, 100) == [(0, 0)]

    def test_shards_cover_the_file(self):
        shards = create_upload_shards(12345, 7, 1000)

        assert len(shards) == 7
        assert shards[0][0] == 0
        for (offset, length), (next_offset, _) in zip(shards, shards[1:]):
            assert offset + length == next_offset
        assert shards[-1][0] + shards[-1][1] == 12345


class TestDefaultShardPrefix:
    def test_prefix_is_unique_per_upload(self):
        first = default_shard_prefix("videos/big.mp4")
        second = default_shard_prefix("videos/big.mp4")

        assert first.startswith("videos/big.mp4.upload_shard_")
        assert first.endswith("_")
        assert first != second


class TestParallelUploadFile:
    def test_uploads_and_composes_in_order(self, source, backend, config):
        metadata = parallel_upload_file(source, backend, config)

        assert metadata.name == "final-object"
        assert metadata.size == len(CONTENTS)
        assert metadata.component_count == 4
        assert backend.objects["final-object"][1] == CONTENTS

        assert len(backend.compose_calls) == 1
        names = [part.name for part in backend.compose_calls[0]]
        assert names == ["tmp/part-0", "tmp/part-1", "tmp/part-2",
                         "tmp/part-3"]

        # The temporary parts are gone.
        assert list(backend.objects) == ["final-object"]

    def test_empty_file(self, tmp_path, backend, config):
        path = tmp_path / "empty.bin"
        path.write_bytes(b"")

        metadata = parallel_upload_file(str(path), backend, config)

        assert metadata.size == 0
        assert list(backend.objects) == ["final-object"]

    def test_default_config(self, source, backend):
        metadata = parallel_upload_file(source, backend)

        assert metadata.size == len(CONTENTS)
        assert len(backend.sessions) == 1

    def test_missing_file(self, tmp_path, backend, config):
        with pytest.raises(errors.NotFoundError):
            parallel_upload_file(str(tmp_path / "nope"), backend, config)
        assert backend.sessions == []

    def test_write_failure_fails_the_upload(self, source, backend, config):
        cause = ConnectionResetError("reset by peer")
        backend.write_errors["tmp/part-2"] = cause

        with pytest.raises(ConnectionResetError) as excinfo:
            parallel_upload_file(source, backend, config)

        assert excinfo.value is cause
        assert backend.compose_calls == []
        # Parts that did get created were cleaned up.
        assert backend.objects == {}

    def test_open_failure_midway(self, source, backend, config):
        cause = PermissionError("cannot create session")
        backend.open_errors["tmp/part-2"] = cause

        with pytest.raises(PermissionError) as excinfo:
            parallel_upload_file(source, backend, config)

        assert excinfo.value is cause
        assert len(backend.sessions) == 2
        assert backend.compose_calls == []
        assert backend.objects == {}

    def test_open_failure_on_first_shard(self, source, backend, config):
        cause = PermissionError("cannot create session")
        backend.open_errors["tmp/part-0"] = cause

        with pytest.raises(PermissionError) as excinfo:
            parallel_upload_file(source, backend, config)

        assert excinfo.value is cause
        assert backend.sessions == []
        assert backend.delete_calls == []

    def test_cleanup_failure_is_raised(self, source, backend, config):
        backend.delete_error = PermissionError("cannot delete")

        with pytest.raises(PermissionError, match="cannot delete"):
            parallel_upload_file(source, backend, config)

    def test_cleanup_failure_can_be_ignored(self, source, backend):
        backend.delete_error = PermissionError("cannot delete")
        config = ParallelUploadConfig({
            "max_streams": 2,
            "min_stream_size": 100,
            "ignore_cleanup_failures": True,
        })

        metadata = parallel_upload_file(source, backend, config)

        assert metadata.size == len(CONTENTS)
        assert len(backend.delete_calls) == 1

    def test_thread_start_failure_does_not_hang(self, mocker, source, backend,
                                                config):
        outcome = []

        def run():
            try:
                outcome.append(parallel_upload_file(source, backend, config))
            except Exception as e:
                outcome.append(e)

        runner = threading.Thread(target=run, daemon=True)
        mocker.patch("composite_upload.parallel_upload.threading.Thread",
                     FailingThread)

        runner.start()
        runner.join(timeout=10)

        assert not runner.is_alive()
        assert len(outcome) == 1
        assert isinstance(outcome[0], RuntimeError)
        assert "can't start new thread" in str(outcome[0])
        assert backend.compose_calls == []
        # The part from the shard that did run was cleaned up.
        assert backend.objects == {}


class TestUploadShard:
    def test_unexpected_errors_stay_in_the_thread(self, mocker):
        task = mocker.Mock()
        task.upload.side_effect = TimeoutError("finalize timed out")

        assert _upload_shard(task) is None
        task.upload.assert_called_once_with()
