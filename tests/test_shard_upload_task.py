import gc

import pytest

from composite_upload import errors
from composite_upload.cleanup import CleanupRegistry
from composite_upload.coordinator import UploadCoordinator
from composite_upload.object_metadata import ObjectMetadata
from composite_upload.shard_upload_task import ShardUploadTask

from fakes import FakeSession

FINAL = ObjectMetadata("final", 9)
CONTENTS = b"0123456789abcdef"


@pytest.fixture
def source(tmp_path):
    path = tmp_path / "source.bin"
    path.write_bytes(CONTENTS)
    return path


@pytest.fixture
def compose(mocker):
    return mocker.Mock(return_value=FINAL)


@pytest.fixture
def coordinator(mocker, compose):
    return UploadCoordinator(compose, CleanupRegistry(mocker.Mock()))


def make_task(coordinator, path, offset, length, buffer_size=3, **kwargs):
    session = FakeSession("part", **kwargs)
    stream = coordinator.create_stream(lambda request: session, "part")
    task = ShardUploadTask(coordinator, stream, str(path), offset, length,
                           buffer_size)
    return task, session


class TestUpload:
    def test_uploads_the_byte_range_in_buffer_sized_writes(self, coordinator,
                                                           source, compose):
        task, session = make_task(coordinator, source, 4, 8)

        task.upload()

        assert session.writes == [b"456", b"789", b"ab"]
        assert session.closed
        assert task.bytes_remaining == 0
        assert coordinator.wait_for_completion().result() == FINAL
        compose.assert_called_once()

    def test_empty_range_still_closes_the_stream(self, coordinator, source):
        task, session = make_task(coordinator, source, 16, 0)

        task.upload()

        assert session.writes == []
        assert session.closed
        assert coordinator.finished

    def test_missing_file(self, coordinator, tmp_path, compose):
        task, session = make_task(coordinator, tmp_path / "nope.bin", 0, 8)

        with pytest.raises(errors.NotFoundError) as excinfo:
            task.upload()

        assert "cannot open upload file source" in str(excinfo.value)
        assert coordinator.wait_for_completion().exception() is excinfo.value
        assert session.closed
        compose.assert_not_called()

    def test_file_shrank_before_reading(self, coordinator, source):
        task, _ = make_task(coordinator, source, 8, 8)
        source.write_bytes(CONTENTS[:10])

        with pytest.raises(errors.InternalError) as excinfo:
            task.upload()

        assert "file changed size" in str(excinfo.value)
        assert excinfo.value.code == errors.StatusCode.INTERNAL
        assert coordinator.wait_for_completion().exception() is excinfo.value

    def test_file_shrank_below_the_offset(self, coordinator, source):
        task, session = make_task(coordinator, source, 12, 4)
        source.write_bytes(CONTENTS[:4])

        with pytest.raises(errors.InternalError, match="file changed size"):
            task.upload()
        assert session.writes == []

    def test_write_failure_keeps_the_detailed_cause(self, coordinator, source,
                                                    compose):
        cause = ConnectionResetError("reset by peer")
        task, session = make_task(coordinator, source, 0, 8, write_error=cause)

        with pytest.raises(errors.InternalError) as excinfo:
            task.upload()

        assert "look into whole parallel upload status" in str(excinfo.value)
        assert coordinator.wait_for_completion().exception() is cause
        assert not session.closed
        compose.assert_not_called()

    def test_close_failure_is_raised(self, coordinator, source):
        cause = TimeoutError("finalize timed out")
        task, _ = make_task(coordinator, source, 0, 8, close_error=cause)

        with pytest.raises(TimeoutError):
            task.upload()
        assert coordinator.wait_for_completion().exception() is cause


class TestAbandon:
    def test_abandon_cancels_and_finishes(self, coordinator, source, compose):
        task, session = make_task(coordinator, source, 0, 8)

        task.abandon()

        assert session.closed
        assert coordinator.finished
        error = coordinator.wait_for_completion().exception()
        assert isinstance(error, errors.CancelledError)
        compose.assert_not_called()

    def test_dropping_an_unstarted_task_finishes_the_upload(self, coordinator,
                                                            source):
        task, _ = make_task(coordinator, source, 0, 8)

        del task
        gc.collect()

        assert coordinator.finished
        assert isinstance(coordinator.wait_for_completion().exception(),
                          errors.CancelledError)

    def test_abandon_after_upload_does_nothing(self, coordinator, source):
        task, _ = make_task(coordinator, source, 0, 8)
        task.upload()

        task.abandon()

        assert coordinator.wait_for_completion().result() == FINAL

    def test_abandoning_an_empty_shard_is_not_a_failure(self, coordinator,
                                                        source):
        task, _ = make_task(coordinator, source, 0, 0)

        task.abandon()

        assert coordinator.wait_for_completion().result() == FINAL


class TestConstruction:
    @pytest.mark.parametrize("buffer_size", [0, -1])
    def test_rejects_non_positive_buffer_size(self, coordinator, source,
                                              buffer_size):
        stream = coordinator.create_stream(FakeSession, "part")

        with pytest.raises(ValueError, match="Buffer size must be positive"):
            ShardUploadTask(coordinator, stream, str(source), 0, 8,
                            buffer_size)

        stream.close()
        assert coordinator.wait_for_completion().result() == FINAL
