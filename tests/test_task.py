import pytest
import yaml

from anycdc import config
from anycdc.config import ReaderConfig, TaskConfig, WriterConfig
from anycdc.event import Event, EventType
from anycdc.reader import Reader
from anycdc.reader import register as register_reader
from anycdc.task import Metric, Task, TaskStatus
from anycdc.writer import Writer
from anycdc.writer import register as register_writer

READERS = []
WRITERS = []


class FakeReader(Reader):
    fail_start = False

    def __init__(self, conf, options):
        super().__init__(conf, options)
        self.saves = 0
        self.stops = 0
        READERS.append(self)

    def prepare(self):
        pass

    def start(self):
        if self.fail_start:
            raise ConnectionError("source unavailable")

    def stop(self):
        self.stops += 1

    def save(self):
        self.saves += 1


class FakeWriter(Writer):
    def __init__(self, conf):
        super().__init__(conf)
        self.failures_left = 0
        self.attempts = 0
        self.events = []
        WRITERS.append(self)

    def prepare(self):
        pass

    def execute(self, event):
        self.attempts += 1
        if self.failures_left > 0:
            self.failures_left -= 1
            raise RuntimeError("write failed")
        self.events.append(event)


@pytest.fixture
def task(tmp_path):
    READERS.clear()
    WRITERS.clear()
    FakeReader.fail_start = False
    register_reader("task-test-source", FakeReader)
    register_writer("task-test-dest", FakeWriter)
    (tmp_path / "config.yaml").write_text(yaml.safe_dump({"data_dir": str(tmp_path)}))
    (tmp_path / "connectors.yaml").write_text(
        yaml.safe_dump(
            {
                "connectors": [
                    {"alias": "src", "type": "task-test-source"},
                    {"alias": "dst", "type": "task-test-dest"},
                ]
            }
        )
    )
    config.parse(str(tmp_path))
    conf = TaskConfig(
        name="job",
        reader=ReaderConfig(connector="src"),
        writers=[WriterConfig(connector="dst"), WriterConfig(connector="dst")],
    )
    return Task(conf)


def _event():
    return Event(type=EventType.INSERT, schema="shop", table="users", payload={"id": 1})


def test_metric_counts_per_table_and_type():
    metric = Metric()
    metric.new_event("a.b", EventType.INSERT)
    metric.new_event("a.b", EventType.INSERT)
    metric.new_event("a.b", EventType.UPDATE)
    assert metric.synced_event == {"a.b": {EventType.INSERT: 2, EventType.UPDATE: 1}}


def test_prepare_wires_reader_and_writers(task):
    task.prepare()
    assert task.reader is READERS[0]
    assert task.reader.options.subscriber is task
    assert task.reader.options.state_loader.name == "job"
    assert task.writers == WRITERS
    assert len(task.writers) == 2


def test_consume_reaches_every_writer_and_counts(task):
    task.prepare()
    event = _event()
    task.consume(event)
    assert all(writer.events == [event] for writer in task.writers)
    assert task.metric.synced_event == {event.full_table_name(): {EventType.INSERT: 1}}


def test_consume_retries_transient_failure(task):
    task.prepare()
    task.writers[0].failures_left = 1
    task.consume(_event())
    assert task.writers[0].attempts == 2
    assert len(task.writers[0].events) == 1


def test_consume_raises_after_three_failures(task):
    task.prepare()
    task.writers[1].failures_left = 10
    with pytest.raises(RuntimeError, match="Failed to execute event"):
        task.consume(_event())
    assert task.writers[1].attempts == 3
    assert task.metric.synced_event == {}


def test_start_and_stop_cycle(task):
    task.prepare()
    task.start()
    assert task.status == TaskStatus.STARTED
    with pytest.raises(RuntimeError, match="task already started"):
        task.start()
    task.stop()
    assert task.status == TaskStatus.STOPPED
    assert (task.reader.saves, task.reader.stops) == (1, 1)


def test_stop_when_stopped_does_nothing(task):
    task.prepare()
    task.stop()
    assert task.reader.stops == 0
    assert task.status == TaskStatus.STOPPED


def test_failed_start_resets_status(task):
    FakeReader.fail_start = True
    task.prepare()
    with pytest.raises(ConnectionError):
        task.start()
    assert task.status == TaskStatus.STOPPED


def test_save_state_delegates_to_reader(task):
    task.prepare()
    task.save_state()
    task.save_state()
    assert task.reader.saves == 2


def test_save_state_before_prepare_raises(task):
    with pytest.raises(RuntimeError):
        task.save_state()