import os
import subprocess
import sys
from pathlib import Path

import pytest

from receipt_printer.core.config import Settings
from receipt_printer.printing import worker
from receipt_printer.printing.pipeline import PrintPipeline
from receipt_printer.printing.transport import SerialPort, TargetLocks

from conftest import make_receipt


class _Device:
    def __init__(self, sink):
        self.sink = sink

    def open(self):
        pass

    def _raw(self, data):
        self.sink.append(data)

    def close(self):
        pass


@pytest.fixture
def wire(monkeypatch):
    sent = []

    def make_pipeline(settings):
        return PrintPipeline(settings, locks=TargetLocks(), device_factory=lambda t, timeout: _Device(sent))

    monkeypatch.setattr(worker, "make_pipeline", make_pipeline)
    worker.ensure_worker(1)
    return sent


def test_job_lifecycle_success(wire):
    job_id = worker.enqueue_receipt(make_receipt(), ["direct_text"], target=SerialPort("COM7"), settings=Settings())
    assert worker.get_job(job_id)["items"] == 1
    worker.JOB_QUEUE.join()

    job = worker.get_job(job_id)
    assert job["status"] == "success"
    assert job["result"]["strategy"] == "direct_text"
    assert job["result"]["bytes_sent"] == len(wire[-1])
    assert job["strategies"] == ["direct_text"]


def test_job_records_failure_history(wire):
    job_id = worker.enqueue_receipt(
        make_receipt("STORE ☃"), ["direct_text"], target=SerialPort("COM7"), settings=Settings(), origin="test"
    )
    worker.JOB_QUEUE.join()

    job = worker.get_job(job_id)
    assert job["status"] == "error"
    assert job["origin"] == "test"
    assert [f["error"] for f in job["failures"]] == ["unsupported_glyph"]
    assert job["trace"][-1] == "failed"


def test_unknown_job_id_and_status(wire):
    assert worker.get_job("nope") is None
    status = worker.worker_status()
    assert status["worker_alive"] is True
    assert status["workers"] >= 1
    ids = [j["id"] for j in worker.list_jobs()]
    assert ids == sorted(ids, key=lambda i: worker.get_job(i)["created_at"], reverse=True)


def test_printing_package_loads_the_job_queue_on_first_use():
    code = (
        "import sys, receipt_printer.printing as p\n"
        "assert 'receipt_printer.printing.worker' not in sys.modules\n"
        "assert callable(p.enqueue_receipt)\n"
        "assert 'receipt_printer.printing.worker' in sys.modules\n"
    )
    env = dict(os.environ, PYTHONPATH=str(Path(__file__).resolve().parent.parent))
    proc = subprocess.run([sys.executable, "-c", code], env=env, capture_output=True, text=True, timeout=60)
    assert proc.returncode == 0, proc.stderr
