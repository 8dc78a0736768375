import pytest

from receipt_printer import create_app
from receipt_printer.core.config import save_config
from receipt_printer.printing.receipt import sample_receipt
from receipt_printer.printing.transport import TARGET_LOCKS, SerialPort
from receipt_printer.web import api, health


@pytest.fixture
def queued(monkeypatch):
    calls = []

    def fake_enqueue(receipt, strategies=None, target=None, settings=None, origin=None):
        calls.append({"receipt": receipt, "strategies": strategies, "target": target, "origin": origin})
        return "job123"

    monkeypatch.setattr(api, "ensure_worker", lambda: None)
    monkeypatch.setattr(api, "enqueue_receipt", fake_enqueue)
    return calls


@pytest.fixture
def client():
    app = create_app(register_worker=False)
    app.testing = True
    return app.test_client()


def _body(**extra):
    body = {
        "receipt": {
            "header": {"store_name": "Corner Shop"},
            "items": [{"name": "Tea", "quantity": "2", "unit_price": "1.50", "line_total": "3.00"}],
            "totals": {"subtotal": "3.00", "grand_total": "3.00"},
        }
    }
    body.update(extra)
    return body


def test_submit_receipt_accepted(client, queued):
    resp = client.post(
        "/api/v1/receipts",
        json=_body(strategies=["Raster_Bitmap"], target={"type": "serial", "path": "COM3", "baud": 19200}),
    )
    assert resp.status_code == 202
    assert resp.headers["Location"].endswith("/api/v1/jobs/job123")
    data = resp.get_json()
    assert data["id"] == "job123" and data["status"] == "queued"
    [call] = queued
    assert call["strategies"] == ["raster_bitmap"]
    assert call["target"] == SerialPort("COM3", 19200)
    assert call["origin"] == "api"


@pytest.mark.parametrize(
    "body",
    [
        _body(strategies=["telepathy"]),
        _body(strategies=[]),
        _body(target={"type": "network"}),
        {"receipt": {"header": {"store_name": ""}, "items": [], "totals": {"subtotal": "0", "grand_total": "0"}}},
    ],
)
def test_submit_receipt_rejects_invalid(client, queued, body):
    resp = client.post("/api/v1/receipts", json=body)
    assert resp.status_code == 400
    assert "error" in resp.get_json()
    assert queued == []


def test_negative_quantity_rejected(client, queued):
    body = _body()
    body["receipt"]["items"][0]["quantity"] = "-1"
    resp = client.post("/api/v1/receipts", json=body)
    assert resp.status_code == 400
    assert "quantity" in resp.get_json()["error"]


def test_submit_requires_json(client, queued):
    resp = client.post("/api/v1/receipts", data="hello", content_type="text/plain")
    assert resp.status_code == 415


def test_unknown_job_is_404(client):
    resp = client.get("/api/v1/jobs/does-not-exist")
    assert resp.status_code == 404
    assert resp.get_json() == {"error": "not_found"}


def test_sample_round_trips_through_submit(client, queued):
    resp = client.get("/api/v1/receipts/sample")
    assert resp.status_code == 200
    sample = resp.get_json()
    assert sample["header"]["store_name"] == sample_receipt().header.store_name
    assert client.post("/api/v1/receipts", json={"receipt": sample}).status_code == 202
    assert queued[0]["receipt"] == sample_receipt()


def test_preview_returns_png(client):
    resp = client.post("/api/v1/receipts/preview", json={"receipt": _body()["receipt"], "width": 384})
    assert resp.status_code == 200
    assert resp.mimetype == "image/png"
    assert resp.data[:4] == b"\x89PNG"
    assert int(resp.headers["X-Receipt-Height"]) > 0


def test_healthz_without_config(client):
    resp = client.get("/healthz")
    assert resp.status_code == 200
    data = resp.get_json()
    assert data["status"] == "degraded"
    assert data["reason"] == "no_config"
    assert "queue_size" in data


class _RecordingChannel:
    def __init__(self, target, opened):
        self.target = target
        self.opened = opened

    def open(self):
        self.opened.append(self.target)

    def close(self):
        pass


def test_healthz_does_not_open_a_busy_printer(client, monkeypatch):
    save_config({"printer_type": "serial", "serial_port": "COM7"})
    opened = []
    monkeypatch.setattr(health, "open_channel", lambda target, **kw: _RecordingChannel(target, opened))

    with TARGET_LOCKS.hold(SerialPort("COM7")):
        data = client.get("/healthz").get_json()
    assert data["printer_ok"] is False
    assert data["reason"] == "target_busy"
    assert data["status"] == "degraded"
    assert opened == []

    data = client.get("/healthz").get_json()
    assert data["printer_ok"] is True
    assert data["target"] == "serial COM7@9600"
    assert opened == [SerialPort("COM7", 9600)]
    assert not TARGET_LOCKS.is_held(SerialPort("COM7"))
