import json

import pytest

from receipt_printer.core.config import Settings, load_config, load_settings, save_config, settings_from_env
from receipt_printer.printing import discovery
from receipt_printer.printing.transport import NetworkSocket, SerialPort, SpoolerQueue


def test_defaults_when_no_config():
    s = load_settings()
    assert s.serial_port == "COM7"
    assert s.serial_baudrate == 9600
    assert s.strategies == ("direct_text", "raster_bitmap", "host_compositor", "interactive_dialog")
    assert s.lock_mode == "block"


def test_save_and_load_round_trip(tmp_path):
    path = tmp_path / "nested" / "config.json"
    save_config({"printer_type": "network", "network_host": "10.0.0.7", "codepage_ids": {"WPC1256": 50}}, str(path))
    assert load_config(str(path))["network_host"] == "10.0.0.7"
    s = load_settings(path=str(path))
    assert s.printer_type == "network"
    assert s.codepage_ids == {"wpc1256": 50}
    assert not (tmp_path / "nested" / "config.json.tmp").exists()


def test_env_overrides_config(monkeypatch):
    monkeypatch.setenv("PRINTER_COM_PORT", "/dev/ttyUSB1")
    monkeypatch.setenv("PRINTER_BAUD_RATE", "115200")
    monkeypatch.setenv("RECEIPTPRINT_MAX_RASTER_HEIGHT", "1500")
    s = load_settings(config={"serial_port": "COM3", "serial_baudrate": 19200, "max_raster_height": 9000})
    assert s.serial_port == "/dev/ttyUSB1"
    assert s.serial_baudrate == 115200
    assert s.max_raster_height == 1500


def test_malformed_values_keep_previous():
    s = load_settings(config={"serial_baudrate": "fast", "strategies": "raster_bitmap, host_compositor"})
    assert s.serial_baudrate == 9600
    assert s.strategies == ("raster_bitmap", "host_compositor")
    assert settings_from_env(s, env={}) == s


def test_invalid_json_raises(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(json.JSONDecodeError):
        load_config(str(path))


def test_match_printers_is_case_insensitive_substring():
    names = ["HP LaserJet", "EPSON TM-T20II Receipt", "POS-80C", "Microsoft Print to PDF"]
    assert discovery.match_printers(names, ("receipt", "pos")) == ["EPSON TM-T20II Receipt", "POS-80C"]
    assert discovery.match_printers(names, ()) == []


def test_resolve_target_variants():
    assert discovery.resolve_target(Settings(printer_type="serial", serial_port="COM4", serial_baudrate=19200)) == SerialPort(
        "COM4", 19200
    )
    assert discovery.resolve_target(Settings(printer_type="network", network_host="h", network_port=9101)) == NetworkSocket(
        "h", 9101
    )
    with pytest.raises(ValueError):
        discovery.resolve_target(Settings(printer_type="network"))
    assert discovery.resolve_target(Settings(printer_type="spooler", spooler_name="Q")) == SpoolerQueue("Q")
    assert discovery.resolve_target(Settings(printer_type="auto"), names=["Office", "Xprinter XP-80"]) == SpoolerQueue(
        "Xprinter XP-80"
    )
    assert discovery.resolve_target(Settings(printer_type="auto"), names=["Office"]) == SerialPort("COM7", 9600)
    with pytest.raises(ValueError):
        discovery.resolve_target(Settings(printer_type="spooler"), names=["Office"])


def test_cups_listing(monkeypatch):
    class Result:
        returncode = 0
        stdout = "Office\nPOS_80\n"
        stderr = ""

    monkeypatch.setattr(discovery.sys, "platform", "linux")
    monkeypatch.setattr(discovery.subprocess, "run", lambda *a, **k: Result())
    assert discovery.list_printer_names() == ["Office", "POS_80"]

    def missing(*a, **k):
        raise FileNotFoundError("lpstat")

    monkeypatch.setattr(discovery.subprocess, "run", missing)
    assert discovery.list_printer_names() == []


def test_serial_ports_listing(monkeypatch):
    class Port:
        def __init__(self, device):
            self.device = device

    monkeypatch.setattr(discovery.list_ports, "comports", lambda: [Port("/dev/ttyUSB1"), Port("/dev/ttyS0")])
    assert discovery.list_serial_ports() == ["/dev/ttyS0", "/dev/ttyUSB1"]
