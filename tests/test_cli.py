import json

from receipt_printer import __main__ as cli
from receipt_printer.core.config import Settings
from receipt_printer.core.errors import ExhaustedStrategies, UnsupportedGlyph
from receipt_printer.printing.pipeline import AttemptFailure, PipelineState, PrintResult
from receipt_printer.printing.receipt import Receipt, sample_receipt
from receipt_printer.printing.strategies import DirectText, RasterBitmap
from receipt_printer.printing.transport import NetworkSocket, SerialPort


def test_sample_writes_valid_receipt(tmp_path):
    out = tmp_path / "sample.json"
    assert cli.main(["sample", "-o", str(out)]) == 0
    data = json.loads(out.read_text(encoding="utf-8"))
    assert Receipt.model_validate(data) == sample_receipt()


def test_preview_writes_png(tmp_path):
    src = tmp_path / "r.json"
    cli.main(["sample", "-o", str(src)])
    png = tmp_path / "r.png"
    assert cli.main(["preview", str(src), "-o", str(png)]) == 0
    assert png.read_bytes()[:4] == b"\x89PNG"


def test_print_uses_cli_target_and_strategies(tmp_path, monkeypatch, capsys):
    src = tmp_path / "r.json"
    cli.main(["sample", "-o", str(src)])
    seen = {}

    def fake_print(receipt, settings, *, target=None, strategies=None, **kwargs):
        seen.update(target=target, strategies=strategies, settings=settings)
        return PrintResult(RasterBitmap(), target, 42)

    monkeypatch.setattr(cli, "print_receipt", fake_print)
    code = cli.main(["print", str(src), "--host", "10.1.1.5", "--strategy", "raster_bitmap", "--strategy", "host_compositor"])
    assert code == 0
    assert seen["target"] == NetworkSocket("10.1.1.5", 9100)
    assert seen["strategies"] == ["raster_bitmap", "host_compositor"]
    assert isinstance(seen["settings"], Settings)
    assert "printed via raster_bitmap (42 bytes)" in capsys.readouterr().out


def test_print_reports_exhausted_history(tmp_path, monkeypatch, capsys):
    src = tmp_path / "r.json"
    cli.main(["sample", "-o", str(src)])
    target = SerialPort("COM9")

    def fake_print(receipt, settings, **kwargs):
        failure = AttemptFailure(DirectText(), target, PipelineState.ENCODING, UnsupportedGlyph("☃", 0, "pc437"))
        raise ExhaustedStrategies([failure], [PipelineState.FAILED])

    monkeypatch.setattr(cli, "print_receipt", fake_print)
    assert cli.main(["print", str(src), "--serial", "COM9"]) == 2
    err = capsys.readouterr().err
    assert "direct_text" in err
    assert "(encoding)" in err


def test_missing_file_returns_error(tmp_path):
    assert cli.main(["print", str(tmp_path / "missing.json"), "--serial", "COM1"]) == 1
