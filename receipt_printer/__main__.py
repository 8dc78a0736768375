"""
Command line entry point: ``python -m receipt_printer <command>``.

Commands:
- print <file|->   print a receipt JSON document (synchronously)
- preview <file>   render the raster preview to a PNG
- sample           write the demo receipt as JSON
- printers         list spooler queues and serial ports
- serve            run the HTTP API
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from typing import List, Optional

from receipt_printer.core.config import load_settings
from receipt_printer.core.errors import ExhaustedStrategies, PrintError
from receipt_printer.core.logging import configure_logging
from receipt_printer.printing.discovery import list_printer_names, list_serial_ports, match_printers, resolve_target
from receipt_printer.printing.layout import layout_receipt
from receipt_printer.printing.pipeline import print_receipt
from receipt_printer.printing.receipt import Receipt, sample_receipt
from receipt_printer.printing.render import render_document
from receipt_printer.printing.strategies import STRATEGY_NAMES, render_config
from receipt_printer.printing.transport import NetworkSocket, SerialPort, SpoolerQueue, TransportTarget

logger = logging.getLogger("receipt_printer")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="receipt_printer",
        description="Print receipts on ESC/POS thermal printers with automatic strategy fallback",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", help="Path to config.json (default: RECEIPTPRINT_CONFIG_PATH or XDG)")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p_print = sub.add_parser("print", help="Print a receipt JSON file ('-' for stdin)")
    p_print.add_argument("file")
    p_print.add_argument("--serial", help="Serial port, e.g. COM7 or /dev/ttyUSB0")
    p_print.add_argument("--baud", type=int, help="Serial baud rate")
    p_print.add_argument("--host", help="Network printer host")
    p_print.add_argument("--port", type=int, default=9100, help="Network printer port (default: 9100)")
    p_print.add_argument("--queue", help="Spooler queue name")
    p_print.add_argument(
        "--strategy",
        action="append",
        dest="strategies",
        help=f"Strategy to try, repeatable, in order ({', '.join(STRATEGY_NAMES)}; direct_text:<codepage>)",
    )

    p_preview = sub.add_parser("preview", help="Render a receipt JSON file to PNG")
    p_preview.add_argument("file")
    p_preview.add_argument("-o", "--output", default="receipt.png")

    p_sample = sub.add_parser("sample", help="Write the sample receipt JSON")
    p_sample.add_argument("-o", "--output", help="File to write (default: stdout)")

    sub.add_parser("printers", help="List spooler queues and serial ports")

    p_serve = sub.add_parser("serve", help="Run the HTTP API")
    p_serve.add_argument("--bind", default=os.environ.get("RECEIPTPRINT_HOST", "127.0.0.1"))
    p_serve.add_argument("--listen-port", type=int, default=int(os.environ.get("RECEIPTPRINT_PORT", "5000")))
    return parser


def _read_receipt(path: str) -> Receipt:
    if path == "-":
        data = json.load(sys.stdin)
    else:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    return Receipt.model_validate(data)


def _cli_target(args: argparse.Namespace, settings) -> Optional[TransportTarget]:
    if args.serial:
        return SerialPort(args.serial, args.baud or settings.serial_baudrate)
    if args.host:
        return NetworkSocket(args.host, args.port)
    if args.queue:
        return SpoolerQueue(args.queue)
    return None


def cmd_print(args: argparse.Namespace) -> int:
    settings = load_settings(path=args.config)
    receipt = _read_receipt(args.file)
    target = _cli_target(args, settings) or resolve_target(settings)
    try:
        result = print_receipt(receipt, settings, target=target, strategies=args.strategies)
    except ExhaustedStrategies as e:
        print("Print failed; every strategy was tried:", file=sys.stderr)
        for f in e.history:
            d = f.as_dict()
            print(f"  - {d['strategy']} via {d['target']} ({d['stage']}): {d['reason']}", file=sys.stderr)
        return 2
    for f in result.failures:
        print(f"skipped {f.strategy.kind}: {f.error.describe()}", file=sys.stderr)
    print(f"printed via {result.strategy.kind} ({result.bytes_sent} bytes)")
    return 0


def cmd_preview(args: argparse.Namespace) -> int:
    settings = load_settings(path=args.config)
    receipt = _read_receipt(args.file)
    bitmap = render_document(
        layout_receipt(receipt, settings.receipt_columns),
        settings.receipt_width,
        settings.font_size,
        render_config(settings),
    )
    bitmap.to_image().save(args.output, format="PNG")
    print(f"wrote {args.output} ({bitmap.width}x{bitmap.height})")
    return 0


def cmd_sample(args: argparse.Namespace) -> int:
    text = json.dumps(sample_receipt().model_dump(mode="json"), ensure_ascii=False, indent=2)
    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            f.write(text + "\n")
    else:
        print(text)
    return 0


def cmd_printers(args: argparse.Namespace) -> int:
    settings = load_settings(path=args.config)
    names = list_printer_names()
    matched = set(match_printers(names, settings.printer_keywords))
    print("Spooler queues:")
    for n in names:
        print(f"  {'*' if n in matched else ' '} {n}")
    print("Serial ports:")
    for p in list_serial_ports():
        print(f"    {p}")
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    from receipt_printer import create_app

    app = create_app()
    app.run(host=args.bind, port=args.listen_port, debug=False)
    return 0


COMMANDS = {
    "print": cmd_print,
    "preview": cmd_preview,
    "sample": cmd_sample,
    "printers": cmd_printers,
    "serve": cmd_serve,
}


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging("DEBUG" if args.debug else None)
    if args.config:
        os.environ["RECEIPTPRINT_CONFIG_PATH"] = args.config
    try:
        return COMMANDS[args.command](args)
    except (OSError, ValueError, PrintError) as e:
        logger.error("%s failed: %s", args.command, e)
        if args.debug:
            logger.exception("Full traceback:")
        return 1


if __name__ == "__main__":
    sys.exit(main())
