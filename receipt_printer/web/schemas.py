from __future__ import annotations

"""
Pydantic schemas for the receipt printer API (v1).

Receipt bodies validate straight into the immutable ``Receipt`` model; the request
wrappers add the optional strategy list and a one-off transport target.
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from receipt_printer.core.config import Settings
from receipt_printer.printing.receipt import Receipt
from receipt_printer.printing.strategies import parse_strategy
from receipt_printer.printing.transport import HostDialog, NetworkSocket, SerialPort, SpoolerQueue, TransportTarget


class TargetSpec(BaseModel):
    """Transport target override for a single print request."""
    type: Literal["serial", "network", "spooler", "host"] = Field(description="Kind of printer connection")
    path: Optional[str] = Field(default=None, max_length=64, examples=["COM7", "/dev/ttyUSB0"])
    baud: int = Field(default=9600, ge=1200, le=921600)
    host: Optional[str] = Field(default=None, max_length=255, examples=["192.168.1.50"])
    port: int = Field(default=9100, ge=1, le=65535)
    name: Optional[str] = Field(default=None, max_length=255, description="Spooler queue or host surface name")

    @model_validator(mode="after")
    def _require_fields(self) -> "TargetSpec":
        if self.type == "serial" and not self.path:
            raise ValueError("serial target requires 'path'")
        if self.type == "network" and not self.host:
            raise ValueError("network target requires 'host'")
        if self.type == "spooler" and not self.name:
            raise ValueError("spooler target requires 'name'")
        return self

    def to_target(self) -> TransportTarget:
        if self.type == "serial":
            return SerialPort(self.path or "", self.baud)
        if self.type == "network":
            return NetworkSocket(self.host or "", self.port)
        if self.type == "spooler":
            return SpoolerQueue(self.name or "")
        return HostDialog(self.name or "")


class PrintRequest(BaseModel):
    """Body of POST /api/v1/receipts."""
    receipt: Receipt
    strategies: Optional[List[str]] = Field(
        default=None,
        max_length=8,
        description="Strategy priority list",
        examples=[["direct_text:wpc1256", "raster_bitmap", "host_compositor"]],
    )
    target: Optional[TargetSpec] = None

    @field_validator("strategies")
    @classmethod
    def _known_strategies(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        if v is None:
            return v
        if not v:
            raise ValueError("strategies must not be empty")
        for name in v:
            parse_strategy(name, Settings())
        return [s.strip().lower() for s in v]


class PreviewRequest(BaseModel):
    """Body of POST /api/v1/receipts/preview."""
    receipt: Receipt
    font_size: Optional[int] = Field(default=None, ge=8, le=96)
    width: Optional[int] = Field(default=None, ge=128, le=2048)


class Links(BaseModel):
    """Hypermedia links for API navigation."""
    self: str = Field(description="Link to the job status resource")


class JobAcceptedResponse(BaseModel):
    """Response when a print job is successfully accepted."""
    id: str = Field(description="Unique identifier for the submitted job")
    status: str = Field(description="Current job status", examples=["queued", "running", "success", "error"])
    links: Links = Field(description="Related resource links")


__all__ = ["JobAcceptedResponse", "Links", "PreviewRequest", "PrintRequest", "TargetSpec"]
