"""Typer CLI entrypoint."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import typer

from wchisp.core.errors import WchIspError
from wchisp.core.firmware import load_firmware
from wchisp.core.service import FlasherService

app = typer.Typer(help="WCH microcontroller ISP flashing over USB or UART")

PortOption = typer.Option(None, "--port", "-p", help="Serial port; USB is used when omitted")
BaudOption = typer.Option(115200, "--baudrate", help="Serial baud rate")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log protocol traffic"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _build_service() -> FlasherService:
    service = FlasherService()
    for warning in getattr(service, "load_warnings", ()):
        typer.echo(f"Warning: {warning}", err=True)
    return service


def _size(num_bytes: int) -> str:
    if num_bytes >= 1024 and num_bytes % 1024 == 0:
        return f"{num_bytes // 1024} KiB"
    return f"{num_bytes} B"


@contextmanager
def _device(port: str | None, baudrate: int) -> Iterator[tuple[FlasherService, int]]:
    service = _build_service()
    handle = service.open(port, baudrate)
    try:
        yield service, handle
    finally:
        service.close(handle)


@app.command("chips")
def list_chips() -> None:
    """List chips known to the chip database."""
    try:
        service = _build_service()
        for chip in service.list_chips():
            line = f"{chip} {chip.family.value}: flash {_size(chip.flash_size)}"
            if chip.eeprom_size:
                line += f", EEPROM {_size(chip.eeprom_size)}"
            typer.echo(line)
    except WchIspError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("info")
def info(port: str | None = PortOption, baudrate: int = BaudOption) -> None:
    """Identify the connected chip and dump its configuration."""
    try:
        with _device(port, baudrate) as (service, handle):
            chip_info = service.info(handle)
        chip = chip_info.chip
        typer.echo(f"Chip: {chip} (family {chip.family.value})")
        typer.echo(f"Flash: {_size(chip.flash_size)}, EEPROM: {_size(chip.eeprom_size)}")
        if chip_info.uid_hex:
            typer.echo(f"Chip UID: {chip_info.uid_hex}")
        typer.echo(f"BTVER: {chip_info.bootloader_version}")
        if chip_info.flash_protected is not None:
            typer.echo(f"Code Flash Protected: {chip_info.flash_protected}")
        for reg in chip_info.registers:
            typer.echo(f"{reg.name}: 0x{reg.value:08x}")
            for name, value in reg.fields.items():
                typer.echo(f"  {name}: 0x{value:x}")
    except WchIspError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("flash")
def flash(
    firmware: Path,
    port: str | None = PortOption,
    baudrate: int = BaudOption,
    verify: bool = typer.Option(True, "--verify/--no-verify", help="Verify after programming"),
    reset: bool = typer.Option(True, "--reset/--no-reset", help="Reset into the application when done"),
) -> None:
    """Erase, program and optionally verify FIRMWARE (.bin or .hex)."""
    try:
        image = load_firmware(firmware)
        with _device(port, baudrate) as (service, handle):
            result = service.flash(handle, image, verify=verify, reset=reset)
        typer.echo(f"Flashed {result.size} bytes to {result.chip}")
        if result.verified:
            typer.echo("Verify OK")
    except WchIspError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("verify")
def verify(firmware: Path, port: str | None = PortOption, baudrate: int = BaudOption) -> None:
    """Compare the chip's flash against FIRMWARE."""
    try:
        image = load_firmware(firmware)
        with _device(port, baudrate) as (service, handle):
            service.verify(handle, image)
        typer.echo("Verify OK")
    except WchIspError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("erase")
def erase(port: str | None = PortOption, baudrate: int = BaudOption) -> None:
    """Erase the whole code flash."""
    try:
        with _device(port, baudrate) as (service, handle):
            chip = service.erase(handle)
        typer.echo(f"Erased code flash of {chip}")
    except WchIspError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("erase-eeprom")
def erase_eeprom(port: str | None = PortOption, baudrate: int = BaudOption) -> None:
    """Erase the data flash (EEPROM)."""
    try:
        with _device(port, baudrate) as (service, handle):
            chip = service.erase_eeprom(handle)
        typer.echo(f"Erased EEPROM of {chip}")
    except WchIspError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("reset")
def reset(port: str | None = PortOption, baudrate: int = BaudOption) -> None:
    """Leave ISP mode and start the application."""
    try:
        with _device(port, baudrate) as (service, handle):
            service.reset(handle)
        typer.echo("Reset sent")
    except WchIspError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


def run() -> None:
    app()


if __name__ == "__main__":
    run()
