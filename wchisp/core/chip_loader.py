"""Chip definition loading and validation for YAML-based chip family files."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Any

from wchisp.core.documents import load_schema_validator, normalize_bool, read_yaml, validate
from wchisp.core.errors import ChipDefinitionError
from wchisp.core.model import ChipDescriptor, ChipFamily, ConfigField, ConfigRegister

LOGGER = logging.getLogger(__name__)

ChipKey = tuple[int, int]


@dataclass(frozen=True)
class LoadedChips:
    chips: dict[ChipKey, ChipDescriptor]
    warnings: tuple[str, ...]


def _chip_dirs() -> tuple[Path, Path]:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    xdg_data = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local/share"))
    return xdg_config / "wchisp/chips", xdg_data / "wchisp/chips"


def _normalize_family(value: str, *, source: Path | Traversable) -> ChipFamily:
    try:
        family = ChipFamily(value)
    except ValueError:
        known = ", ".join(f.value for f in ChipFamily if f is not ChipFamily.UNKNOWN)
        raise ChipDefinitionError(
            f"Unknown chip family '{value}' in {source}. Known: {known}"
        ) from None
    if family is ChipFamily.UNKNOWN:
        raise ChipDefinitionError(f"Family '{value}' is reserved for unmatched chips ({source})")
    return family


def _build_registers(doc: dict[str, Any], family: ChipFamily) -> tuple[ConfigRegister, ...]:
    registers: list[ConfigRegister] = []
    for reg in doc.get("config_registers", []):
        reg_fields: list[ConfigField] = []
        for field_doc in reg.get("fields", []):
            high, low = field_doc["bit_range"]
            if high < low:
                raise ChipDefinitionError(
                    f"{family.value}.{reg['name']}.{field_doc['name']} bit_range must be [high, low]"
                )
            reg_fields.append(ConfigField(name=field_doc["name"], bit_range=(high, low)))
        registers.append(
            ConfigRegister(
                name=reg["name"],
                offset=int(reg["offset"]),
                reset=reg.get("reset"),
                fields=tuple(reg_fields),
            )
        )
    return tuple(registers)


def _build_chips(doc: dict[str, Any], source: Path | Traversable) -> list[ChipDescriptor]:
    validate(doc, load_schema_validator("chip.schema.json"), source, error_cls=ChipDefinitionError)

    family = _normalize_family(doc["family"], source=source)
    registers = _build_registers(doc, family)
    support_flash_protect = normalize_bool(
        doc.get("support_flash_protect", True),
        context=f"{family.value}.support_flash_protect",
        error_cls=ChipDefinitionError,
    )
    support_encryption = normalize_bool(
        doc.get("support_encryption", True),
        context=f"{family.value}.support_encryption",
        error_cls=ChipDefinitionError,
    )

    chips: list[ChipDescriptor] = []
    for variant in doc["variants"]:
        device_type = variant.get("device_type", doc.get("device_type"))
        if device_type is None:
            raise ChipDefinitionError(
                f"{family.value}.{variant['name']} has no device_type and the family sets none ({source})"
            )
        chips.append(
            ChipDescriptor(
                name=variant["name"],
                chip_id=int(variant["chip_id"]),
                device_type=int(device_type),
                flash_size=int(variant["flash_size"]),
                eeprom_size=int(variant.get("eeprom_size", 0)),
                family=family,
                support_flash_protect=support_flash_protect,
                support_encryption=support_encryption,
                min_erase_sectors=int(doc.get("min_erase_sectors", 1)),
                sector_size=int(doc.get("sector_size", 1024)),
                uid_size=int(doc.get("uid_size", 8)),
                config_registers=registers,
            )
        )
    return chips


def _iter_packaged_chip_paths() -> list[Traversable]:
    chip_root = resources.files("wchisp.chips")
    return [item for item in chip_root.iterdir() if item.name.endswith((".yml", ".yaml"))]


def _iter_user_chip_paths() -> list[Path]:
    paths: list[Path] = []
    for directory in _chip_dirs():
        if not directory.exists() or not directory.is_dir():
            continue
        paths.extend(sorted(p for p in directory.iterdir() if p.suffix in {".yml", ".yaml"}))
    return paths


def load_chips() -> LoadedChips:
    chips: dict[ChipKey, ChipDescriptor] = {}
    warnings: list[str] = []

    for path in sorted(_iter_packaged_chip_paths(), key=lambda p: p.name):
        doc = read_yaml(path, error_cls=ChipDefinitionError)
        for chip in _build_chips(doc, path):
            if chip.key in chips:
                raise ChipDefinitionError(
                    f"Packaged chip {chip} in {path} duplicates {chips[chip.key]}"
                )
            chips[chip.key] = chip

    for path in _iter_user_chip_paths():
        doc = read_yaml(path, error_cls=ChipDefinitionError)
        for chip in _build_chips(doc, path):
            if chip.key in chips:
                warning = f"User chip definition {chip} overrides {chips[chip.key]}"
                LOGGER.warning(warning)
                warnings.append(warning)
            chips[chip.key] = chip

    return LoadedChips(chips=chips, warnings=tuple(warnings))
