"""Protocol timing and robustness settings.

Defaults mirror the values observed on real bootloaders. The post-send grace
period and the tolerant key-checksum handling have not been validated against
every chip revision, so both can be overridden from
``$XDG_CONFIG_HOME/wchisp/settings.yaml``::

    post_send_grace_s: 0.0005
    strict_key_checksum: true
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

from wchisp.core.documents import load_schema_validator, normalize_bool, read_yaml, validate
from wchisp.core.errors import SettingsError

LOGGER = logging.getLogger(__name__)

SETTINGS_FILENAME = "settings.yaml"


@dataclass(frozen=True)
class ProtocolSettings:
    default_timeout_s: float = 1.0
    erase_timeout_s: float = 5.0
    chunk_timeout_s: float = 0.3
    data_erase_timeout_s: float = 1.0
    post_send_grace_s: float = 0.0001
    key_seed_len: int = 0x1E
    chunk_size: int = 56
    strict_key_checksum: bool = False


def settings_path() -> Path:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return xdg_config / "wchisp" / SETTINGS_FILENAME


def load_settings(path: Path | None = None) -> ProtocolSettings:
    path = path or settings_path()
    if not path.exists():
        return ProtocolSettings()

    doc = read_yaml(path, error_cls=SettingsError)
    validate(doc, load_schema_validator("settings.schema.json"), path, error_cls=SettingsError)

    overrides: dict[str, Any] = {}
    for setting in fields(ProtocolSettings):
        if setting.name not in doc:
            continue
        value = doc[setting.name]
        if setting.name == "strict_key_checksum":
            overrides[setting.name] = normalize_bool(value, context=setting.name, error_cls=SettingsError)
        elif setting.name in ("key_seed_len", "chunk_size"):
            overrides[setting.name] = int(value)
        else:
            overrides[setting.name] = float(value)

    LOGGER.debug("Loaded settings overrides from %s: %s", path, overrides)
    return replace(ProtocolSettings(), **overrides)
