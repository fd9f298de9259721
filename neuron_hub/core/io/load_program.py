from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml

from neuron_hub.core.errors import HubLoadError


def load_program(path: str) -> dict[str, Any]:
    """Load a YAML/JSON program document.

    Returns a dict with keys: schema_version, program.
    Does not coerce types; validator owns shape checking.
    """

    p = Path(path)
    if not p.exists():
        raise HubLoadError(
            code="E_FILE_NOT_FOUND",
            message="file does not exist",
            file=str(p),
        )

    suffix = p.suffix.lower()
    try:
        raw_text = p.read_text(encoding="utf-8")
    except Exception as e:
        raise HubLoadError(code="E_FILE_READ", message=str(e), file=str(p)) from e

    try:
        if suffix in {".yaml", ".yml"}:
            data = yaml.safe_load(raw_text)
        elif suffix == ".json":
            data = json.loads(raw_text)
        else:
            raise HubLoadError(
                code="E_UNSUPPORTED_FORMAT",
                message="supported formats are .yaml/.yml and .json",
                file=str(p),
            )
    except HubLoadError:
        raise
    except Exception as e:
        code = "E_YAML_PARSE" if suffix in {".yaml", ".yml"} else "E_JSON_PARSE"
        raise HubLoadError(code=code, message=str(e), file=str(p)) from e

    if not isinstance(data, dict):
        raise HubLoadError(
            code="E_INVALID_TOP_LEVEL",
            message="top-level document must be a mapping/object",
            file=str(p),
        )

    normalized: dict[str, Any] = {
        "schema_version": data.get("schema_version"),
        "program": data.get("program"),
    }
    normalized["__file__"] = str(p)
    return normalized
