"""Deterministic environment variable/secret schema for the dual Web App deploy.

This module is the single source of truth for:
- which deploy-time keys exist (vars vs secrets) and their defaults
- which runtime settings are injected into each Web App

Design goals:
- No heuristic classification (no regex guessing).
- Fail fast with clear error messages.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable, Mapping

from dotenv import dotenv_values


class VarsEnum(str, Enum):
    # Naming / placement
    APP_NAME = "APP_NAME"
    RESOURCE_GROUP = "RESOURCE_GROUP"
    LOCATION = "LOCATION"

    # Image / registry
    CONTAINER_IMAGE = "CONTAINER_IMAGE"
    REGISTRY_USERNAME = "REGISTRY_USERNAME"


class SecretsEnum(str, Enum):
    # Shared by both Web App instances
    ENCRYPTION_KEY = "ENCRYPTION_KEY"
    REVOLV_SHARED_SECRET = "REVOLV_SHARED_SECRET"

    # Image / registry
    REGISTRY_PASSWORD = "REGISTRY_PASSWORD"


class AppSettingsEnum(str, Enum):
    """Runtime settings written into each Web App's configuration."""

    WEBSITES_PORT = "WEBSITES_PORT"
    ENV = "ENV"
    INSTANCE_ID = "INSTANCE_ID"
    ALLOW_PRIVATE_ACCESS = "ALLOW_PRIVATE_ACCESS"
    ENCRYPTION_KEY = "ENCRYPTION_KEY"
    REVOLV_SHARED_SECRET = "REVOLV_SHARED_SECRET"
    DATABASE_URL = "DATABASE_URL"


@dataclass(frozen=True)
class EnvKeySpec:
    key: VarsEnum | SecretsEnum
    mandatory: bool
    default: str | None = None


class EnvValidationError(ValueError):
    def __init__(self, *, context: str, problems: list[str]):
        super().__init__("; ".join(problems))
        self.context = context
        self.problems = problems

    def format(self) -> str:
        lines = [f"[env] validation failed: {self.context}"]
        for p in self.problems:
            lines.append(f"- {p}")
        return "\n".join(lines)


DEPLOY_SCHEMA: tuple[EnvKeySpec, ...] = (
    EnvKeySpec(key=VarsEnum.APP_NAME, mandatory=False),
    EnvKeySpec(key=VarsEnum.RESOURCE_GROUP, mandatory=False, default="ari-zks-rg"),
    EnvKeySpec(key=VarsEnum.LOCATION, mandatory=False, default="westeurope"),
    EnvKeySpec(key=VarsEnum.CONTAINER_IMAGE, mandatory=False),
    EnvKeySpec(key=VarsEnum.REGISTRY_USERNAME, mandatory=False),
    EnvKeySpec(key=SecretsEnum.REGISTRY_PASSWORD, mandatory=False),
    EnvKeySpec(key=SecretsEnum.ENCRYPTION_KEY, mandatory=False),
    EnvKeySpec(key=SecretsEnum.REVOLV_SHARED_SECRET, mandatory=False),
)


def _schema_keys(schema: Iterable[EnvKeySpec]) -> set[str]:
    return {spec.key.value for spec in schema}


def parse_dotenv_file(path: Path) -> dict[str, str]:
    """Parse dotenv file strictly.

    - Comments are ignored.
    - Keys are preserved even if they have empty values (""), so we can detect unknown keys.
    """
    kv: dict[str, str] = {}
    raw = dotenv_values(path)
    for k, v in raw.items():
        if k is None:
            continue
        key = str(k).strip()
        if not key:
            continue
        val = "" if v is None else str(v).strip()
        kv[key] = val
    return kv


def write_dotenv_values(*, path: Path, updates: Mapping[str, str], create: bool = False) -> None:
    """Update (or create) a dotenv file in-place.

    - Preserves existing lines/comments.
    - Replaces existing KEY=... lines for keys in `updates`.
    - Appends missing keys at the end in sorted order.
    """
    if not updates:
        return

    if not path.exists():
        if not create:
            return
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("# Generated/updated by scripts/deploy/deploy_dual_webapps.py\n\n")

    original_lines = path.read_text().splitlines()
    remaining = {k: str(v) for k, v in updates.items() if str(v).strip()}
    if not remaining:
        return

    out: list[str] = []
    for line in original_lines:
        s = line.strip()
        if not s or s.startswith("#") or "=" not in line:
            out.append(line)
            continue

        key = line.split("=", 1)[0].strip()
        if key in remaining:
            out.append(f"{key}={remaining.pop(key)}")
            continue

        out.append(line)

    if remaining:
        if out and out[-1].strip() != "":
            out.append("")
        for key in sorted(remaining.keys()):
            out.append(f"{key}={remaining[key]}")

    path.write_text("\n".join(out) + "\n")


def validate_known_keys(schema: Iterable[EnvKeySpec], kv: Mapping[str, str], *, context: str) -> None:
    allowed = _schema_keys(schema)
    unknown = sorted([k for k in kv.keys() if k not in allowed])
    if unknown:
        raise EnvValidationError(
            context=context,
            problems=["Unknown key(s): " + ", ".join(unknown)],
        )


def apply_defaults(schema: Iterable[EnvKeySpec], kv: dict[str, str]) -> dict[str, str]:
    out = dict(kv)
    for spec in schema:
        if spec.key.value in out and str(out.get(spec.key.value) or "").strip():
            continue
        if spec.default is None:
            continue
        out[spec.key.value] = spec.default
    return out


def read_deploy_env(env: Mapping[str, str], deploy_env_path: Path | None) -> dict[str, str]:
    """Merge the deploy env file under `env` and apply schema defaults.

    Process environment wins over the file so one-off overrides
    (`APP_NAME=x ./deploy ...`) do not require editing `.env.deploy`.
    Only schema keys with non-empty values are returned.
    """
    keys = _schema_keys(DEPLOY_SCHEMA)

    merged: dict[str, str] = {}
    if deploy_env_path is not None and deploy_env_path.exists():
        file_kv = parse_dotenv_file(deploy_env_path)
        validate_known_keys(DEPLOY_SCHEMA, file_kv, context=f"deploy ({deploy_env_path.name})")
        merged.update({k: v for k, v in file_kv.items() if v})

    for k in keys:
        v = str(env.get(k) or "").strip()
        if v:
            merged[k] = v

    merged = apply_defaults(DEPLOY_SCHEMA, merged)
    return {k: v for k, v in merged.items() if k in keys and v}


def get_spec(schema: Iterable[EnvKeySpec], key: VarsEnum | SecretsEnum) -> EnvKeySpec:
    for spec in schema:
        if spec.key == key:
            return spec
    raise KeyError(key)
