#!/usr/bin/env python3
"""Shared Azure CLI utilities."""

from __future__ import annotations

import json
import logging
import shutil
import subprocess
import sys

logger = logging.getLogger("deploy.az")

# Flags whose following argument must never be echoed.
SENSITIVE_FLAGS = frozenset(
    {
        "--container-registry-password",
        "--docker-registry-server-password",
        "--account-key",
        "--access-key",
        "--password",
    }
)

# Settings that are printed as KEY=*** when passed via `--settings`.
SENSITIVE_SETTING_KEYS = frozenset({"ENCRYPTION_KEY", "REVOLV_SHARED_SECRET"})


def redact_command(cmd: list[str]) -> str:
    """Return a printable command line with secret values masked."""
    out: list[str] = []
    mask_next = False
    for part in cmd:
        if mask_next:
            out.append("***")
            mask_next = False
            continue
        if part in SENSITIVE_FLAGS:
            out.append(part)
            mask_next = True
            continue
        key, sep, _ = part.partition("=")
        if sep and key in SENSITIVE_SETTING_KEYS:
            out.append(f"{key}=***")
            continue
        out.append(part)
    return " ".join(out)


def az_installed() -> bool:
    return shutil.which("az") is not None


def run_az_command(args: list[str], *, capture_output: bool = True, ignore_errors: bool = False, verbose: bool = True) -> dict | list | str | None:
    """Run an azure cli command."""
    cmd = ["az"] + args
    if verbose:
        print(f"[az] {redact_command(cmd)}")
    else:
        logger.debug("az %s", redact_command(args))

    # Check if az is installed
    if not az_installed():
        if ignore_errors:
            return None
        raise RuntimeError("Azure CLI (az) not found. Please install it.")

    result = subprocess.run(
        cmd,
        stdout=subprocess.PIPE if capture_output else None,
        stderr=subprocess.PIPE,
        text=True,
        check=False,
    )

    if result.returncode != 0:
        if ignore_errors:
            logger.debug("az exited %s (ignored): %s", result.returncode, (result.stderr or "").strip())
            return None

        if result.stdout:
            print(result.stdout.rstrip(), file=sys.stderr)
        if result.stderr:
            print(result.stderr.rstrip(), file=sys.stderr)

        raise subprocess.CalledProcessError(result.returncode, cmd, output=result.stdout, stderr=result.stderr)

    if capture_output and result.stdout:
        out = result.stdout.strip()
        if not out:
            return None
        try:
            return json.loads(out)
        except json.JSONDecodeError:
            return out

    return None


def az_logged_in() -> bool:
    """True when `az account show` returns a subscription."""
    return bool(get_az_account_info()["id"])


def get_az_account_info() -> dict[str, str]:
    """Return dictionary with 'id' (subscription) and 'tenantId'."""
    try:
        res = run_az_command(["account", "show", "--output", "json"], capture_output=True, verbose=False)
    except (subprocess.CalledProcessError, RuntimeError) as e:
        logger.debug("az account show failed: %s", e)
        return {"id": "", "tenantId": ""}
    if isinstance(res, dict):
        return {
            "id": str(res.get("id") or ""),
            "tenantId": str(res.get("tenantId") or ""),
        }
    return {"id": "", "tenantId": ""}
