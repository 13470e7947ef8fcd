"""Operator prompts used during a deploy run.

Resolution code only talks to a `PromptSource`, so tests can script answers
instead of driving a terminal.
"""

from __future__ import annotations

import getpass
import sys
from typing import Protocol, runtime_checkable

from scripts.deploy.deploy_errors import UserCancelledError


@runtime_checkable
class PromptSource(Protocol):
    def ask(self, label: str, default: str | None = None) -> str: ...
    def ask_secret(self, label: str) -> str: ...
    def confirm(self, label: str) -> bool: ...


class ConsolePrompts:
    """Blocking prompts on the controlling terminal.

    Ctrl-D / Ctrl-C at a prompt cancel the run (`UserCancelledError`);
    at the confirmation prompt Ctrl-D counts as "no".
    """

    def ask(self, label: str, default: str | None = None) -> str:
        suffix = f" [{default}]" if default else ""
        try:
            value = input(f"{label}{suffix}: ").strip()
        except (EOFError, KeyboardInterrupt) as e:
            print("")
            raise UserCancelledError() from e
        return value or (default or "")

    def ask_secret(self, label: str) -> str:
        try:
            # getpass reads from /dev/tty without echo.
            return getpass.getpass(f"{label}: ").strip()
        except (EOFError, KeyboardInterrupt) as e:
            print("")
            raise UserCancelledError() from e

    def confirm(self, label: str) -> bool:
        try:
            answer = input(f"{label} (y/N) ").strip()
        except EOFError:
            print("")
            return False
        except KeyboardInterrupt as e:
            print("")
            raise UserCancelledError() from e
        return answer in {"y", "Y"}


def is_interactive() -> bool:
    return sys.stdin.isatty()
