"""Single post-deploy HTTP probe of a Web App.

Freshly created App Service containers can take minutes to pull the image and
start, so a failed probe is reported, not treated as a deploy failure.
"""

from __future__ import annotations

from dataclasses import dataclass

import requests

DEFAULT_TIMEOUT_SECONDS = 30.0


@dataclass(frozen=True)
class ProbeResult:
    url: str
    ok: bool
    status_code: int | None = None
    error: str = ""

    def describe(self) -> str:
        if self.ok:
            return f"✅ {self.url} responded {self.status_code}"
        if self.status_code is not None:
            return f"⚠️  {self.url} responded {self.status_code}: {self.error}"
        return f"⚠️  {self.url} unreachable: {self.error}"


def probe_webapp(url: str, *, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> ProbeResult:
    try:
        response = requests.get(url, timeout=timeout, allow_redirects=True)
    except requests.RequestException as exc:
        return ProbeResult(url=url, ok=False, error=str(exc))

    if response.ok:
        return ProbeResult(url=url, ok=True, status_code=int(response.status_code))

    details = str(response.text or "").strip().replace("\n", " ")[:200]
    return ProbeResult(url=url, ok=False, status_code=int(response.status_code), error=details)
