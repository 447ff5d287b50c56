"""Identity values applied to the browser before the first navigation."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping

from reel_engine.config_loader import section
from reel_engine.core.errors import AuthenticationError
from reel_engine.core.types import CookieSpec

DEFAULT_COOKIE_NAMES = ("sso", "sso-rw", "x-userid", "i18nextLng")
DEFAULT_LINKED_NAMES = ("sso", "sso-rw")


@dataclass
class CookieBundle:
    """Named cookie values plus the domains they belong to."""

    values: Dict[str, str]
    cookie_domain: str = ".grok.com"
    cookie_names: tuple[str, ...] = DEFAULT_COOKIE_NAMES
    linked_domain: str | None = ".x.ai"
    linked_suffix: str = "_xai"
    linked_names: tuple[str, ...] = field(default=DEFAULT_LINKED_NAMES)

    def to_cookie_list(self) -> List[CookieSpec]:
        """Return driver cookie payloads for every supplied value."""

        cookies: List[CookieSpec] = []
        for name in self.cookie_names:
            value = self.values.get(name)
            if value:
                cookies.append({"name": name, "value": value, "domain": self.cookie_domain, "path": "/"})
        if self.linked_domain:
            for name in self.linked_names:
                value = self.values.get(f"{name}{self.linked_suffix}")
                if value:
                    cookies.append({"name": name, "value": value, "domain": self.linked_domain, "path": "/"})
        return cookies

    def require_cookies(self) -> List[CookieSpec]:
        cookies = self.to_cookie_list()
        if not cookies:
            expected = ", ".join(self.cookie_names)
            raise AuthenticationError(f"No session cookies provided. Expected any of: {expected}")
        return cookies


def load_cookie_bundle(
    settings: Dict[str, Any] | None = None,
    *,
    values: Mapping[str, str] | None = None,
    cookie_file: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> CookieBundle:
    """Collect cookie values from explicit values, a JSON file, settings and the environment.

    Later sources fill gaps only; an explicitly supplied value always wins.
    """

    cfg = section(settings, "credentials")
    env = os.environ if environ is None else environ
    prefix = str(cfg.get("env_prefix", "REEL_COOKIE_"))
    cookie_names = tuple(cfg.get("cookie_names") or DEFAULT_COOKIE_NAMES)
    linked_names = tuple(cfg.get("linked_names") or DEFAULT_LINKED_NAMES)
    linked_suffix = str(cfg.get("linked_suffix", "_xai"))

    merged: Dict[str, str] = {}
    for source in (
        dict(values or {}),
        _read_cookie_file(cookie_file or cfg.get("cookie_file")),
        {k: str(v) for k, v in (cfg.get("values") or {}).items() if v},
    ):
        for name, value in source.items():
            if value and name not in merged:
                merged[name] = value
    wanted = list(cookie_names) + [f"{name}{linked_suffix}" for name in linked_names]
    for name in wanted:
        if name in merged:
            continue
        env_key = prefix + name.upper().replace("-", "_")
        if env.get(env_key):
            merged[name] = env[env_key]

    return CookieBundle(
        values=merged,
        cookie_domain=str(cfg.get("cookie_domain", ".grok.com")),
        cookie_names=cookie_names,
        linked_domain=cfg.get("linked_domain", ".x.ai"),
        linked_suffix=linked_suffix,
        linked_names=linked_names,
    )


def _read_cookie_file(path: Path | str | None) -> Dict[str, str]:
    if not path:
        return {}
    file_path = Path(path)
    if not file_path.exists():
        raise AuthenticationError(f"Cookie file not found: {file_path}")
    try:
        payload = json.loads(file_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise AuthenticationError(f"Cookie file is not valid JSON: {file_path}") from exc
    if isinstance(payload, list):
        # browser-extension export format
        cookies: Dict[str, str] = {}
        for index, item in enumerate(payload):
            if not isinstance(item, dict) or "name" not in item or "value" not in item:
                raise AuthenticationError(f"Malformed cookie entry #{index} in {file_path}")
            if item["name"] and item["value"]:
                cookies[str(item["name"])] = str(item["value"])
        return cookies
    if isinstance(payload, dict):
        return {str(name): str(value) for name, value in payload.items() if value}
    raise AuthenticationError(f"Unsupported cookie file format: {file_path}")


__all__ = ["CookieBundle", "load_cookie_bundle"]
