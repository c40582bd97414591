"""Client signal helpers: IP normalisation, user-agent parsing and device fingerprints."""

from __future__ import annotations

import hashlib
import re

from auth.models import UserAgentInfo

_BROWSER_RULES = (
    (re.compile(r"Edg/"), "Edge"),
    (re.compile(r"OPR/|Opera"), "Opera"),
    (re.compile(r"Chrome/"), "Chrome"),
    (re.compile(r"Firefox/"), "Firefox"),
)
_OS_RULES = (
    (re.compile(r"Windows NT"), "Windows"),
    (re.compile(r"Android"), "Android"),
    (re.compile(r"iPhone|iPad|iPod"), "iOS"),
    (re.compile(r"Mac OS X"), "macOS"),
    (re.compile(r"Linux"), "Linux"),
)
LOOPBACK_IPS = frozenset({"::1", "127.0.0.1"})


def normalize_ip(ip: str | None) -> str:
    if not ip:
        return ""
    ip = ip.strip()
    return ip[len("::ffff:"):] if ip.startswith("::ffff:") else ip


def soft_ip(ip: str | None) -> str:
    """Collapse an address to its /24 (IPv4) or first four hextets (IPv6)."""
    clean = normalize_ip(ip)
    if not clean:
        return ""
    if ":" in clean:
        parts = [part for part in clean.split(":") if part]
        head = ":".join(parts[:4])
        return f"{head}::" if head else clean
    octets = clean.split(".")
    if len(octets) == 4:
        return f"{octets[0]}.{octets[1]}.{octets[2]}.0"
    return clean


def parse_user_agent(user_agent: str | None, platform: str = "") -> UserAgentInfo:
    ua = user_agent or ""
    browser = "Unknown"
    for pattern, name in _BROWSER_RULES:
        if pattern.search(ua):
            browser = name
            break
    else:
        if "Safari/" in ua and "Version/" in ua:
            browser = "Safari"

    os_name = "Unknown"
    for pattern, name in _OS_RULES:
        if pattern.search(ua):
            os_name = name
            break

    return UserAgentInfo(browser=browser, os=os_name, platform=platform.strip('"'))


def build_device_fingerprint(
    ip: str | None,
    user_agent: str | None,
    accept_language: str = "",
    platform: str = "",
) -> str:
    ua = user_agent or ""
    os_name = parse_user_agent(ua).os
    raw = f"{ua}::{accept_language}::{platform or os_name}::{soft_ip(ip)}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()
