# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterjoin/join/addresses.py

from __future__ import annotations

import ipaddress
from typing import Dict, Iterable, List, Sequence

from .errors import AddressParseError

REGION_DELIMITER = ":"
MAX_RANGE_SIZE = 65536


def _parse_address(text: str) -> ipaddress.IPv4Address | ipaddress.IPv6Address:
    try:
        return ipaddress.ip_address(text.strip())
    except ValueError as exc:
        raise AddressParseError(f"{text!r} is not a valid IP address") from exc


def _expand_item(item: str) -> List[str]:
    """
    Expand one comma-separated item: a single address or an inclusive A-B range.
    """
    item = item.strip()
    if "-" not in item:
        return [str(_parse_address(item))]

    lo_text, _, hi_text = item.partition("-")
    lo, hi = _parse_address(lo_text), _parse_address(hi_text)
    if lo.version != hi.version:
        raise AddressParseError(f"range {item!r} mixes IPv{lo.version} and IPv{hi.version}")
    if int(lo) > int(hi):
        raise AddressParseError(f"range {item!r} starts after it ends")
    size = int(hi) - int(lo) + 1
    if size > MAX_RANGE_SIZE:
        raise AddressParseError(f"range {item!r} covers {size} addresses, limit is {MAX_RANGE_SIZE}")
    return [str(lo + i) for i in range(size)]


def _expand_list(text: str) -> List[str]:
    out: List[str] = []
    for item in text.split(","):
        out.extend(_expand_item(item))
    return out


def split_region(token: str, default_region: str) -> tuple[str, List[str]]:
    """
    Split ``[region:]address[,address|address-address]*`` into region and addresses.

    A token that already reads as a plain address list (an IPv6 address,
    for instance) carries no region.
    """
    token = token.strip()
    try:
        return default_region, _expand_list(token)
    except AddressParseError:
        if REGION_DELIMITER not in token:
            raise

    region, _, rest = token.partition(REGION_DELIMITER)
    region = region.strip()
    if not region:
        raise AddressParseError(f"token {token!r} has an empty region")
    return region, _expand_list(rest)


def expand_agents(tokens: Sequence[str], default_region: str) -> Dict[str, List[str]]:
    """
    Expand raw --agent tokens into region -> ordered, de-duplicated addresses.

    An address seen twice anywhere in the input keeps only its first
    occurrence, including its first region.

    >>> expand_agents(["us-west-1:1.1.1.1-1.1.1.3"], "default")
    {'us-west-1': ['1.1.1.1', '1.1.1.2', '1.1.1.3']}
    """
    if not tokens or not any(t.strip() for t in tokens):
        raise AddressParseError("no agent addresses given")

    seen: set[str] = set()
    regions: Dict[str, List[str]] = {}
    for token in tokens:
        if not token.strip():
            continue
        region, addresses = split_region(token, default_region)
        for address in addresses:
            if address in seen:
                continue
            seen.add(address)
            regions.setdefault(region, []).append(address)
    return regions


def normalize_server_addresses(addresses: Iterable[str]) -> List[str]:
    return sorted(set(a.strip() for a in addresses if a.strip()))
