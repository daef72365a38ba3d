"""Address validation helpers."""

from __future__ import annotations

import re

_EVM_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")


def is_evm_address(value: object) -> bool:
    return isinstance(value, str) and bool(_EVM_ADDRESS_RE.match(value.strip()))
