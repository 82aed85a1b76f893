"""vscoq settings: defaults, merging and the proof mode."""

import copy
import os
from enum import IntEnum

VSCOQTOP = os.environ.get("VSCOQTOP", "vscoqtop")


class ProofMode(IntEnum):
    MANUAL = 0
    CONTINUOUS = 1


# The server has no defaults of its own: this whole tree is sent as
# initializationOptions and again as settings on every change.
DEFAULT_CONFIG = {
    "goals": {
        "display": "List",  # "Tabs" | "List"
        "diff": {
            "mode": "off",  # "off" | "on" | "removed"
        },
        "messages": {
            "full": False,
        },
    },
    "proof": {
        "mode": int(ProofMode.CONTINUOUS),
        "cursor": {
            "sticky": True,
        },
        "delegation": "None",  # "None" | "Skip" | "Delegate"
        "workers": 1,
    },
    "completion": {
        "enable": False,
        "unificationLimit": 100,
        "algorithm": 1,
    },
    "diagnostics": {
        "full": False,
    },
}


def deep_merge(base: dict, override: dict) -> dict:
    """Return a new dict: nested dicts merged, everything else from override."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def make_config(overrides: dict | None = None) -> dict:
    return deep_merge(DEFAULT_CONFIG, overrides or {})


def proof_mode(config: dict) -> ProofMode:
    return ProofMode(int(config["proof"]["mode"]))


def cursor_sticky(config: dict) -> bool:
    return bool(config["proof"]["cursor"]["sticky"])
