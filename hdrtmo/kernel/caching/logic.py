import hashlib
import json
from dataclasses import dataclass
from typing import Any, Dict


@dataclass
class CacheEntry:
    """
    A cached pipeline result and the config it was computed under.
    """

    config_hash: str
    data: Any


def calculate_config_hash(config: Dict[str, Any]) -> str:
    """
    Stable MD5 of a settings dict, independent of key order.
    """
    serialized = json.dumps(config, sort_keys=True, default=str)
    return hashlib.md5(serialized.encode("utf-8")).hexdigest()
