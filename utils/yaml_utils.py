"""
YAML helper for loading configuration files.
"""
import os
from typing import Any, Optional

import yaml


def load_yaml(file_path: str) -> Optional[Any]:
    """
    Load a YAML file.

    Args:
        file_path: Path to the YAML file

    Returns:
        The parsed document, or None if the file does not exist or is empty
    """
    if not os.path.exists(file_path):
        return None
    with open(file_path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f)
