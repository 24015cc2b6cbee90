"""
YAML configuration loader.

Plain YAML files are read directly. A file whose top level carries a `sops`
metadata block is encrypted; it is run through `sops --decrypt` and the
decrypted document is used instead.
"""

import subprocess
from pathlib import Path
from typing import Any, Union

import yaml

SOPS_DECRYPT = ["sops", "--decrypt", "--output-type", "yaml"]


def decrypt_sops_file(file_path: Union[str, Path]) -> dict[str, Any]:
    """
    Decrypt a SOPS-encrypted YAML file.

    Raises:
        RuntimeError: If sops is missing or cannot decrypt the file
    """
    try:
        completed = subprocess.run(
            [*SOPS_DECRYPT, str(file_path)],
            capture_output=True,
            text=True,
            check=True,
        )
    except FileNotFoundError as e:
        raise RuntimeError(
            f"{file_path} is SOPS-encrypted but the sops binary is not installed"
        ) from e
    except subprocess.CalledProcessError as e:
        raise RuntimeError(
            f"sops could not decrypt {file_path}: {e.stderr.strip()}"
        ) from e

    return yaml.safe_load(completed.stdout) or {}


def load_yaml_config(file_path: Union[str, Path]) -> dict[str, Any]:
    """
    Load a settings file, decrypting it first when SOPS-encrypted.

    Returns an empty dict for an empty file.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the document is not a mapping
    """
    file_path = Path(file_path)
    if not file_path.exists():
        raise FileNotFoundError(f"Config file not found: {file_path}")

    with open(file_path, encoding="utf-8") as f:
        config = yaml.safe_load(f) or {}

    if not isinstance(config, dict):
        raise ValueError(f"Config file {file_path} must contain a mapping")

    if "sops" in config:
        config = decrypt_sops_file(file_path)

    return config
