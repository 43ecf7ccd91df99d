"""Password handling for JSON plugin configuration files.

A password value in the configuration file can be:

- ``process.env.<NAME>``: read from the environment variable NAME
- ``process.file.<PATH>``: read from the JSON file PATH at ``<plugin>.<dotted key>``
- cleartext: encrypted in place on first read and written back to the file
- encrypted: base64 of ``hex(iv):hex(ciphertext)``, AES-128-CBC

The AES key is the last 16 characters of the seed, i.e. the configuration
file name followed by the ``SEED`` environment variable or the machine id.
Moving the file to another host (or renaming it) therefore invalidates the
stored ciphertext.
"""
from __future__ import annotations
import base64
import json
import logging
import os
import uuid
from pathlib import Path
from typing import Any, Optional

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from .cloning import clone
from .dotpath import assign, resolve
from .lock import Lock

logger = logging.getLogger(__name__)

IV_LENGTH = 16
PROCESS_ENV = "process.env."
PROCESS_FILE = "process.file."

# serializes read/encrypt/write-back of configuration files
_config_lock = Lock()


def _machine_id() -> str:
    for candidate in ("/etc/machine-id", "/var/lib/dbus/machine-id"):
        path = Path(candidate)
        if path.exists():
            try:
                value = path.read_text().strip()
            except OSError:
                continue
            if value:
                return value
    return f"{uuid.getnode():012x}"


def password_seed(config_file: str | Path) -> str:
    """Seed for the configuration file: file name + SEED (or machine id)."""
    return Path(config_file).name + (os.environ.get("SEED") or _machine_id())


def _key(seed: str) -> bytes:
    return seed[-IV_LENGTH:].encode("utf-8")


def encrypt(cleartext: str, seed: str) -> str:
    """Encrypt ``cleartext`` into the stored password format."""
    iv = os.urandom(IV_LENGTH)
    padder = padding.PKCS7(algorithms.AES.block_size).padder()
    data = padder.update(cleartext.encode("utf-8")) + padder.finalize()
    encryptor = Cipher(algorithms.AES(_key(seed)), modes.CBC(iv)).encryptor()
    encrypted = encryptor.update(data) + encryptor.finalize()
    token = f"{iv.hex()}:{encrypted.hex()}"
    return base64.b64encode(token.encode("utf-8")).decode("ascii")


def decrypt(stored: str, seed: str) -> str:
    """Decrypt a stored password.

    Raises:
        ValueError: If ``stored`` is not a password encrypted with this seed
    """
    token = base64.b64decode(stored, validate=True).decode("utf-8")
    iv_hex, sep, encrypted_hex = token.partition(":")
    if not sep:
        raise ValueError("not an encrypted password")
    iv = bytes.fromhex(iv_hex)
    decryptor = Cipher(algorithms.AES(_key(seed)), modes.CBC(iv)).decryptor()
    data = decryptor.update(bytes.fromhex(encrypted_hex)) + decryptor.finalize()
    unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
    return (unpadder.update(data) + unpadder.finalize()).decode("utf-8")


def _read_external(reference: str, plugin_name: str, dotted_key: str) -> Optional[str]:
    """Resolve a ``process.env.`` / ``process.file.`` reference, None when unavailable."""
    if reference.startswith(PROCESS_ENV):
        return os.environ.get(reference[len(PROCESS_ENV):])
    if reference.startswith(PROCESS_FILE):
        file_path = Path(reference[len(PROCESS_FILE):])
        try:
            content = json.loads(file_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning(f"can't read external configuration file {file_path}: {exc}")
            return None
        return resolve(content, f"{plugin_name}.{dotted_key}")
    return None


def _write_config(config_file: Path, config: dict) -> None:
    content = json.dumps(config, indent=2).replace("\n", "\r\n")
    with config_file.open("w", encoding="utf-8", newline="") as f:
        f.write(content)


def get_password(dotted_key: str, config_file: str | Path) -> Optional[str]:
    """Return the cleartext password stored at ``dotted_key`` in ``config_file``.

    A cleartext value found in the file is encrypted and written back before
    being returned.

    Args:
        dotted_key: Path into the configuration, e.g. ``endpoint.password``
        config_file: JSON configuration file

    Returns:
        Cleartext password, or None if not configured or not resolvable

    Raises:
        ValueError: If the seed is shorter than 16 characters
    """
    config_file = Path(config_file)
    seed = password_seed(config_file)
    if len(seed) < IV_LENGTH:
        raise ValueError("Password seed length too short")

    with _config_lock:
        config = json.loads(config_file.read_text(encoding="utf-8"))
        stored = resolve(config, dotted_key)
        if not stored or not isinstance(stored, str):
            return None

        if stored.startswith((PROCESS_ENV, PROCESS_FILE)):
            return _read_external(stored, config_file.stem, dotted_key)

        try:
            return decrypt(stored, seed)
        except ValueError:
            # cleartext: encrypt and persist
            assign(config, dotted_key, encrypt(stored, seed))
            _write_config(config_file, config)
            logger.info(f"encrypted cleartext '{dotted_key}' in {config_file.name}")
            return stored


def process_external_config(plugin_name: str, config: Any, prefix: str = "") -> Any:
    """Return a copy of ``config`` with external references replaced.

    String values ``process.env.<NAME>`` and ``process.file.<PATH>`` anywhere
    in the tree are replaced by the referenced value (None when missing).
    ``prefix`` is the dotted location of ``config`` inside the full file and is
    used to look up ``process.file.`` values.
    """
    if isinstance(config, dict):
        result = {}
        for key, value in config.items():
            path = f"{prefix}.{key}" if prefix else key
            result[key] = process_external_config(plugin_name, value, path)
        return result
    if isinstance(config, list):
        return [
            process_external_config(plugin_name, value, f"{prefix}[{i}]")
            for i, value in enumerate(config)
        ]
    if isinstance(config, str) and config.startswith((PROCESS_ENV, PROCESS_FILE)):
        return _read_external(config, plugin_name, prefix)
    return clone(config)
