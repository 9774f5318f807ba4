"""
Base class shared by every lancesc storage object.

A storage object is a directory identified by its URI. The directory holds a
``config.json`` manifest describing the object (type, class, format version)
and its user metadata. Arrays keep their Lance dataset beside the manifest;
groups keep their members in sub-directories.
"""

import json
import os
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from loguru import logger

from .errors import ArgumentError, StorageError
from .options import StorageOptions

CONFIG_FILE = "config.json"
FORMAT_VERSION = "0.1"

# Concrete classes by name, used to rebuild typed group members
_CLASS_REGISTRY: dict[str, type["StorageObject"]] = {}


def lookup_class(class_name: str) -> type["StorageObject"]:
    """Return the storage class registered under ``class_name``."""
    try:
        return _CLASS_REGISTRY[class_name]
    except KeyError as err:
        raise StorageError(f"Unknown storage class '{class_name}'") from err


class StorageObject:
    """
    A URI plus the options used to open it.

    Subclasses set ``object_type`` to ``"array"`` or ``"group"``. Instantiating
    an object never creates anything on disk; creation happens on first write.

    Args:
        uri: Location of the object's directory.
        verbose: Emit informational messages at INFO level instead of DEBUG.
            Defaults to ``options.verbose``.
        options: Storage options; defaults to :class:`StorageOptions`.

    Raises:
        StorageError: If something of a different object type already exists
            at ``uri``.
    """

    object_type = "object"

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        _CLASS_REGISTRY[cls.__name__] = cls

    def __init__(
        self,
        uri: str | Path,
        verbose: bool | None = None,
        options: StorageOptions | None = None,
    ):
        self.uri = str(uri)
        self.options = options or StorageOptions()
        self.verbose = self.options.verbose if verbose is None else verbose

        if self.exists():
            found = self._read_config().get("object_type")
            if found != self.object_type:
                raise StorageError(
                    f"Expected a {self.object_type} at '{self.uri}', found {found}"
                )
            self._message(f"Found existing {self.class_name} at '{self.uri}'")
        else:
            self._message(f"No {self.class_name} found at '{self.uri}'")

    @property
    def path(self) -> Path:
        return Path(self.uri)

    @property
    def name(self) -> str:
        """Basename of the object's URI."""
        return self.path.name

    @property
    def class_name(self) -> str:
        return type(self).__name__

    @property
    def config_path(self) -> Path:
        return self.path / CONFIG_FILE

    def exists(self) -> bool:
        """True when the object has been created at its URI."""
        return self.config_path.exists()

    def __repr__(self) -> str:
        state = "" if self.exists() else ", missing"
        return f"{self.class_name}(uri='{self.uri}'{state})"

    def _message(self, msg: str):
        if self.verbose:
            logger.info(msg)
        else:
            logger.debug(msg)

    # Manifest handling

    def _read_config(self) -> dict[str, Any]:
        if not self.config_path.exists():
            raise StorageError(f"No {self.class_name} found at '{self.uri}'")
        with open(self.config_path) as f:
            return json.load(f)

    def _write_config(self, config: dict[str, Any]):
        self.path.mkdir(parents=True, exist_ok=True)
        tmp_path = self.config_path.with_suffix(".json.tmp")
        with open(tmp_path, "w") as f:
            json.dump(config, f, indent=2)
        os.replace(tmp_path, self.config_path)

    def _create_config(self, **fields: Any):
        """Write the initial manifest for a new object."""
        config = {
            "format_version": FORMAT_VERSION,
            "object_type": self.object_type,
            "class": self.class_name,
            "metadata": {},
        }
        config.update(fields)
        self._write_config(config)

    @contextmanager
    def _config_session(self, mode: str = "READ") -> Iterator[dict[str, Any]]:
        """
        Scoped access to the manifest.

        In ``WRITE`` mode the (possibly mutated) manifest is written back when
        the block exits normally; nothing is written if the block raises.
        """
        if mode not in ("READ", "WRITE"):
            raise ArgumentError(f"mode must be 'READ' or 'WRITE', got '{mode}'")
        config = self._read_config()
        yield config
        if mode == "WRITE":
            self._write_config(config)

    # Metadata

    def get_metadata(self, key: str | None = None, prefix: str | None = None) -> Any:
        """
        Retrieve metadata stored on the object.

        Args:
            key: Name of a single entry to return. Missing keys return None.
            prefix: Only return entries whose name starts with ``prefix``.
                Ignored when ``key`` is given.

        Returns:
            The value for ``key``, or a dict of entries.
        """
        with self._config_session("READ") as config:
            metadata = config.get("metadata", {})
        if key is not None:
            return metadata.get(key)
        if prefix is not None:
            return {k: v for k, v in metadata.items() if k.startswith(prefix)}
        return dict(metadata)

    def add_metadata(self, metadata: Mapping[str, Any], prefix: str = "") -> None:
        """
        Add entries to the object's metadata.

        Args:
            metadata: Mapping of names to JSON-serialisable values.
            prefix: Optional prefix prepended to every name.

        Raises:
            ArgumentError: If ``metadata`` is not a mapping with string keys or
                holds values that cannot be serialised.
        """
        if not isinstance(metadata, Mapping) or not all(
            isinstance(k, str) for k in metadata
        ):
            raise ArgumentError("Metadata must be a mapping with string keys")
        entries = {f"{prefix}{k}": v for k, v in metadata.items()}
        try:
            json.dumps(entries)
        except TypeError as err:
            raise ArgumentError(
                f"Metadata values must be JSON serialisable: {err}"
            ) from err

        with self._config_session("WRITE") as config:
            config.setdefault("metadata", {}).update(entries)
