"""
Configuration management for storecrypt.

YAML (or plain dict) configuration describing a backend and the transform
wrapped around it:

    storage:
      backend: local
      local:
        base_dir: /data/wal
      transform:
        mode: variadic
        write_ext: .gz.aes
        gzip: true
        aes_password_env: STORECRYPT_PASSWORD
"""

import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from .base import StorageBackend
from .codecs import gzip_pair, zstd_pair
from .crypt import DEFAULT_CHUNK_SIZE, DEFAULT_ITERATIONS, ChunkedGCMCrypter
from .errors import ConfigurationError
from .local import LocalStorage
from .memory import InMemoryStorage
from .s3 import DEFAULT_CONCURRENCY, DEFAULT_PART_SIZE, S3Storage
from .sftp import SFTPStorage
from .transforming import TransformingStorage
from .variadic import Algorithms, VariadicStorage

logger = logging.getLogger(__name__)

BACKENDS = ("local", "s3", "sftp", "memory")
TRANSFORM_MODES = ("variadic", "fixed", "none")
COMPRESSIONS = (None, "gzip", "zstd")
ENCRYPTIONS = (None, "aes")


@dataclass
class LocalConfig:
    """Settings for the local filesystem backend."""
    base_dir: str = "./data"
    fsync_on_write: bool = False
    create_if_missing: bool = True


@dataclass
class S3Config:
    """Settings for the S3 backend."""
    bucket: str = ""
    prefix: str = ""
    endpoint_url: Optional[str] = None
    access_key: Optional[str] = None
    secret_key: Optional[str] = None
    region: str = "us-east-1"
    url_style: str = "path"
    use_ssl: Optional[bool] = None
    part_size: int = DEFAULT_PART_SIZE
    max_concurrency: int = DEFAULT_CONCURRENCY


@dataclass
class SFTPConfig:
    """Settings for the SFTP backend."""
    host: str = ""
    port: int = 22
    user: str = ""
    key_filename: Optional[str] = None
    password: Optional[str] = None
    base_dir: str = "."
    timeout: float = 10.0


@dataclass
class TransformConfig:
    """Settings for the transform wrapped around the backend.

    `mode` picks the wrapper: "variadic" (VariadicStorage, uses write_ext and
    the gzip/zstd flags), "fixed" (TransformingStorage, uses compression and
    encryption) or "none" (bare backend).
    """
    mode: str = "variadic"
    write_ext: str = ""
    compression: Optional[str] = None
    encryption: Optional[str] = None
    gzip: bool = True
    zstd: bool = True
    aes_password: Optional[str] = None
    aes_password_env: Optional[str] = None
    aes_chunk_size: int = DEFAULT_CHUNK_SIZE
    aes_iterations: int = DEFAULT_ITERATIONS
    strict_names: bool = False

    def __post_init__(self):
        if self.mode not in TRANSFORM_MODES:
            raise ConfigurationError(
                f"Unknown transform mode: {self.mode} (expected one of {', '.join(TRANSFORM_MODES)})"
            )
        if self.compression not in COMPRESSIONS:
            raise ConfigurationError(f"Unknown compression: {self.compression}")
        if self.encryption not in ENCRYPTIONS:
            raise ConfigurationError(f"Unknown encryption: {self.encryption}")

    def resolve_password(self) -> Optional[str]:
        """Return the AES password, reading it from the environment if configured.

        Raises:
            ConfigurationError: If aes_password_env names an unset variable
        """
        if self.aes_password:
            return self.aes_password
        if self.aes_password_env:
            value = os.environ.get(self.aes_password_env)
            if not value:
                raise ConfigurationError(
                    f"Environment variable {self.aes_password_env} is not set"
                )
            return value
        return None


def _section(cls, values: Optional[Dict[str, Any]], name: str):
    try:
        return cls(**(values or {}))
    except TypeError as e:
        raise ConfigurationError(f"Invalid '{name}' section: {e}") from e


@dataclass
class StorageConfig:
    """Complete storage configuration."""

    backend: str = "local"
    local: LocalConfig = field(default_factory=LocalConfig)
    s3: S3Config = field(default_factory=S3Config)
    sftp: SFTPConfig = field(default_factory=SFTPConfig)
    transform: TransformConfig = field(default_factory=TransformConfig)

    def __post_init__(self):
        if self.backend not in BACKENDS:
            raise ConfigurationError(
                f"Unknown storage backend: {self.backend} (expected one of {', '.join(BACKENDS)})"
            )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary (in the YAML file's shape)."""
        return {"storage": asdict(self)}

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> 'StorageConfig':
        """Create from dictionary.

        Accepts the file shape ({"storage": {...}}) or the inner mapping.
        """
        config_dict = dict(config_dict or {})
        if "storage" in config_dict:
            config_dict = dict(config_dict["storage"] or {})

        sections = {
            "local": LocalConfig,
            "s3": S3Config,
            "sftp": SFTPConfig,
            "transform": TransformConfig,
        }
        kwargs = {}
        for key, value in config_dict.items():
            if key in sections:
                kwargs[key] = _section(sections[key], value, key)
            elif key == "backend":
                kwargs[key] = value
            else:
                raise ConfigurationError(f"Unknown storage config key: {key}")
        return cls(**kwargs)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> 'StorageConfig':
        """
        Load configuration from YAML file.

        Args:
            path: Path to YAML config file (.yaml or .yml)

        Returns:
            StorageConfig instance
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        if path.suffix not in ['.yaml', '.yml']:
            raise ConfigurationError(f"Config file must be .yaml or .yml, got: {path.suffix}")

        with open(path) as f:
            try:
                config_dict = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

        if config_dict is not None and not isinstance(config_dict, dict):
            raise ConfigurationError(f"Config file must contain a mapping: {path}")
        return cls.from_dict(config_dict or {})

    def save(self, path: Union[str, Path]):
        """Save configuration to a YAML file (.yaml or .yml)."""
        path = Path(path)
        if path.suffix not in ['.yaml', '.yml']:
            raise ConfigurationError(f"Config file must be .yaml or .yml, got: {path.suffix}")

        with open(path, 'w') as f:
            yaml.safe_dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)


def build_backend(config: StorageConfig) -> StorageBackend:
    """Create the bare backend named by `config.backend`."""
    if config.backend == "local":
        c = config.local
        return LocalStorage(
            c.base_dir,
            fsync_on_write=c.fsync_on_write,
            create_if_missing=c.create_if_missing,
        )
    if config.backend == "s3":
        c = config.s3
        if not c.bucket:
            raise ConfigurationError("S3 backend requires a bucket")
        return S3Storage.from_config(
            bucket=c.bucket,
            prefix=c.prefix,
            endpoint_url=c.endpoint_url,
            access_key=c.access_key,
            secret_key=c.secret_key,
            region=c.region,
            use_ssl=c.use_ssl,
            url_style=c.url_style,
            part_size=c.part_size,
            max_concurrency=c.max_concurrency,
        )
    if config.backend == "sftp":
        c = config.sftp
        if not c.host or not c.user:
            raise ConfigurationError("SFTP backend requires host and user")
        return SFTPStorage.connect(
            c.host,
            c.user,
            c.base_dir,
            port=c.port,
            password=c.password,
            key_filename=c.key_filename,
            timeout=c.timeout,
        )
    if config.backend == "memory":
        return InMemoryStorage()
    raise ConfigurationError(f"Unknown storage backend: {config.backend}")


def _build_crypter(transform: TransformConfig) -> Optional[ChunkedGCMCrypter]:
    password = transform.resolve_password()
    if password is None:
        return None
    return ChunkedGCMCrypter(
        password,
        chunk_size=transform.aes_chunk_size,
        iterations=transform.aes_iterations,
    )


def build_algorithms(config: StorageConfig) -> Algorithms:
    """Create the Algorithms set a variadic transform reads and writes with."""
    t = config.transform
    return Algorithms(
        gzip=gzip_pair() if t.gzip else None,
        zstd=zstd_pair() if t.zstd else None,
        aes=_build_crypter(t),
    )


def create_storage_from_config(
    config: Union[StorageConfig, Dict[str, Any], str, Path]
) -> StorageBackend:
    """
    Create a wired storage from configuration.

    Args:
        config: StorageConfig, dict, or path to a YAML file

    Returns:
        The configured backend wrapped as `transform.mode` asks

    Raises:
        ConfigurationError: If the configuration is invalid

    Example:
        >>> storage = create_storage_from_config("storage.yaml")
        >>> storage.put("wal/0001", io.BytesIO(b"segment"))
    """
    if isinstance(config, (str, Path)):
        config = StorageConfig.from_file(config)
    elif isinstance(config, dict):
        config = StorageConfig.from_dict(config)

    t = config.transform
    backend = build_backend(config)
    logger.debug(f"Built {backend!r} (transform mode: {t.mode})")

    if t.mode == "none":
        return backend

    if t.mode == "variadic":
        return VariadicStorage(
            backend,
            build_algorithms(config),
            write_ext=t.write_ext,
            strict_names=t.strict_names,
        )

    # fixed
    codec = None
    if t.compression == "gzip":
        codec = gzip_pair()
    elif t.compression == "zstd":
        codec = zstd_pair()

    crypter = None
    if t.encryption == "aes":
        crypter = _build_crypter(t)
        if crypter is None:
            raise ConfigurationError("AES encryption requires aes_password or aes_password_env")

    return TransformingStorage(
        backend,
        compressor=codec.compressor if codec else None,
        decompressor=codec.decompressor if codec else None,
        crypter=crypter,
    )
