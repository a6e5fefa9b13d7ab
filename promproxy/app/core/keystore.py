"""
API key bootstrap and storage.

The key is taken from an explicit override when one is configured, otherwise
read from the secret file, otherwise generated and written to the secret
file with owner-only permissions. Once resolved it is held in memory for the
rest of the process lifetime.
"""
import logging
import os
import secrets
import tempfile
import threading
from typing import Optional

logger = logging.getLogger(__name__)

# 32 bytes = 256 bits, 64 hex chars
API_KEY_BYTES = 32
SECRET_FILE_MODE = 0o600


class KeyStoreError(RuntimeError):
    """Raised when the API key cannot be read or persisted."""


def generate_api_key() -> str:
    return secrets.token_hex(API_KEY_BYTES)


class APIKeyStore:
    """Lazily resolves the API key once and caches it."""

    def __init__(self, secret_file_path: str, override: Optional[str] = None) -> None:
        self._secret_file_path = secret_file_path
        self._override = override or None
        self._api_key: Optional[str] = None
        self._lock = threading.Lock()

    def get_or_generate(self) -> str:
        """
        Return the API key, creating and persisting it on first use.

        Raises KeyStoreError on any filesystem failure; callers are expected
        to treat that as fatal.
        """
        if self._api_key is not None:
            return self._api_key

        with self._lock:
            if self._api_key is not None:
                return self._api_key

            if self._override:
                logger.info("Using API key from PROM_PROXY_SECURE_API_KEY")
                self._api_key = self._override
                return self._api_key

            api_key = self._create_secret_file()
            if api_key is None:
                api_key = self._read_secret_file()
            self._api_key = api_key
            return self._api_key

    def _create_secret_file(self) -> Optional[str]:
        """
        Write a fresh key, or return None if the secret file already exists.

        The key goes to a private temp file in the same directory first and
        is published with os.link, which fails if the secret file exists.
        The secret file is therefore never visible half-written.
        """
        directory = os.path.dirname(os.path.abspath(self._secret_file_path))
        try:
            fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".api_key.", suffix=".tmp")
        except OSError as e:
            logger.critical(f"Failed to create API key file {self._secret_file_path}: {e}")
            raise KeyStoreError(f"Failed to write API key to file: {e}") from e

        api_key = generate_api_key()
        try:
            with os.fdopen(fd, "w", encoding="ascii") as f:
                os.chmod(tmp_path, SECRET_FILE_MODE)
                f.write(api_key)
                f.flush()
                os.fsync(f.fileno())
            os.link(tmp_path, self._secret_file_path)
        except FileExistsError:
            return None
        except OSError as e:
            logger.critical(f"Failed to write API key file {self._secret_file_path}: {e}")
            raise KeyStoreError(f"Failed to write API key to file: {e}") from e
        finally:
            try:
                os.unlink(tmp_path)
            except FileNotFoundError:
                pass

        logger.info(f"Generated new API key and stored it in {self._secret_file_path}")
        return api_key

    def _read_secret_file(self) -> str:
        try:
            with open(self._secret_file_path, "r", encoding="ascii") as f:
                api_key = f.read()
        except (OSError, UnicodeDecodeError) as e:
            logger.critical(f"Failed to read API key file {self._secret_file_path}: {e}")
            raise KeyStoreError(f"Failed to read API key from file: {e}") from e
        if not api_key:
            logger.critical(f"API key file {self._secret_file_path} is empty")
            raise KeyStoreError(f"API key file is empty: {self._secret_file_path}")

        logger.info(f"Loaded API key from {self._secret_file_path}")
        return api_key
