"""Encrypted credential storage.

The active credentials live in memory; between sessions they are kept in
~/.clawbreaker/credentials.json, Fernet-encrypted with a key held in the OS
keyring. The directory is 0700, the file 0600, and reads and writes take a
lock file so two processes never interleave.
"""

import base64
import hashlib
import json
import logging
import os
import stat
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

import keyring
from cryptography.fernet import Fernet, InvalidToken

from .config import DEFAULT_CREDENTIALS_DIR, DEFAULT_URL, Credentials

logger = logging.getLogger(__name__)

# File locking support
if sys.platform != "win32":
    import fcntl

    @contextmanager
    def _file_lock(filepath: Path, exclusive: bool = True) -> Generator[None, None, None]:
        """Acquire a file lock (Unix implementation using fcntl).

        Args:
            filepath: Path to the file to lock
            exclusive: If True, acquire exclusive lock; otherwise shared lock
        """
        lock_path = filepath.with_suffix(filepath.suffix + ".lock")
        lock_path.touch(exist_ok=True)

        with open(lock_path, "r") as lock_file:
            try:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX if exclusive else fcntl.LOCK_SH)
                yield
            finally:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)
else:
    # Windows
    import msvcrt

    @contextmanager
    def _file_lock(filepath: Path, exclusive: bool = True) -> Generator[None, None, None]:
        """Acquire a file lock (Windows implementation using msvcrt).

        msvcrt has no shared locks, so every lock is exclusive.
        """
        lock_path = filepath.with_suffix(filepath.suffix + ".lock")
        lock_path.touch(exist_ok=True)

        with open(lock_path, "r+") as lock_file:
            msvcrt.locking(lock_file.fileno(), msvcrt.LK_LOCK, 1)
            try:
                yield
            finally:
                msvcrt.locking(lock_file.fileno(), msvcrt.LK_UNLCK, 1)


# Keyring entry holding the encryption key
KEYRING_SERVICE = "clawbreaker"
KEYRING_USERNAME = "credentials-encryption-key"

CREDENTIALS_FILE = "credentials.json"


class CredentialStoreError(Exception):
    """Error in credential storage operations."""

    pass


class CredentialDecryptionError(CredentialStoreError):
    """Failed to decrypt the stored credentials.

    The encryption key has changed (keyring cleared, different machine)
    or the file is corrupted. Run `clawbreaker disconnect` and connect again.
    """

    pass


def _derive_fallback_key() -> bytes:
    """Key used when no keyring backend works.

    Built from the machine id, home directory and user name, so the file
    stays encrypted at rest but is only as secret as those values.
    """
    components = []

    # Machine ID (Linux)
    machine_id_path = Path("/etc/machine-id")
    if machine_id_path.exists():
        components.append(machine_id_path.read_text().strip())

    components.append(str(Path.home()))
    components.append(os.environ.get("USER", os.environ.get("USERNAME", "clawbreaker")))

    combined = ":".join(components)
    key_bytes = hashlib.sha256(combined.encode()).digest()

    return base64.urlsafe_b64encode(key_bytes)


class CredentialStore:
    """Holds the active credentials and persists them encrypted.

    Credentials are stored in <store_dir>/credentials.json, encrypted with
    Fernet using a key kept in the OS keyring, with restricted file
    permissions (directory 0700, file 0600).
    """

    def __init__(self, store_dir: Path | None = None):
        """Initialize credential store.

        Args:
            store_dir: Optional custom storage directory (default ~/.clawbreaker)
        """
        self.store_dir = store_dir or DEFAULT_CREDENTIALS_DIR
        self._current: Credentials | None = None
        self._cipher: Fernet | None = None
        self._using_keyring = False

    @property
    def credentials_path(self) -> Path:
        return self.store_dir / CREDENTIALS_FILE

    @property
    def current(self) -> Credentials | None:
        """The credentials configured in this process, if any."""
        return self._current

    def _init_storage(self) -> None:
        """Create the storage directory with secure permissions."""
        self.store_dir.mkdir(parents=True, exist_ok=True)

        try:
            self.store_dir.chmod(stat.S_IRWXU)
        except OSError as e:
            logger.warning(f"Could not set directory permissions: {e}")

    def _get_cipher(self) -> Fernet:
        """Get the cipher, initializing it from keyring or fallback on first use."""
        if self._cipher is not None:
            return self._cipher

        try:
            key = keyring.get_password(KEYRING_SERVICE, KEYRING_USERNAME)

            if key is None:
                key = Fernet.generate_key().decode("ascii")
                keyring.set_password(KEYRING_SERVICE, KEYRING_USERNAME, key)
                logger.debug("Generated new encryption key in keyring")

            self._cipher = Fernet(key.encode("ascii"))
            self._using_keyring = True
            logger.debug("Using keyring for encryption key storage")

        except Exception as e:
            # Any keyring backend failure falls back to the derived key
            logger.warning(
                f"Keyring not available: {type(e).__name__}: {e}. "
                f"Using fallback encryption (machine-derived key)."
            )
            self._cipher = Fernet(_derive_fallback_key())
            self._using_keyring = False

        return self._cipher

    def _read(self) -> Credentials | None:
        """Read and decrypt the credentials file with a shared lock.

        Raises:
            CredentialDecryptionError: If decryption or parsing fails
        """
        filepath = self.credentials_path
        if not filepath.exists():
            return None

        with _file_lock(filepath, exclusive=False):
            encrypted_data = filepath.read_text()

        try:
            decrypted = self._get_cipher().decrypt(encrypted_data.encode("ascii"))
            data = json.loads(decrypted.decode("utf-8"))
            return Credentials.from_dict(data)
        except InvalidToken as e:
            raise CredentialDecryptionError(
                "Cannot decrypt stored credentials. The encryption key may have changed. "
                "Run 'clawbreaker disconnect' and connect again."
            ) from e
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            raise CredentialDecryptionError(
                "Stored credentials are corrupted. "
                "Run 'clawbreaker disconnect' and connect again."
            ) from e

    def _write(self, credentials: Credentials) -> None:
        """Encrypt and write the credentials file with an exclusive lock."""
        self._init_storage()
        filepath = self.credentials_path

        json_data = json.dumps(credentials.to_dict(), indent=2)
        encrypted_data = self._get_cipher().encrypt(json_data.encode("utf-8")).decode("ascii")

        with _file_lock(filepath, exclusive=True):
            filepath.write_text(encrypted_data)
            try:
                filepath.chmod(stat.S_IRUSR | stat.S_IWUSR)  # 0600
            except OSError as e:
                logger.warning(f"Could not set file permissions: {e}")

    def configure(
        self,
        url: str | None,
        api_key: str,
        org: str | None = None,
        persist: bool = True,
    ) -> Credentials:
        """Make these the active credentials, optionally saving them.

        Args:
            url: API base URL (default https://api.clawbreaker.dev)
            api_key: API key or OAuth access token
            org: Optional organization
            persist: Also write them to disk for future sessions

        Returns:
            The configured Credentials

        Raises:
            ValueError: If api_key is empty
        """
        if not api_key:
            raise ValueError("api_key must not be empty")

        credentials = Credentials(
            base_url=(url or DEFAULT_URL).rstrip("/"),
            api_key=api_key,
            org=org,
        )
        self._current = credentials

        if persist:
            self._write(credentials)
            logger.debug(f"Stored credentials for {credentials.base_url}")

        return credentials

    def is_configured(self) -> bool:
        """Check whether credentials are active in this process."""
        return self._current is not None

    def has_stored_credentials(self) -> bool:
        """Check whether credentials were saved by an earlier session."""
        return self.credentials_path.exists()

    def load_stored_credentials(self) -> Credentials | None:
        """Load saved credentials and make them active.

        Returns:
            The loaded Credentials, or None if nothing is stored

        Raises:
            CredentialDecryptionError: If the file cannot be decrypted
        """
        credentials = self._read()
        if credentials is not None:
            self._current = credentials
        return credentials

    def clear(self) -> None:
        """Forget the active credentials and delete the saved ones."""
        self._current = None

        if self.credentials_path.exists():
            self.credentials_path.unlink()

        logger.info("Cleared stored credentials")

    def is_using_keyring(self) -> bool:
        """Check if keyring is being used for encryption key storage."""
        return self._using_keyring
