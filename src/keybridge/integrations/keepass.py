"""KeePass (.kdbx) loader for Keybridge."""

import logging
from pathlib import Path
from typing import Optional

import pykeepass
from pykeepass.exceptions import CredentialsError

from ..core.models import Database, Group
from . import BaseIntegration, register_integration, IntegrationError

logger = logging.getLogger(__name__)


@register_integration("keepass")
class KeePassIntegration(BaseIntegration):
    """Reads a KeePass database into the in-memory credential tree."""

    def __init__(self, database_path: Optional[Path] = None, keyfile: Optional[Path] = None):
        """Initialize the KeePass integration.

        Args:
            database_path: Path to the KeePass database file (.kdbx)
            keyfile: Path to the keyfile (if used)
        """
        super().__init__()
        self.database_path = Path(database_path) if database_path else None
        self.keyfile = Path(keyfile) if keyfile else None
        self.kp = None

    def connect(self, password: Optional[str] = None, database_path: Optional[Path] = None,
                keyfile: Optional[Path] = None, **kwargs) -> bool:
        """Open a KeePass database.

        Args:
            password: Database password
            database_path: Path to the KeePass database file
            keyfile: Path to the keyfile (if used)

        Returns:
            bool: True if connection was successful
        """
        if database_path:
            self.database_path = Path(database_path)
        if keyfile:
            self.keyfile = Path(keyfile)

        if not self.database_path or not self.database_path.exists():
            raise IntegrationError("KeePass database file not found")

        try:
            self.kp = pykeepass.PyKeePass(
                str(self.database_path),
                password=password,
                keyfile=str(self.keyfile) if self.keyfile and self.keyfile.exists() else None
            )
        except CredentialsError:
            raise IntegrationError("Invalid KeePass credentials") from None
        except Exception as e:
            raise IntegrationError(f"Failed to open KeePass database: {e}") from e
        self.connected = True
        logger.debug(f"Opened KeePass database {self.database_path.name}")
        return True

    def disconnect(self):
        """Close the KeePass database."""
        self.kp = None
        self.connected = False

    def load_database(self) -> Database:
        """Copy groups and entries into a Database, keeping KeePass order.

        Custom string fields become entry attributes, so KP2A_URL fields
        show up as additional URLs.

        Raises:
            IntegrationError: If not connected
        """
        if not self.connected or not self.kp:
            raise IntegrationError("Not connected to KeePass database")

        kp_root = self.kp.root_group
        db = Database(root_name=kp_root.name or "Root", root_uuid=kp_root.uuid)

        recycle_bin = self.kp.recyclebin_group
        self._copy_group(kp_root, db.root_group, db)
        if recycle_bin is not None:
            db.recycle_bin = recycle_bin.uuid

        logger.info(f"Loaded {len(db)} entries from {self.database_path.name}")
        return db

    def _copy_group(self, kp_group, group: Group, db: Database) -> None:
        for kp_entry in kp_group.entries:
            db.add_entry(
                group,
                uuid=kp_entry.uuid,
                title=kp_entry.title or "",
                username=kp_entry.username or "",
                password=kp_entry.password or "",
                url=kp_entry.url or "",
                notes=kp_entry.notes or "",
                attributes={k: v for k, v in kp_entry.custom_properties.items() if v is not None},
            )
        for kp_sub in kp_group.subgroups:
            sub = db.add_group(group, kp_sub.name or "", group_uuid=kp_sub.uuid)
            self._copy_group(kp_sub, sub, db)


def open_database(database_path: Path, password: Optional[str] = None,
                  keyfile: Optional[Path] = None) -> Database:
    """Open a .kdbx file and return its credential tree."""
    integration = KeePassIntegration(database_path=database_path, keyfile=keyfile)
    integration.connect(password=password)
    try:
        return integration.load_database()
    finally:
        integration.disconnect()
