from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any, Iterator
import hashlib
import uuid as uuidlib

# Attribute prefix for extra URLs (KeePass2Android convention)
ADDITIONAL_URL = "KP2A_URL"


@dataclass
class Group:
    """A node of the credential tree. Parents are referenced by uuid."""
    uuid: uuidlib.UUID
    name: str
    parent: Optional[uuidlib.UUID] = None
    searching_enabled: bool = True


@dataclass
class Entry:
    """A stored credential. Read-only to the browser core."""
    uuid: uuidlib.UUID
    title: str = ""
    username: str = ""
    password: str = ""
    url: str = ""
    notes: str = ""
    attributes: Dict[str, str] = field(default_factory=dict)
    group: Optional[uuidlib.UUID] = None

    @property
    def uuid_hex(self) -> str:
        return self.uuid.hex

    @property
    def additional_urls(self) -> List[str]:
        """Values of every attribute whose key starts with KP2A_URL."""
        return [
            value for key, value in self.attributes.items()
            if key.startswith(ADDITIONAL_URL) and value
        ]

    @property
    def urls(self) -> List[str]:
        """Primary URL followed by the additional URLs."""
        return [self.url] + self.additional_urls

    def to_dict(self) -> Dict[str, Any]:
        """Convert the entry to a dictionary for serialization."""
        return {
            'uuid': self.uuid_hex,
            'title': self.title,
            'username': self.username,
            'url': self.url,
            'notes': self.notes,
            'attributes': dict(self.attributes),
            'group': self.group.hex if self.group else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Entry':
        """Create an Entry from a dictionary."""
        return cls(
            uuid=uuidlib.UUID(data['uuid']) if data.get('uuid') else uuidlib.uuid4(),
            title=data.get('title', ''),
            username=data.get('username', ''),
            password=data.get('password', ''),
            url=data.get('url', ''),
            notes=data.get('notes', ''),
            attributes=dict(data.get('attributes') or {}),
            group=uuidlib.UUID(data['group']) if data.get('group') else None,
        )


class Database:
    """In-memory credential store: an owned tree of groups and entries.

    Groups and entries are kept in insertion order, keyed by uuid. Entries
    reference their group by uuid, never by object.
    """

    def __init__(self, root_name: str = "Root", root_uuid: Optional[uuidlib.UUID] = None):
        root = Group(uuid=root_uuid or uuidlib.uuid4(), name=root_name)
        self.root_group = root
        self.recycle_bin: Optional[uuidlib.UUID] = None
        self._groups: Dict[uuidlib.UUID, Group] = {root.uuid: root}
        self._children: Dict[uuidlib.UUID, List[uuidlib.UUID]] = {root.uuid: []}
        self._entries: Dict[uuidlib.UUID, List[Entry]] = {root.uuid: []}

    def get_group(self, group_uuid: uuidlib.UUID) -> Group:
        try:
            return self._groups[group_uuid]
        except KeyError:
            raise KeyError(f"Unknown group: {group_uuid}") from None

    def add_group(self, parent: Optional[Group], name: str,
                  group_uuid: Optional[uuidlib.UUID] = None,
                  searching_enabled: bool = True) -> Group:
        parent = parent or self.root_group
        self.get_group(parent.uuid)
        group = Group(
            uuid=group_uuid or uuidlib.uuid4(),
            name=name,
            parent=parent.uuid,
            searching_enabled=searching_enabled,
        )
        self._groups[group.uuid] = group
        self._children[group.uuid] = []
        self._entries[group.uuid] = []
        self._children[parent.uuid].append(group.uuid)
        return group

    def add_entry(self, group: Optional[Group] = None, **fields) -> Entry:
        group = group or self.root_group
        self.get_group(group.uuid)
        fields.setdefault('uuid', uuidlib.uuid4())
        entry = Entry(group=group.uuid, **fields)
        self._entries[group.uuid].append(entry)
        return entry

    def subgroups(self, group: Group) -> List[Group]:
        return [self._groups[child] for child in self._children[group.uuid]]

    def group_entries(self, group: Group) -> List[Entry]:
        return list(self._entries[group.uuid])

    def groups_recursive(self, group: Optional[Group] = None) -> Iterator[Group]:
        """Yield groups in pre-order, starting with ``group`` (default root)."""
        stack = [group or self.root_group]
        while stack:
            current = stack.pop()
            yield current
            stack.extend(reversed(self.subgroups(current)))

    def entries_recursive(self) -> Iterator[Entry]:
        for group in self.groups_recursive():
            yield from self._entries[group.uuid]

    def group_of(self, entry: Entry) -> Group:
        return self.get_group(entry.group)

    def is_recycled(self, entry: Entry) -> bool:
        if self.recycle_bin is None:
            return False
        group_uuid = entry.group
        while group_uuid is not None:
            if group_uuid == self.recycle_bin:
                return True
            group_uuid = self._groups[group_uuid].parent
        return False

    def is_searchable(self, entry: Entry) -> bool:
        """False when the entry is recycled or any enclosing group disables searching."""
        if self.is_recycled(entry):
            return False
        group_uuid = entry.group
        while group_uuid is not None:
            group = self._groups[group_uuid]
            if not group.searching_enabled:
                return False
            group_uuid = group.parent
        return True

    def find_entry(self, entry_uuid: uuidlib.UUID) -> Optional[Entry]:
        return next((e for e in self.entries_recursive() if e.uuid == entry_uuid), None)

    def root_hash(self) -> str:
        """SHA-256 of the root group uuid, used to identify the database."""
        return hashlib.sha256(self.root_group.uuid.hex.encode('utf-8')).hexdigest()

    def __len__(self) -> int:
        return sum(len(entries) for entries in self._entries.values())
