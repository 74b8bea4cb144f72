"""
Identifier generation for form components.

ID types:
- component id: short process-local id used for tree operations and UI keys
  ("sele-ab12cd34"); collisions are treated as negligible (36^8 space)
- guid: persistent UUID v4, stable across saves
- name: human-readable reference name for dependencies, unique within a tree
- form id: readable form identifier derived from the form name
"""

import logging
import random
import re
import secrets
import uuid
from collections.abc import Iterable
from typing import NamedTuple

from formx.config import get_settings
from formx.core.constants import BASE36_ALPHABET
from formx.models.enums import ComponentType

logger = logging.getLogger(__name__)

GUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$", re.IGNORECASE
)
COMPONENT_ID_PATTERN = re.compile(r"^[a-z]+-[a-z0-9]+$", re.IGNORECASE)
_TYPE_PREFIX_PATTERN = re.compile(r"^([a-z]+)-", re.IGNORECASE)


class ComponentIds(NamedTuple):
    id: str
    guid: str
    name: str


def _default_rng() -> random.Random:
    """Secure random source when the OS provides one, else a seeded PRNG."""
    try:
        secrets.token_bytes(1)
        return secrets.SystemRandom()
    except NotImplementedError:
        logger.warning("No secure random source available, falling back to seeded PRNG")
        return random.Random(uuid.getnode() ^ id(object()))


def _type_value(component_type: ComponentType | str | None) -> str | None:
    if component_type is None:
        return None
    if isinstance(component_type, ComponentType):
        return component_type.value
    return str(component_type)


def sanitize_name(raw: str) -> str:
    """Lowercase, non [a-z0-9_] to underscores, collapse underscore runs."""
    name = raw.lower()
    name = re.sub(r"[^a-z0-9_]", "_", name)
    return re.sub(r"_+", "_", name)


def unique_name(
    seed: str | None = None,
    component_type: ComponentType | str | None = None,
    existing_names: Iterable[str] | None = None,
) -> str:
    """
    Sanitise seed (or the type, or "component") into a reference name.

    Appends _1, _2, ... until the name is not in existing_names.
    """
    type_name = _type_value(component_type)
    base_name = sanitize_name(seed or (type_name.lower() if type_name else "") or "component")

    taken = existing_names if isinstance(existing_names, (set, frozenset)) else set(existing_names or ())
    if base_name not in taken:
        return base_name

    counter = 1
    candidate = f"{base_name}_{counter}"
    while candidate in taken:
        counter += 1
        candidate = f"{base_name}_{counter}"
    return candidate


class IdentifierGenerator:
    """
    Produces component ids, GUIDs and collision-free reference names.

    The random source can be injected (tests pass a seeded random.Random);
    by default it is the OS secure source.
    """

    def __init__(self, rng: random.Random | None = None, id_length: int | None = None):
        self._rng = rng if rng is not None else _default_rng()
        self._secure = isinstance(self._rng, secrets.SystemRandom)
        self.id_length = id_length if id_length is not None else get_settings().component_id_length

    def short_id(self, length: int | None = None) -> str:
        """Random base36 string."""
        size = length if length is not None else self.id_length
        return "".join(self._rng.choice(BASE36_ALPHABET) for _ in range(size))

    def new_component_id(self, component_type: ComponentType | str | None = None) -> str:
        """
        Generate a short id for a component: {type prefix}-{suffix}.

        The prefix is the first four characters of the lowercased type, or
        "comp" when no type is given.
        """
        type_name = _type_value(component_type)
        prefix = type_name.lower()[:4] if type_name else "comp"
        return f"{prefix}-{self.short_id()}"

    def new_guid(self) -> str:
        """Generate a UUID v4 string."""
        if self._secure:
            return str(uuid.uuid4())
        # Version nibble fixed to 4, variant bits to 10xx (8/9/a/b)
        return str(uuid.UUID(int=self._rng.getrandbits(128), version=4))

    def new_name(
        self,
        seed: str | None = None,
        component_type: ComponentType | str | None = None,
        existing_names: Iterable[str] | None = None,
    ) -> str:
        """Generate a reference name from a seed (usually the dataKey) or type."""
        return unique_name(seed, component_type, existing_names)

    def new_component_ids(
        self,
        component_type: ComponentType | str,
        data_key: str | None = None,
        existing_names: Iterable[str] | None = None,
    ) -> ComponentIds:
        """Generate id, guid and name for a new component in one call."""
        return ComponentIds(
            id=self.new_component_id(component_type),
            guid=self.new_guid(),
            name=self.new_name(data_key, component_type, existing_names),
        )


def new_form_id(form_name: str, version: str = "v1") -> str:
    """
    Generate a readable form id from the form name.

    "Customer Intake!" -> "customer_intake_v1"
    """
    sanitized = form_name.lower().strip()
    sanitized = re.sub(r"[^a-z0-9\s]", "", sanitized)
    sanitized = re.sub(r"\s+", "_", sanitized)
    sanitized = re.sub(r"_+", "_", sanitized)[:50]
    return f"{sanitized}_{version}"


def is_valid_guid(value: str) -> bool:
    return bool(GUID_PATTERN.match(value))


def is_valid_component_id(value: str) -> bool:
    return bool(COMPONENT_ID_PATTERN.match(value))


def type_prefix_from_component_id(component_id: str) -> str | None:
    """Extract the type prefix ("sele") from a component id."""
    match = _TYPE_PREFIX_PATTERN.match(component_id)
    return match.group(1) if match else None
