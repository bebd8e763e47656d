"""
gateway/normalizer.py — READY Payload Normalizer

Some capability bits switch the server between a legacy and a versioned
shape for parts of READY. The rest of the client only understands the
versioned shape, so READY is rewritten in place before delivery:

  read_state / user_guild_settings:
      [ ... ]                     →  {"entries": [ ... ], "partial": False, "version": 1}
  guilds[i] (flat):
      {"id": "1", "name": "G"}    →  {"name": "G", "properties": {"id": "1"}}

Both rewrites are idempotent. Malformed sub-records are skipped and logged;
siblings are still processed.
"""

from __future__ import annotations

from typing import Any, Iterable, Optional

from reversetk.exceptions import MalformedPayloadError
from reversetk.observability.logger import get_logger

log = get_logger(__name__)

# Guild fields that live under "properties" in the versioned READY shape.
# Tied to a specific gateway revision; override via
# interceptor.guild_property_fields when the wire format moves.
DEFAULT_GUILD_PROPERTY_FIELDS: tuple[str, ...] = (
    "id",
    "data_mode",
    "partial_updates",
    "channel_updates",
    "guild_scheduled_events",
    "joined_at",
    "last_messages",
    "member_count",
    "members",
    "premium_subscription_count",
    "roles",
    "stage_instances",
    "unable_to_sync_deletes",
    "threads",
    "version",
    "has_threads_subscription",
    "stickers",
    "presences",
    "activity_instances",
    "voice_states",
)

VERSIONED_FIELDS: tuple[str, ...] = ("read_state", "user_guild_settings")


def versioned(entries: list) -> dict[str, Any]:
    """Wrap a legacy entry list in the versioned envelope."""
    return {"entries": entries, "partial": False, "version": 1}


class ReadyNormalizer:
    """Rewrites READY dispatch payloads into the versioned shape."""

    def __init__(self, guild_property_fields: Optional[Iterable[str]] = None) -> None:
        fields = DEFAULT_GUILD_PROPERTY_FIELDS if guild_property_fields is None else guild_property_fields
        self.guild_property_fields: frozenset[str] = frozenset(fields)

    def normalize(self, data: Any) -> Any:
        """
        Normalize a READY payload in place and return it.

        Raises MalformedPayloadError only when `data` itself is not a mapping;
        anything below that level is skipped field by field.
        """
        if not isinstance(data, dict):
            raise MalformedPayloadError(
                f"READY payload must be a mapping, got {type(data).__name__}"
            )
        for name in VERSIONED_FIELDS:
            self.version_field(data, name)
        self.partition_guilds(data)
        return data

    # -- Versioned envelopes -------------------------------------------------

    def version_field(self, data: dict, name: str) -> bool:
        """Wrap data[name] if it is a bare list. Returns True if rewritten."""
        if name not in data:
            return False
        value = data[name]
        if isinstance(value, list):
            data[name] = versioned(value)
            return True
        if not isinstance(value, dict):
            log.warning("ready.field_malformed", field=name, type=type(value).__name__)
        return False

    # -- Guild properties ----------------------------------------------------

    def partition_guilds(self, data: dict) -> int:
        """Move allowlisted guild fields under "properties". Returns guilds rewritten."""
        guilds = data.get("guilds")
        if guilds is None:
            log.debug("ready.guilds_missing")
            return 0
        if not isinstance(guilds, list):
            log.warning("ready.field_malformed", field="guilds", type=type(guilds).__name__)
            return 0

        rewritten = 0
        for index, guild in enumerate(guilds):
            if not isinstance(guild, dict):
                log.warning("ready.guild_skipped", index=index, type=type(guild).__name__)
                continue
            if self.partition_guild(guild):
                rewritten += 1
        return rewritten

    def partition_guild(self, guild: dict) -> bool:
        """Partition a single flat guild record. Returns False if already nested."""
        if "properties" in guild:
            return False
        properties = {
            key: guild.pop(key)
            for key in [k for k in guild if k in self.guild_property_fields]
        }
        guild["properties"] = properties
        return True
