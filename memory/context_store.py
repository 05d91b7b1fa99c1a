"""Versioned long-term and short-term conversation context per thread."""

import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from errors import PersistenceFailure
from schemas.context import (
    Asset,
    ContextVersion,
    ConversationContext,
    LongTermContext,
    ShortTermContext,
    UserPreferences,
    utc_now,
)
from .sqlite_store import SQLiteMemoryStore

logger = logging.getLogger(__name__)


def _dedupe(items: List[Any]) -> List[Any]:
    seen = set()
    result = []
    for item in items:
        key = item.strip().lower() if isinstance(item, str) else item
        if key in seen:
            continue
        seen.add(key)
        result.append(item)
    return result


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        return list(value)
    return [value]


def _coerce(model_cls, name: str, value: Any, custom: Dict[str, Any]) -> Any:
    """Validate one field value; unusable values are kept in custom data instead."""
    try:
        return getattr(model_cls.model_validate({name: value}), name)
    except ValidationError:
        logger.warning(f"Context field {name} has unexpected value {value!r}, keeping as custom data")
        custom[name] = value
        return None


def merge_long_term(current: LongTermContext, partial: Dict[str, Any]) -> LongTermContext:
    """
    Merge a partial update into long-term context.

    Scalars are last-write-wins, goal and selling-point lists are unioned,
    assets are de-duplicated by name and unknown keys go to custom_data.
    """
    known, custom = LongTermContext.split_partial(partial)
    merged = current.model_copy(deep=True)

    for name, value in known.items():
        if value is None:
            continue
        if name in ("primary_goals", "unique_selling_points"):
            values = [str(v) for v in _as_list(value) if v]
            setattr(merged, name, _dedupe(getattr(merged, name) + values))
        elif name == "assets":
            names = {asset.name for asset in merged.assets}
            for raw in _as_list(value):
                try:
                    asset = raw if isinstance(raw, Asset) else Asset.model_validate(raw)
                except ValidationError:
                    logger.warning(f"Ignoring malformed asset: {raw!r}")
                    continue
                if asset.name not in names:
                    merged.assets.append(asset)
                    names.add(asset.name)
        else:
            coerced = _coerce(LongTermContext, name, value, custom)
            if coerced is not None:
                setattr(merged, name, coerced)

    merged.custom_data.update(custom)
    return merged


def merge_short_term(
    current: ShortTermContext,
    partial: Dict[str, Any],
    max_recent_topics: int = 10
) -> ShortTermContext:
    """
    Merge a partial update into short-term context.

    Recent topics are most-recent-first, de-duplicated and capped; pending
    actions are unioned; everything else is last-write-wins.
    """
    known, custom = ShortTermContext.split_partial(partial)
    merged = current.model_copy(deep=True)

    for name, value in known.items():
        if value is None:
            continue
        if name == "recent_topics":
            topics = [str(v) for v in _as_list(value) if v]
            merged.recent_topics = _dedupe(topics + merged.recent_topics)[:max_recent_topics]
        elif name == "pending_actions":
            actions = [str(v) for v in _as_list(value) if v]
            merged.pending_actions = _dedupe(merged.pending_actions + actions)
        elif name == "user_preferences" and isinstance(value, dict):
            prefs = merged.user_preferences.model_dump()
            extra = {}
            for key, pref in value.items():
                if key in prefs:
                    prefs[key] = pref
                else:
                    extra[key] = pref
            try:
                merged.user_preferences = UserPreferences.model_validate(prefs)
            except ValidationError:
                logger.warning(f"Ignoring malformed user preferences: {value!r}")
            custom.update(extra)
        else:
            coerced = _coerce(ShortTermContext, name, value, custom)
            if coerced is not None:
                setattr(merged, name, coerced)

    merged.custom_data.update(custom)
    return merged


class ContextStore:
    """
    Conversation context adapter with bounded version history.

    The in-memory copy is authoritative for the running process. Writes to
    the persistent store are best-effort: failures are logged and the
    caller keeps working with the in-memory context.
    """

    MAX_VERSIONS = 10
    MAX_RECENT_TOPICS = 10

    def __init__(self, store: Optional[SQLiteMemoryStore] = None):
        """
        Initialize context store.

        Args:
            store: Optional SQLite store for durability
        """
        self.store = store
        self._contexts: Dict[str, ConversationContext] = {}
        self._versions: Dict[str, List[ContextVersion]] = {}

    def _load(self, thread_id: str) -> ConversationContext:
        if thread_id in self._contexts:
            return self._contexts[thread_id]

        context = None
        versions: List[ContextVersion] = []
        if self.store:
            try:
                context = self.store.load_context(thread_id)
                if context:
                    versions = self.store.load_versions(thread_id)
            except PersistenceFailure as e:
                logger.warning(f"Could not load context for {thread_id}: {e}")

        if context is None:
            context = ConversationContext(thread_id=thread_id)
            self._contexts[thread_id] = context
            self._versions[thread_id] = []
            self._persist(thread_id)
            logger.info(f"Created context for thread {thread_id}")
        else:
            self._contexts[thread_id] = context
            self._versions[thread_id] = versions
        return context

    def _persist(self, thread_id: str) -> bool:
        if not self.store:
            return True
        try:
            self.store.save_context(self._contexts[thread_id], self._versions[thread_id])
            return True
        except PersistenceFailure as e:
            logger.error(f"Failed to persist context for {thread_id}: {e}")
            return False

    def _commit(
        self,
        thread_id: str,
        long_term: LongTermContext,
        short_term: ShortTermContext,
        reason: str
    ) -> bool:
        """Snapshot the current state, install the new one and bump the version."""
        current = self._load(thread_id)
        history = self._versions[thread_id]
        history.append(ContextVersion(
            version=current.version,
            long_term=current.long_term,
            short_term=current.short_term,
            change_reason=reason
        ))
        del history[:-self.MAX_VERSIONS]

        self._contexts[thread_id] = ConversationContext(
            thread_id=thread_id,
            long_term=long_term,
            short_term=short_term,
            version=current.version + 1,
            last_updated=utc_now()
        )
        return self._persist(thread_id)

    def get_or_create(self, thread_id: str) -> ConversationContext:
        """Get the context for a thread, creating an empty one on first use."""
        return self._load(thread_id).model_copy(deep=True)

    def merge_long_term(self, thread_id: str, partial: Dict[str, Any], reason: str = "Updated") -> bool:
        """
        Merge durable facts into a thread's context.

        Args:
            thread_id: Conversation thread ID
            partial: Partial long-term update
            reason: Change reason stored with the pre-merge snapshot

        Returns:
            True if the update was persisted
        """
        current = self._load(thread_id)
        return self._commit(
            thread_id,
            merge_long_term(current.long_term, partial),
            current.short_term,
            reason
        )

    def merge_short_term(self, thread_id: str, partial: Dict[str, Any], reason: str = "Updated") -> bool:
        """Merge current-task facts into a thread's context."""
        current = self._load(thread_id)
        return self._commit(
            thread_id,
            current.long_term,
            merge_short_term(current.short_term, partial, self.MAX_RECENT_TOPICS),
            reason
        )

    def apply_updates(
        self,
        thread_id: str,
        long_term: Optional[Dict[str, Any]] = None,
        short_term: Optional[Dict[str, Any]] = None,
        reason: str = "Updated"
    ) -> ConversationContext:
        """
        Merge long-term and short-term updates as a single version step.

        Returns:
            The updated context
        """
        current = self._load(thread_id)
        if long_term or short_term:
            self._commit(
                thread_id,
                merge_long_term(current.long_term, long_term or {}),
                merge_short_term(current.short_term, short_term or {}, self.MAX_RECENT_TOPICS),
                reason
            )
        return self.get_or_create(thread_id)

    def add_asset(self, thread_id: str, name: str, asset_type: str, url: Optional[str]) -> bool:
        """Record a generated asset in long-term context."""
        return self.merge_long_term(
            thread_id,
            {"assets": [{"name": name, "type": asset_type, "url": url}]},
            reason=f"Added {asset_type} asset"
        )

    def list_versions(self, thread_id: str) -> List[ContextVersion]:
        """Historical snapshots for a thread, oldest first."""
        self._load(thread_id)
        return [v.model_copy(deep=True) for v in self._versions[thread_id]]

    def reset_to_version(self, thread_id: str, version: int) -> Optional[ConversationContext]:
        """
        Restore the content of a historical snapshot.

        The current state is pushed to history first and the version number
        keeps moving forward.

        Args:
            thread_id: Conversation thread ID
            version: Version number to restore

        Returns:
            The restored context, or None if the version is not in history
        """
        self._load(thread_id)
        target = next((v for v in self._versions[thread_id] if v.version == version), None)
        if target is None:
            logger.warning(f"Context version {version} not found for {thread_id}")
            return None

        self._commit(
            thread_id,
            target.long_term.model_copy(deep=True),
            target.short_term.model_copy(deep=True),
            f"Reset to v{version}"
        )
        logger.info(f"Reset context for {thread_id} to v{version}")
        return self.get_or_create(thread_id)

    def clear(self, thread_id: str) -> ConversationContext:
        """Reset a thread's context to empty, keeping the prior state in history."""
        self._commit(thread_id, LongTermContext(), ShortTermContext(), "Cleared")
        return self.get_or_create(thread_id)
