"""
Per-browser session trees with undo/redo history.

Sessions live only in memory. Every edit that goes through ``replace_people``
pushes a HistoryState snapshot and bumps ``revision`` so long-running work
(the force layout) can tell whether the tree moved underneath it.
"""
import logging
import time
import uuid
from copy import deepcopy
from typing import Dict, List, Optional, Tuple

import config
from models import FamilyTree, HistoryState, Person

logger = logging.getLogger(__name__)


class TreeState:
    """One session's family tree plus its undo and redo stacks."""

    def __init__(self, max_history: Optional[int] = None):
        self.tree = FamilyTree()
        self.max_history = max_history or config.MAX_HISTORY
        self.undo_stack: List[HistoryState] = []
        self.redo_stack: List[HistoryState] = []
        self.revision = 0
        self.last_accessed = time.time()

    def touch(self):
        self.last_accessed = time.time()

    def _snapshot(self, action: str) -> HistoryState:
        return HistoryState(tree=deepcopy(self.tree), action=action)

    def save_state(self, action: str):
        """Push the current tree onto the undo stack before it changes."""
        self.undo_stack.append(self._snapshot(action))
        del self.undo_stack[:-self.max_history]
        self.redo_stack.clear()
        self.revision += 1
        self.touch()

    def replace_people(self, people: List[Person], action: str, metadata: Optional[dict] = None):
        """Snapshot, then swap in a new person list in one step."""
        self.save_state(action)
        self.tree = FamilyTree.from_people(people, metadata if metadata is not None else self.tree.metadata)

    def _restore(self, source: List[HistoryState], target: List[HistoryState]) -> Optional[str]:
        if not source:
            return None
        entry = source.pop()
        target.append(self._snapshot(entry.action))
        self.tree = entry.tree
        self.revision += 1
        self.touch()
        return entry.action

    def undo(self) -> bool:
        action = self._restore(self.undo_stack, self.redo_stack)
        if action is None:
            return False
        logger.info("Undid action: %s", action)
        return True

    def redo(self) -> bool:
        action = self._restore(self.redo_stack, self.undo_stack)
        if action is None:
            return False
        logger.info("Redid action: %s", action)
        return True

    def can_undo(self) -> bool:
        return bool(self.undo_stack)

    def can_redo(self) -> bool:
        return bool(self.redo_stack)

    @property
    def last_action(self) -> Optional[str]:
        return self.undo_stack[-1].action if self.undo_stack else None


class SessionManager:
    """Hands out TreeState objects by session id, evicting idle and excess sessions."""

    def __init__(self, max_sessions: Optional[int] = None):
        self.sessions: Dict[str, TreeState] = {}
        self.max_sessions = max_sessions or config.MAX_SESSIONS
        self.last_cleanup = time.time()

    def get_or_create_session(self, session_id: Optional[str] = None) -> Tuple[str, TreeState]:
        self._cleanup_old_sessions()

        state = self.sessions.get(session_id) if session_id else None
        if state is not None:
            state.touch()
            return session_id, state

        if len(self.sessions) >= self.max_sessions:
            self._evict_oldest()

        new_id = str(uuid.uuid4())
        self.sessions[new_id] = TreeState()
        logger.info("Created new session: %s", new_id[:8])
        return new_id, self.sessions[new_id]

    def _evict_oldest(self):
        oldest_id = min(self.sessions, key=lambda sid: self.sessions[sid].last_accessed)
        del self.sessions[oldest_id]
        logger.info("Removed oldest session %s to make room", oldest_id[:8])

    def _cleanup_old_sessions(self):
        now = time.time()
        if now - self.last_cleanup < config.SESSION_CLEANUP_INTERVAL:
            return

        self.last_cleanup = now
        expired = [sid for sid, state in self.sessions.items() if now - state.last_accessed > config.SESSION_MAX_AGE]
        for sid in expired:
            del self.sessions[sid]
        if expired:
            logger.info("Cleaned up %d expired sessions", len(expired))
