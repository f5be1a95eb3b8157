"""
Bounded in-memory state for webhook intake and conversation history.

Everything here lives for the lifetime of the process only and is owned by
instances created in create_app, never by module globals.
"""

import math
import time
from collections import OrderedDict, deque
from datetime import datetime
from typing import Callable, Deque, Dict, List, Optional, Tuple


class BoundedKeySet:
    """Insertion-ordered set that drops its oldest keys once it exceeds capacity."""

    def __init__(self, capacity: int = 100, retain: int = 50):
        if retain > capacity:
            raise ValueError("retain must not exceed capacity")
        self.capacity = capacity
        self.retain = retain
        self._keys: "OrderedDict[str, None]" = OrderedDict()

    def __contains__(self, key: str) -> bool:
        return key in self._keys

    def __len__(self) -> int:
        return len(self._keys)

    def add(self, key: str) -> bool:
        """Add a key. Returns False if it was already present."""
        if key in self._keys:
            return False
        self._keys[key] = None
        if len(self._keys) > self.capacity:
            while len(self._keys) > self.retain:
                self._keys.popitem(last=False)
        return True

    def clear(self) -> None:
        self._keys.clear()


class ResponseThrottle:
    """Minimum interval between AI responses for the same key."""

    def __init__(self, window_seconds: float = 10.0, clock: Callable[[], float] = time.time, max_keys: int = 1000):
        self.window_seconds = window_seconds
        self.clock = clock
        self.max_keys = max_keys
        # ordered oldest response first
        self._last_response: "OrderedDict[str, float]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._last_response)

    def remaining(self, key: str) -> float:
        """Seconds left in the window for key, 0 when a response is allowed."""
        last = self._last_response.get(key)
        if last is None:
            return 0.0
        elapsed = self.clock() - last
        return max(0.0, self.window_seconds - elapsed)

    def try_acquire(self, key: str) -> Tuple[bool, int]:
        """
        Check the window and, when open, record now as the last response time.

        Returns:
            (allowed, remaining whole seconds rounded up)
        """
        remaining = self.remaining(key)
        if remaining > 0:
            return False, math.ceil(remaining)
        self.record(key)
        return True, 0

    def record(self, key: str) -> None:
        now = self.clock()
        self._prune(now)
        self._last_response[key] = now
        self._last_response.move_to_end(key)

    def last_response(self, key: str) -> Optional[float]:
        return self._last_response.get(key)

    def _prune(self, now: float) -> None:
        """Drop keys whose window has closed, then the oldest keys beyond max_keys."""
        while self._last_response:
            oldest_key, oldest = next(iter(self._last_response.items()))
            if now - oldest < self.window_seconds and len(self._last_response) < self.max_keys:
                break
            del self._last_response[oldest_key]


class TurnHistory:
    """Recent user/assistant turns per thread, used by the completion fallback."""

    def __init__(self, max_turns: int = 20, max_threads: int = 500):
        self.max_turns = max_turns
        self.max_threads = max_threads
        self._threads: "OrderedDict[str, Deque[Dict[str, str]]]" = OrderedDict()

    def append(self, thread_id: str, role: str, content: str) -> None:
        turns = self._threads.get(thread_id)
        if turns is None:
            turns = deque(maxlen=self.max_turns)
            self._threads[thread_id] = turns
        self._threads.move_to_end(thread_id)
        turns.append({"role": role, "content": content})
        while len(self._threads) > self.max_threads:
            self._threads.popitem(last=False)

    def recent(self, thread_id: str, limit: int) -> List[Dict[str, str]]:
        turns = self._threads.get(thread_id)
        if not turns:
            return []
        return list(turns)[-limit:]


class WebhookStats:
    """Counters for the Jira webhook intake."""

    def __init__(self):
        self.reset()

    def reset(self) -> None:
        self.total_received = 0
        self.duplicates_skipped = 0
        self.ai_comments_skipped = 0
        self.successful_responses = 0
        self.throttled_requests = 0
        self.errors = 0
        self.since = datetime.utcnow()

    def to_dict(self) -> Dict[str, object]:
        return {
            "totalReceived": self.total_received,
            "duplicatesSkipped": self.duplicates_skipped,
            "aiCommentsSkipped": self.ai_comments_skipped,
            "successfulResponses": self.successful_responses,
            "throttledRequests": self.throttled_requests,
            "errors": self.errors,
            "since": self.since.isoformat(),
        }


class IssueConversationLog:
    """Last few inbound comments and AI replies per issue."""

    def __init__(self, max_entries: int = 20, max_issues: int = 500):
        self.max_entries = max_entries
        self.max_issues = max_issues
        self._entries: "OrderedDict[str, Deque[Dict[str, str]]]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def append(self, issue_key: str, role: str, author: str, content: str) -> None:
        entries = self._entries.get(issue_key)
        if entries is None:
            entries = deque(maxlen=self.max_entries)
            self._entries[issue_key] = entries
        self._entries.move_to_end(issue_key)
        entries.append({
            "role": role,
            "author": author,
            "content": content,
            "timestamp": datetime.utcnow().isoformat(),
        })
        while len(self._entries) > self.max_issues:
            self._entries.popitem(last=False)

    def get(self, issue_key: str) -> List[Dict[str, str]]:
        return list(self._entries.get(issue_key, []))


class JiraWebhookState:
    """Process-wide state shared by the Jira, widget and WhatsApp adapters."""

    def __init__(
        self,
        dedup_capacity: int = 100,
        dedup_retain: int = 50,
        throttle_seconds: float = 10.0,
        conversation_log_size: int = 20,
        clock: Callable[[], float] = time.time
    ):
        self.clock = clock
        self.processed_comments = BoundedKeySet(dedup_capacity, dedup_retain)
        self.throttle = ResponseThrottle(throttle_seconds, clock)
        self.stats = WebhookStats()
        self.conversations = IssueConversationLog(conversation_log_size)
