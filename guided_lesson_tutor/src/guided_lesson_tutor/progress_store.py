"""
Progress Store

Records which modules of a lesson are complete. The dialogue engine only
ever calls mark_module_complete; the rest serves the presentation layer.
"""

import logging
import os
from datetime import datetime
from typing import Dict, Optional, Protocol, Set

from dotenv import load_dotenv
from supabase import create_client

logger = logging.getLogger(__name__)


class ProgressStore(Protocol):
    async def mark_module_complete(self, lesson_id: str, module_id: str) -> None:
        ...


class InMemoryProgressStore:
    """Completed module ids per lesson, held in memory."""

    def __init__(self):
        self._completed: Dict[str, Set[str]] = {}
        self.last_accessed: Dict[str, datetime] = {}

    async def mark_module_complete(self, lesson_id: str, module_id: str) -> None:
        self._completed.setdefault(lesson_id, set()).add(module_id)
        self.last_accessed[lesson_id] = datetime.now()

    def is_module_completed(self, lesson_id: str, module_id: str) -> bool:
        return module_id in self._completed.get(lesson_id, set())

    def completed_modules(self, lesson_id: str) -> Set[str]:
        return set(self._completed.get(lesson_id, set()))

    def completion_percentage(self, lesson_id: str, total_modules: int) -> float:
        if total_modules <= 0:
            return 0.0
        return min(len(self._completed.get(lesson_id, set())) / total_modules, 1.0)

    def clear(self):
        self._completed.clear()
        self.last_accessed.clear()


class SupabaseProgressStore(InMemoryProgressStore):
    """
    Persists completions to the Supabase `lesson_progress` table.

    The in-memory record is always updated so reads keep working when the
    database is unreachable.
    """

    TABLE = "lesson_progress"

    def __init__(self, supabase_client=None, user_id: Optional[str] = None):
        super().__init__()
        self.supabase = supabase_client
        self.user_id = user_id

    async def mark_module_complete(self, lesson_id: str, module_id: str) -> None:
        await super().mark_module_complete(lesson_id, module_id)
        if self.supabase is None:
            return

        row = {
            "lesson_id": lesson_id,
            "module_id": module_id,
            "completed_at": datetime.now().isoformat(),
        }
        if self.user_id:
            row["user_id"] = self.user_id

        try:
            self.supabase.table(self.TABLE).upsert(row).execute()
            logger.debug(f"💾 [Progress] Saved {lesson_id}/{module_id}")
        except Exception as e:
            logger.warning(f"⚠️ [Progress] Error saving completion to database: {e}")

    async def load(self, lesson_id: str) -> Set[str]:
        """Refresh the in-memory record for a lesson from the database."""
        if self.supabase is None:
            return self.completed_modules(lesson_id)
        try:
            query = self.supabase.table(self.TABLE).select("module_id").eq("lesson_id", lesson_id)
            if self.user_id:
                query = query.eq("user_id", self.user_id)
            result = query.execute()
            if result.data:
                self._completed.setdefault(lesson_id, set()).update(r["module_id"] for r in result.data)
        except Exception as e:
            logger.warning(f"⚠️ [Progress] Error loading progress from database: {e}")
        return self.completed_modules(lesson_id)


def create_supabase_client():
    """Build a Supabase client from SUPABASE_URL / SUPABASE_SERVICE_KEY."""
    load_dotenv()
    url = os.getenv("SUPABASE_URL")
    key = os.getenv("SUPABASE_SERVICE_KEY")
    if not url or not key:
        raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_KEY must be set in environment")
    return create_client(url, key)
