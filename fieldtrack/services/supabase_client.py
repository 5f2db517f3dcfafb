"""Supabase client wrapper with async context manager support."""

import os
from datetime import date
from typing import Optional
from supabase import create_client, Client
from supabase.client import ClientOptions
from fieldtrack.utils.errors import SupabaseError
import logging

logger = logging.getLogger(__name__)

# Global client instance (singleton pattern)
_client: Optional[Client] = None

TASKS_TABLE = "tasks"
SESSIONS_TABLE = "time_sessions"
ACTIVITIES_TABLE = "activities"


def get_supabase_client() -> Client:
    """Get or create Supabase client singleton."""
    global _client

    if _client is None:
        url = os.environ.get("SUPABASE_URL")
        key = os.environ.get("SUPABASE_SERVICE_ROLE_KEY")

        if not url or not key:
            raise SupabaseError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")

        options = ClientOptions(
            auto_refresh_token=False,
            persist_session=False,
        )

        _client = create_client(url, key, options)
        logger.info("Supabase client initialized", extra={"url": url})

    return _client


class SupabaseClient:
    """Async context manager for Supabase client."""

    def __init__(self):
        self.client: Optional[Client] = None

    async def __aenter__(self) -> Client:
        """Enter async context."""
        self.client = get_supabase_client()
        return self.client

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Exit async context."""
        if exc_type:
            logger.error(
                "Supabase operation error",
                extra={"error": str(exc_val), "type": exc_type.__name__}
            )
        return False


# Tasks table operations
async def insert_task_row(task_data: dict) -> dict:
    """Insert a new task."""
    async with SupabaseClient() as client:
        try:
            result = client.table(TASKS_TABLE).insert(task_data).execute()
        except Exception as e:
            raise SupabaseError(f"Failed to create task: {e}")
        if result.data and len(result.data) > 0:
            return result.data[0]
        raise SupabaseError("Failed to create task: no data returned")


async def get_task_row(task_id: str) -> Optional[dict]:
    """Get task by ID."""
    async with SupabaseClient() as client:
        try:
            result = client.table(TASKS_TABLE).select("*").eq("task_id", task_id).execute()
        except Exception as e:
            raise SupabaseError(f"Failed to get task: {e}")
        return result.data[0] if result.data and len(result.data) > 0 else None


async def update_task_row(task_id: str, updates: dict) -> Optional[dict]:
    """
    Apply a partial update to a task.

    Returns None when no row matched (task deleted in the meantime).
    """
    async with SupabaseClient() as client:
        try:
            result = client.table(TASKS_TABLE).update(updates).eq("task_id", task_id).execute()
        except Exception as e:
            raise SupabaseError(f"Failed to update task: {e}")
        return result.data[0] if result.data and len(result.data) > 0 else None


async def delete_task_row(task_id: str) -> bool:
    """Delete a task. Returns False if it was already gone."""
    async with SupabaseClient() as client:
        try:
            result = client.table(TASKS_TABLE).delete().eq("task_id", task_id).execute()
        except Exception as e:
            raise SupabaseError(f"Failed to delete task: {e}")
        return bool(result.data)


async def get_task_rows_for_user(user_id: str) -> list[dict]:
    """Get all tasks assigned to a user."""
    async with SupabaseClient() as client:
        try:
            result = client.table(TASKS_TABLE).select("*").contains("assigned_user_ids", [user_id]).execute()
        except Exception as e:
            raise SupabaseError(f"Failed to get tasks for user: {e}")
        return result.data if result.data else []


# Time sessions table operations
async def get_active_session_row(user_id: str) -> Optional[dict]:
    """Get the user's active session, whatever day it belongs to."""
    async with SupabaseClient() as client:
        try:
            result = (
                client.table(SESSIONS_TABLE).select("*")
                .eq("user_id", user_id)
                .eq("session_active", True)
                .order("session_start", desc=True)
                .execute()
            )
        except Exception as e:
            raise SupabaseError(f"Failed to get active session: {e}")
        return result.data[0] if result.data and len(result.data) > 0 else None


async def get_latest_session_row(user_id: str, day: date) -> Optional[dict]:
    """Get the most recently started session of a user's day."""
    async with SupabaseClient() as client:
        try:
            result = (
                client.table(SESSIONS_TABLE).select("*")
                .eq("user_id", user_id)
                .eq("day", day.isoformat())
                .order("session_start", desc=True)
                .limit(1)
                .execute()
            )
        except Exception as e:
            raise SupabaseError(f"Failed to get latest session: {e}")
        return result.data[0] if result.data and len(result.data) > 0 else None


async def upsert_session_row(session_data: dict) -> dict:
    """Insert or replace a session row."""
    async with SupabaseClient() as client:
        try:
            result = client.table(SESSIONS_TABLE).upsert(session_data, on_conflict="session_id").execute()
        except Exception as e:
            raise SupabaseError(f"Failed to save session: {e}")
        if result.data and len(result.data) > 0:
            return result.data[0]
        raise SupabaseError(f"Failed to save session: {session_data.get('session_id')}")


async def get_session_rows(user_id: str, start_day: date, end_day: date) -> list[dict]:
    """Get a user's sessions for an inclusive day range."""
    async with SupabaseClient() as client:
        try:
            result = (
                client.table(SESSIONS_TABLE).select("*")
                .eq("user_id", user_id)
                .gte("day", start_day.isoformat())
                .lte("day", end_day.isoformat())
                .order("session_start")
                .execute()
            )
        except Exception as e:
            raise SupabaseError(f"Failed to get sessions: {e}")
        return result.data if result.data else []


# Activities table operations
async def insert_activity_row(activity_data: dict) -> dict:
    """Append an activity record."""
    async with SupabaseClient() as client:
        try:
            result = client.table(ACTIVITIES_TABLE).insert(activity_data).execute()
        except Exception as e:
            raise SupabaseError(f"Failed to create activity: {e}")
        if result.data and len(result.data) > 0:
            return result.data[0]
        raise SupabaseError("Failed to create activity: no data returned")
