"""Supabase client setup and database utilities."""

from functools import lru_cache
from supabase import create_client, Client

from ledgersync.config import get_settings


@lru_cache
def get_supabase_client() -> Client:
    """Get cached Supabase client instance using the service key.

    The worker runs without an end-user session, so every query goes
    through the service key and authorization is handled here.
    """
    settings = get_settings()
    return create_client(
        settings.supabase_url,
        settings.supabase_secret_key
    )


def get_db() -> "Database":
    """Dependency for getting a Database bound to the service client."""
    return Database(get_supabase_client())


class Database:
    """Database helper class for sync queue and ledger tables."""

    def __init__(self, client: Client):
        self.client = client

    # --- Sync Jobs ---

    def create_sync_job(self, job_data: dict) -> dict:
        result = self.client.table("sync_jobs").insert(job_data).execute()
        return result.data[0]

    def get_sync_job_by_id(self, job_id: str) -> dict | None:
        result = self.client.table("sync_jobs").select("*").eq("id", job_id).execute()
        return result.data[0] if result.data else None

    def claim_sync_job(
        self,
        job_id: str,
        expected_status: str | None,
        expected_attempts: int | None,
        data: dict,
    ) -> dict | None:
        """Conditionally move a queued job to processing.

        The UPDATE only matches while the row still holds the status and
        attempts values the caller read, so of two racing claimers at most
        one gets a row back. A NULL status or attempts counts as a fresh
        queued job and is matched with IS NULL.
        """
        query = self.client.table("sync_jobs").update(data).eq("id", job_id)
        if expected_status is None:
            query = query.is_("status", "null")
        else:
            query = query.eq("status", expected_status)
        if expected_attempts is None:
            query = query.is_("attempts", "null")
        else:
            query = query.eq("attempts", expected_attempts)

        result = query.execute()
        return result.data[0] if result.data else None

    def update_processing_sync_job(self, job_id: str, data: dict) -> dict | None:
        """Update a job only while it is still processing.

        Returns None when the row already left ``processing``, e.g. the
        reaper failed it while the run was still going.
        """
        result = (
            self.client.table("sync_jobs")
            .update(data)
            .eq("id", job_id)
            .eq("status", "processing")
            .execute()
        )
        return result.data[0] if result.data else None

    def get_queued_sync_jobs(self, limit: int = 50) -> list[dict]:
        result = (
            self.client.table("sync_jobs")
            .select("*")
            .or_("status.eq.queued,status.is.null")
            .order("created_at")
            .limit(limit)
            .execute()
        )
        return result.data

    def fail_stale_sync_jobs(self, updated_before: str, data: dict) -> list[dict]:
        """Mark jobs still processing since before ``updated_before`` as failed."""
        result = (
            self.client.table("sync_jobs")
            .update(data)
            .eq("status", "processing")
            .lt("updated_at", updated_before)
            .execute()
        )
        return result.data

    # --- Accounts ---

    def upsert_accounts(self, accounts: list[dict]) -> list[dict]:
        if not accounts:
            return []
        result = (
            self.client.table("accounts")
            .upsert(accounts, on_conflict="id")
            .execute()
        )
        return result.data

    def get_account_by_id(self, account_id: str) -> dict | None:
        result = self.client.table("accounts").select("*").eq("id", account_id).execute()
        return result.data[0] if result.data else None

    # --- Transactions ---

    def upsert_transactions(self, transactions: list[dict]) -> list[dict]:
        if not transactions:
            return []
        result = (
            self.client.table("transactions")
            .upsert(transactions, on_conflict="id")
            .execute()
        )
        return result.data

    # --- Subscriptions ---

    def get_user_subscriptions(self, user_id: str) -> list[dict]:
        result = (
            self.client.table("subscriptions")
            .select("*")
            .eq("user_id", user_id)
            .execute()
        )
        return result.data

    def record_subscription_confirmations(self, confirmations: list[dict]) -> list[dict]:
        if not confirmations:
            return []
        result = (
            self.client.table("subscription_confirmations")
            .upsert(confirmations, on_conflict="user_id,subscription_id,invoice_month")
            .execute()
        )
        return result.data

    # --- Sync Status ---

    def upsert_sync_status(self, status: dict) -> dict | None:
        result = (
            self.client.table("sync_status")
            .upsert(status, on_conflict="sync_job_id")
            .execute()
        )
        return result.data[0] if result.data else None
