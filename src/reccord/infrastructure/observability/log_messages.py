"""Structured log message templates for consistent, human-readable logging.

Hey future me - instead of "Error: 401" somewhere in the logs, list syncs log like this:

    ⚠️ Spotify Source Failed
    ├─ List: 3f1c...
    ├─ Error: AuthenticationFailedError (401)
    ├─ Reason: The access token expired
    └─ 💡 User must reconnect Spotify

Icon first (🔴 error, ⚠️ warning, ✅ success, 📭 empty), then the entity, then
context fields, then an optional hint.

Usage:
    from reccord.infrastructure.observability.log_messages import LogMessages

    logger.warning(LogMessages.source_failed(list_id=..., error=exc))
"""

from dataclasses import dataclass, field

from reccord.domain.exceptions import SyncSourceError


@dataclass
class LogTemplate:
    """Icon + title + tree of fields + optional hint."""

    icon: str
    title: str
    fields: dict[str, str] = field(default_factory=dict)
    hint: str | None = None

    def render(self) -> str:
        """Render as a multi-line message."""
        lines = [f"{self.icon} {self.title}"]

        items = list(self.fields.items())
        for i, (key, value) in enumerate(items):
            # Last field uses └─ unless a hint follows
            prefix = "└─" if i == len(items) - 1 and not self.hint else "├─"
            lines.append(f"{prefix} {key}: {value}")

        if self.hint:
            lines.append(f"└─ 💡 {self.hint}")

        return "\n".join(lines)


class LogMessages:
    """Collection of standardized log message templates."""

    # === Sources & tokens ===

    @staticmethod
    def source_failed(list_id: str, error: SyncSourceError) -> str:
        """A provider contributed nothing to a list sync."""
        status = getattr(error, "status_code", None)
        error_label = error.error_type if status is None else f"{error.error_type} ({status})"
        hint = (
            f"User must reconnect {error.service.display_name}"
            if error.requires_reauth
            else "Transient provider failure, next sweep retries"
        )
        return LogTemplate(
            icon="⚠️",
            title=f"{error.service.display_name} Source Failed",
            fields={"List": list_id, "Error": error_label, "Reason": error.message},
            hint=hint,
        ).render()

    @staticmethod
    def token_refreshed(service: str, user_id: str, expires_at: str, rotated: bool) -> str:
        """Access token refreshed and persisted."""
        return LogTemplate(
            icon="🔑",
            title=f"{service} Token Refreshed",
            fields={
                "User": user_id,
                "Expires": expires_at,
                "Refresh token rotated": "yes" if rotated else "no",
            },
        ).render()

    @staticmethod
    def token_refresh_failed(service: str, user_id: str, error: str) -> str:
        """Refresh grant rejected."""
        return LogTemplate(
            icon="⏰",
            title=f"{service} Token Refresh Failed",
            fields={"User": user_id, "Reason": error},
            hint=f"Re-authenticate with {service} to get a new token",
        ).render()

    @staticmethod
    def credential_missing(service: str, user_id: str) -> str:
        """No connection row for a source the list wants."""
        return LogTemplate(
            icon="🔌",
            title=f"{service} Not Connected",
            fields={"User": user_id},
            hint="Expected after a disconnect, the source is skipped",
        ).render()

    # === List sync ===

    @staticmethod
    def sync_completed(
        list_id: str,
        source_type: str,
        item_count: int,
        sources: str,
        errors: int = 0,
    ) -> str:
        """Items replaced and watermark advanced."""
        fields = {
            "List": list_id,
            "Type": source_type,
            "Items": str(item_count),
            "Sources": sources or "-",
        }
        if errors:
            fields["Failed sources"] = str(errors)
        return LogTemplate(
            icon="✅" if errors == 0 else "⚠️",
            title="List Sync Complete",
            fields=fields,
        ).render()

    @staticmethod
    def sync_empty(list_id: str, window: str | None, failed_sources: list[str]) -> str:
        """Nothing to write, existing items kept, watermark advanced."""
        fields = {"List": list_id}
        if window:
            fields["Window"] = window
        fields["Failed sources"] = ", ".join(failed_sources) or "none"
        return LogTemplate(
            icon="📭",
            title="No Listening History In Window",
            fields=fields,
            hint="Existing items kept, watermark advanced to avoid retry loops",
        ).render()

    @staticmethod
    def sync_failed(list_id: str, error: str) -> str:
        """A list sync raised (persistence or unexpected error)."""
        return LogTemplate(
            icon="🔴",
            title="List Sync Failed",
            fields={"List": list_id, "Reason": error},
            hint="Sweep continues with the next list",
        ).render()

    @staticmethod
    def batch_summary(
        source_type: str,
        total: int,
        synced: int,
        errors: int,
        skipped: int = 0,
        duration_ms: float | None = None,
    ) -> str:
        """Tally of one scheduled sweep."""
        fields = {
            "Candidates": str(total),
            "Synced": str(synced),
            "Errors": str(errors),
        }
        if skipped:
            fields["Skipped"] = str(skipped)
        if duration_ms is not None:
            fields["Duration"] = f"{duration_ms:.0f}ms"
        return LogTemplate(
            icon="✅" if errors == 0 else "⚠️",
            title=f"{source_type} Sweep Complete",
            fields=fields,
        ).render()

    # === Worker lifecycle ===

    @staticmethod
    def worker_started(worker: str, interval: int | None = None) -> str:
        """Background worker started."""
        fields = {"Interval": f"{interval}s"} if interval else {}
        return LogTemplate(icon="✅", title=f"{worker} Started", fields=fields).render()

    @staticmethod
    def worker_failed(worker: str, error: str, will_retry: bool = True) -> str:
        """A worker cycle blew up."""
        return LogTemplate(
            icon="❌",
            title=f"{worker} Failed",
            fields={"Reason": error, "Status": "Will retry" if will_retry else "Stopped"},
        ).render()

    @staticmethod
    def config_missing(service: str, settings: str) -> str:
        """Provider used without credentials configured."""
        return LogTemplate(
            icon="🔴",
            title=f"{service} Not Configured",
            fields={"Missing": settings},
            hint="Set the variables in .env and restart",
        ).render()
