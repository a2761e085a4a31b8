"""
Notification Service

Formats Slack messages for workflow events and delivers them through a
transport. Every delivery attempt is appended to ``notification_logs``.
"""
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..config import settings
from ..integrations.base import MessageTransport
from ..integrations.slack_client import SlackClient, SlackConfig
from ..models.blocker import Blocker
from ..models.enums import NotificationType
from ..models.notification_log import NotificationLog
from ..models.standup import Standup
from ..models.user import User
from ..utils.logging import get_logger

logger = get_logger(__name__)

SEVERITY_EMOJI = {
    "CRITICAL": ":red_circle:",
    "HIGH": ":large_orange_circle:",
    "MEDIUM": ":large_yellow_circle:",
    "LOW": ":large_green_circle:",
}

GOAL_STATUS_EMOJI = {
    "ACHIEVED": ":white_check_mark:",
    "PARTIALLY_ACHIEVED": ":arrows_counterclockwise:",
    "NOT_ACHIEVED": ":x:",
}


def build_transport() -> Optional[SlackClient]:
    """Slack transport from settings, or None when no bot token is configured"""
    if not settings.slack_bot_token:
        return None
    return SlackClient(SlackConfig(bot_token=settings.slack_bot_token))


def _truncate(text: Optional[str], limit: int = 200) -> str:
    if not text:
        return ""
    return text if len(text) <= limit else text[:limit] + "..."


def _section(title: str, fields: List[Tuple[str, Any]], text: Optional[str] = None) -> List[Dict[str, Any]]:
    blocks: List[Dict[str, Any]] = [
        {"type": "header", "text": {"type": "plain_text", "text": title}}
    ]
    if text:
        blocks.append({"type": "section", "text": {"type": "mrkdwn", "text": text}})
    if fields:
        blocks.append({
            "type": "section",
            "fields": [
                {"type": "mrkdwn", "text": f"*{name}*\n{value}"}
                for name, value in fields
            ]
        })
    return blocks


class NotificationService:
    """Best-effort outbound alerts; delivery failures are logged, never raised"""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        transport: Optional[MessageTransport] = None,
        manager_channel: Optional[str] = None,
        admin_channel: Optional[str] = None,
        frontend_url: Optional[str] = None
    ):
        self.session_factory = session_factory
        self.transport = transport
        self.manager_channel = manager_channel
        self.admin_channel = admin_channel
        self.frontend_url = frontend_url or settings.frontend_url

    @classmethod
    def from_settings(cls, session_factory: async_sessionmaker[AsyncSession]) -> "NotificationService":
        return cls(
            session_factory,
            transport=build_transport(),
            manager_channel=settings.slack_manager_channel,
            admin_channel=settings.slack_admin_channel
        )

    async def send(
        self,
        notification_type: NotificationType,
        channel: Optional[str],
        text: str,
        blocks: Optional[List[Dict[str, Any]]] = None
    ) -> bool:
        """Deliver one message and record the attempt. Returns delivery success."""

        if self.transport is None or not channel:
            logger.warning(f"Notification transport not configured, skipping {notification_type.value}")
            return False

        error: Optional[str] = None
        try:
            await self.transport.post_message(channel=channel, text=text, blocks=blocks)
        except Exception as e:
            error = str(e)
            logger.error(f"{notification_type.value} notification to {channel} failed: {e}")

        async with self.session_factory() as session:
            session.add(NotificationLog(
                type=notification_type.value,
                recipient=channel,
                payload={"text": text, "blocks": blocks or []},
                status="failed" if error else "sent",
                error=error
            ))
            await session.commit()

        return error is None

    # ------------------------------------------------------------------ messages

    def _blocker_alert_parts(self, blocker: Blocker, user: User, file_count: int) -> Tuple[List[Tuple[str, Any]], str, str]:
        fields = [
            ("Title", blocker.title),
            ("Severity", f"{SEVERITY_EMOJI.get(blocker.severity, '')} {blocker.severity}"),
            ("Category", blocker.category),
            ("Support Required", blocker.support_required),
            ("Description", _truncate(blocker.description)),
            ("Files Attached", file_count),
        ]
        link = f"<{self.frontend_url}/blockers/{blocker.id}|View Blocker>"
        return fields, f"{user.name} - {user.department}\n{link}", f"New {blocker.severity} blocker from {user.name}"

    async def send_blocker_alert(self, blocker: Blocker, user: User, file_count: int = 0) -> bool:
        """Alert the manager channel about a new blocker of any severity"""
        fields, body, text = self._blocker_alert_parts(blocker, user, file_count)
        return await self.send(
            NotificationType.BLOCKER_ALERT,
            self.manager_channel,
            text,
            _section(f"New {blocker.severity} Blocker", fields, body)
        )

    async def send_critical_blocker_alert(self, blocker: Blocker, user: User, file_count: int = 0) -> bool:
        """Escalate a CRITICAL blocker to the admin channel.

        Sent separately from the manager alert so each channel is retried on
        its own.
        """
        fields, body, text = self._blocker_alert_parts(blocker, user, file_count)
        return await self.send(
            NotificationType.BLOCKER_ALERT,
            self.admin_channel,
            text,
            _section("CRITICAL Blocker - Immediate Attention Required", fields, body)
        )

    async def send_submission_notification(self, standup: Standup, user: User, file_count: int = 0) -> bool:
        status = standup.goal_status or "UNKNOWN"
        fields = [
            ("Achievement", standup.achievement_title),
            ("Goal Status", f"{GOAL_STATUS_EMOJI.get(status, ':grey_question:')} {status.replace('_', ' ')}"),
            ("Completion", f"{standup.completion_percentage or 0}%"),
            ("Files", f"{file_count} attached"),
            ("Late Submission", "Yes" if standup.is_late_submission else "No"),
        ]
        return await self.send(
            NotificationType.SUBMISSION_NOTIFICATION,
            self.manager_channel,
            f"{user.name} submitted daily standup",
            _section(
                "New Standup Submission",
                fields,
                f"{user.name} - {user.department}\n<{self.frontend_url}/standups/{standup.id}|Review Now>"
            )
        )

    async def send_daily_reminder(self, user: User) -> bool:
        return await self.send(
            NotificationType.DAILY_REMINDER,
            self.manager_channel,
            f"Reminder: {user.name} has not submitted today's standup",
            _section(
                "Standup Reminder",
                [],
                f"{user.name} has not submitted their daily achievement yet.\n"
                f"<{self.frontend_url}/dashboard|View Dashboard>"
            )
        )

    async def send_review_notification(
        self,
        standup: Standup,
        user: User,
        action: str,
        feedback: Optional[str] = None
    ) -> bool:
        titles = {
            "approve": "Standup Approved",
            "needs_attention": "Standup Needs Attention",
            "feedback": "Feedback on Standup",
        }
        fields = [
            ("Date", standup.date.isoformat()),
            ("Achievement", standup.achievement_title),
        ]
        if feedback:
            fields.append(("Feedback", feedback))
        return await self.send(
            NotificationType.APPROVAL_NOTIFICATION,
            self.manager_channel,
            f"{titles.get(action, 'Standup reviewed')} for {user.name}",
            _section(titles.get(action, "Standup Reviewed"), fields, user.name)
        )

    async def send_blocker_escalation(self, blocker: Blocker, user: User) -> bool:
        fields = [
            ("Title", blocker.title),
            ("Severity", blocker.severity),
            ("Escalated To", blocker.escalated_to),
            ("Raised By", user.name),
        ]
        if blocker.escalation_deadline:
            fields.append(("Deadline", blocker.escalation_deadline.isoformat()))
        if blocker.escalation_notes:
            fields.append(("Notes", _truncate(blocker.escalation_notes)))
        return await self.send(
            NotificationType.BLOCKER_ALERT,
            self.manager_channel,
            f"Blocker escalated: {blocker.title}",
            _section("Blocker Escalated", fields)
        )

    async def send_blocker_resolution(self, blocker: Blocker, user: User) -> bool:
        fields = [
            ("Title", blocker.title),
            ("Originally Raised By", user.name),
            ("Resolution", blocker.resolution_notes or "No notes provided"),
        ]
        return await self.send(
            NotificationType.BLOCKER_ALERT,
            self.manager_channel,
            f"Blocker resolved: {blocker.title}",
            _section("Blocker Resolved", fields)
        )

    async def send_weekly_summary(self, report: Dict[str, Any]) -> bool:
        if not self.admin_channel:
            logger.warning("Admin channel not configured for weekly summary")
            return False

        fields = [
            ("Submission Rate", f"{report.get('submission_rate', 0)}%"),
            ("Completion Rate", f"{report.get('completion_rate', 0)}%"),
            ("Total Blockers", report.get("blocker_count", 0)),
            ("Trend", report.get("trend", "stable")),
        ]
        text = report.get("executive_summary", "")
        if report.get("concerns"):
            text += "\n\n*Concerns*\n" + "\n".join(f"• {c}" for c in report["concerns"])
        if report.get("recommendations"):
            text += "\n\n*Recommendations*\n" + "\n".join(f"• {r}" for r in report["recommendations"])

        return await self.send(
            NotificationType.WEEKLY_REPORT,
            self.admin_channel,
            "Milestone Weekly Summary Report",
            _section("Weekly Summary Report", fields, text)
        )
