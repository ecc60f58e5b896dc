"""Slack notification utility for data-integrity and workflow alerts."""

import time
from collections import deque
from datetime import datetime
from typing import Dict, Optional

import structlog
from slack_sdk import WebClient
from slack_sdk.errors import SlackApiError

from app.config import Settings, settings as default_settings

logger = structlog.get_logger(__name__)


class SlackNotifier:
    """Send critical alerts to Slack with rate limiting."""

    def __init__(self, settings: Optional[Settings] = None, client: Optional[WebClient] = None):
        """Initialize Slack notifier with rate limiting."""
        self.settings = settings or default_settings
        self.enabled = (
            self.settings.SLACK_ALERTS_ENABLED
            and bool(self.settings.SLACK_BOT_TOKEN)
            and bool(self.settings.SLACK_CHANNEL_ID)
        )
        self.channel_id = self.settings.SLACK_CHANNEL_ID
        self.max_alerts_per_hour = self.settings.MAX_ALERTS_PER_HOUR
        self.alert_history: deque = deque(maxlen=100)  # Track recent alerts

        if client is not None:
            self.client = client
        elif self.enabled:
            self.client = WebClient(token=self.settings.SLACK_BOT_TOKEN)
        else:
            self.client = None

        logger.info(
            "slack_notifier_initialized" if self.enabled else "slack_notifier_disabled",
            max_alerts_per_hour=self.max_alerts_per_hour,
        )

    def _check_rate_limit(self) -> bool:
        """
        Check if we've exceeded alert rate limit.

        Returns:
            True if within limit, False if exceeded
        """
        if not self.enabled:
            return False

        one_hour_ago = time.time() - 3600
        recent_alerts = sum(1 for ts in self.alert_history if ts > one_hour_ago)

        if recent_alerts >= self.max_alerts_per_hour:
            logger.warning(
                "slack_rate_limit_exceeded",
                recent_alerts=recent_alerts,
                max_allowed=self.max_alerts_per_hour,
            )
            return False

        return True

    async def send_alert(
        self,
        title: str,
        message: str,
        level: str = "error",
        context: Optional[Dict] = None,
    ) -> bool:
        """
        Send alert to Slack with formatted blocks.

        Args:
            title: Alert title
            message: Alert message
            level: Severity level (info, warning, error, critical)
            context: Additional context dictionary

        Returns:
            True if sent successfully
        """
        if not self.enabled:
            logger.debug("slack_alert_skipped_disabled", title=title)
            return False

        if not self._check_rate_limit():
            logger.warning("slack_alert_skipped_rate_limit", title=title)
            return False

        severity_map = {
            "info": {"emoji": "ℹ️", "color": "#36a64f", "priority": "Low"},
            "warning": {"emoji": "⚠️", "color": "#ff9900", "priority": "Medium"},
            "error": {"emoji": "❌", "color": "#ff0000", "priority": "High"},
            "critical": {"emoji": "🚨", "color": "#ff0000", "priority": "CRITICAL"},
        }
        severity = severity_map.get(level.lower(), severity_map["error"])

        blocks = [
            {
                "type": "header",
                "text": {"type": "plain_text", "text": f"{severity['emoji']} {title}", "emoji": True},
            },
        ]
        if level.lower() == "critical":
            blocks.append({
                "type": "section",
                "text": {"type": "mrkdwn", "text": "<!here> *Immediate attention required*"},
            })

        blocks.append({"type": "divider"})
        blocks.append({
            "type": "section",
            "text": {"type": "mrkdwn", "text": message},
            "fields": [
                {"type": "mrkdwn", "text": f"*Priority:*\n{severity['priority']}"},
                {"type": "mrkdwn", "text": f"*Environment:*\n{self.settings.ENVIRONMENT}"},
            ],
        })

        if context:
            blocks.append({"type": "divider"})
            context_items = list(context.items())
            for i in range(0, len(context_items), 2):
                blocks.append({
                    "type": "section",
                    "fields": [
                        {"type": "mrkdwn", "text": f"*{key}:*\n{value}"}
                        for key, value in context_items[i:i + 2]
                    ],
                })

        blocks.append({
            "type": "context",
            "elements": [
                {"type": "mrkdwn", "text": f"🕒 {datetime.utcnow().strftime('%Y-%m-%d %H:%M:%S UTC')}"}
            ],
        })

        try:
            response = self.client.chat_postMessage(
                channel=self.channel_id,
                blocks=blocks,
                attachments=[{"color": severity["color"], "fallback": f"{title}: {message}"}],
                text=f"{title}: {message}",
            )
            self.alert_history.append(time.time())
            logger.info("slack_alert_sent", title=title, level=level, message_ts=response.get("ts"))
            return True

        except SlackApiError as e:
            logger.error(
                "slack_alert_failed_api",
                title=title,
                error=e.response["error"],
                status_code=e.response.status_code,
            )
            return False
        except Exception as e:
            logger.error("slack_alert_failed", title=title, error=str(e))
            return False

    async def send_ledger_drift_alert(self, report: Dict) -> bool:
        """Cached balance no longer matches the ledger; needs out-of-band repair."""
        return await self.send_alert(
            title="Skill Credit Ledger Drift",
            message=(
                "An account's cached balance does not match its ledger history.\n\n"
                "*Action:* verify the ledger, then run the repair endpoint for this account."
            ),
            level="critical",
            context={
                "Account": report.get("account_id"),
                "Ledger balance": report.get("ledger_balance"),
                "Cached balance": report.get("cached_balance"),
                "Drift": report.get("drift"),
            },
        )

    async def send_side_effect_failure_alert(self, entity_type: str, entity_id: str, details: Dict) -> bool:
        """A transition was rolled back after exhausting side-effect retries."""
        return await self.send_alert(
            title="Workflow Side Effect Failed",
            message=f"Transition on *{entity_type}* `{entity_id}` was rolled back.",
            level="error",
            context={
                "Effect": details.get("effect"),
                "Attempts": details.get("attempts"),
                "Error": details.get("error"),
            },
        )


slack_notifier = SlackNotifier()
