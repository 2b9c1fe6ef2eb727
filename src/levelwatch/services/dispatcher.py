"""Fan-out of notifications to Discord, Telegram and email.

Each channel is attempted independently and in parallel. A failing channel
never affects the others, nothing is retried, and every attempt is appended
to the notification log.
"""

import asyncio
import logging
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from datetime import datetime
from typing import Optional

import requests

from levelwatch.config import settings
from levelwatch.db import get_session
from levelwatch.models.notification_log import NotificationLog
from levelwatch.schemas import ChannelResult, TriggerEvent
from levelwatch.services.alerts import (
    format_trigger_discord, format_trigger_telegram, format_trigger_email,
)

logger = logging.getLogger(__name__)


class ChannelError(Exception):
    pass


class Channel:
    """A delivery target. ``send_trigger``/``send_notice`` raise on failure."""

    name = "base"

    def is_configured(self) -> bool:
        return True

    def send_trigger(self, event: TriggerEvent):
        raise NotImplementedError

    def send_notice(self, notice: dict):
        raise NotImplementedError


class DiscordChannel(Channel):
    name = "discord"

    def __init__(self, webhook_url: str = None, timeout: float = None):
        self.webhook_url = webhook_url or settings.discord_alerts_webhook_url or settings.discord_webhook_url
        self.timeout = timeout or settings.channel_timeout_seconds

    def is_configured(self):
        return bool(self.webhook_url)

    def _post(self, payload: dict):
        resp = requests.post(self.webhook_url, json=payload, timeout=self.timeout)
        if resp.status_code >= 400:
            raise ChannelError(f"Discord webhook returned {resp.status_code}: {resp.text[:200]}")

    def send_trigger(self, event):
        self._post(format_trigger_discord(event))

    def send_notice(self, notice):
        self._post({
            "embeds": [{
                "title": notice["title"],
                "description": "\n".join(notice["lines"]),
                "color": notice.get("color", 0x3B82F6),
                "timestamp": datetime.utcnow().isoformat(),
            }]
        })


class TelegramChannel(Channel):
    name = "telegram"

    def __init__(self, token: str = None, chat_id: str = None, timeout: float = None):
        self.token = token or settings.telegram_bot_token
        self.chat_id = chat_id or settings.telegram_chat_id
        self.timeout = timeout or settings.channel_timeout_seconds

    def is_configured(self):
        return bool(self.token and self.chat_id)

    async def _send(self, text: str):
        from telegram import Bot

        bot = Bot(token=self.token)
        await bot.send_message(
            chat_id=self.chat_id,
            text=text,
            parse_mode="HTML",
            read_timeout=self.timeout,
            write_timeout=self.timeout,
            connect_timeout=self.timeout,
        )

    def _send_sync(self, text: str):
        # Runs on a dispatcher worker thread, which has no event loop of its own
        asyncio.run(asyncio.wait_for(self._send(text), timeout=self.timeout))

    def send_trigger(self, event):
        self._send_sync(format_trigger_telegram(event))

    def send_notice(self, notice):
        self._send_sync(f"<b>{notice['title']}</b>\n\n" + "\n".join(notice["lines"]))


class EmailChannel(Channel):
    """Email through the Resend API."""

    name = "email"

    def __init__(self, api_key: str = None, sender: str = None, recipients: list[str] = None):
        self.api_key = api_key or settings.resend_api_key
        self.sender = sender or settings.email_from
        self.recipients = recipients if recipients is not None else list(settings.email_to)

    def is_configured(self):
        return bool(self.api_key and self.recipients)

    def _send(self, subject: str, html_body: str, text_body: str):
        import resend

        resend.api_key = self.api_key
        result = resend.Emails.send({
            "from": self.sender,
            "to": self.recipients,
            "subject": subject,
            "html": html_body,
            "text": text_body,
        })
        if not result or not result.get("id"):
            raise ChannelError("Resend returned no message id")
        logger.debug(f"Email sent to {len(self.recipients)} recipient(s), id: {result.get('id')}")

    def send_trigger(self, event):
        self._send(*format_trigger_email(event))

    def send_notice(self, notice):
        text = "\n".join(notice["lines"])
        html_body = f"<h2>{notice['title']}</h2>" + "".join(f"<p>{line}</p>" for line in notice["lines"])
        self._send(notice["title"], html_body, text)


CHANNELS = {
    "discord": DiscordChannel,
    "telegram": TelegramChannel,
    "email": EmailChannel,
}


class NotificationDispatcher:
    def __init__(self, channels: list[Channel], timeout: float = None):
        self.channels = channels
        self.timeout = timeout or settings.channel_timeout_seconds

    def _fan_out(self, jobs: list[tuple[str, object, Optional[int]]]) -> list[list[ChannelResult]]:
        """Send every (method, payload, alert_level_id) job to every channel at once.

        All sends share one deadline, so a hung channel costs the whole batch
        at most one timeout. Returns one result list per job, in job order.
        """
        if not jobs:
            return []
        if not self.channels:
            logger.warning("No notification channels configured; nothing sent")
            return [[] for _ in jobs]

        pool = ThreadPoolExecutor(
            max_workers=len(self.channels) * len(jobs), thread_name_prefix="notify"
        )
        futures = [
            [(channel, pool.submit(getattr(channel, method), payload)) for channel in self.channels]
            for method, payload, _ in jobs
        ]
        deadline = time.monotonic() + self.timeout + 1
        batches = []
        for job_futures in futures:
            results = []
            for channel, future in job_futures:
                try:
                    future.result(timeout=max(deadline - time.monotonic(), 0))
                    results.append(ChannelResult(channel=channel.name, success=True))
                except FutureTimeout:
                    results.append(ChannelResult(
                        channel=channel.name, success=False, error=f"timed out after {self.timeout}s"
                    ))
                except Exception as e:
                    results.append(ChannelResult(channel=channel.name, success=False, error=str(e) or type(e).__name__))
            batches.append(results)
        # Don't wait on a hung channel
        pool.shutdown(wait=False, cancel_futures=True)

        for results in batches:
            for r in results:
                if r.success:
                    logger.info(f"Notification sent via {r.channel}")
                else:
                    logger.error(f"Notification via {r.channel} failed: {r.error}")

        self._log([
            (r, alert_level_id)
            for (_, _, alert_level_id), results in zip(jobs, batches)
            for r in results
        ])
        return batches

    def _log(self, entries: list[tuple[ChannelResult, Optional[int]]]):
        session = get_session()
        try:
            now = datetime.utcnow()
            session.add_all([
                NotificationLog(
                    alert_level_id=alert_level_id,
                    channel=r.channel,
                    status="success" if r.success else "failed",
                    error_message=r.error,
                    created_at=now,
                )
                for r, alert_level_id in entries
            ])
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error(f"Failed to write notification log: {e}", exc_info=True)
        finally:
            session.close()

    def dispatch(self, event: TriggerEvent) -> list[ChannelResult]:
        """Send a level trigger to every channel; returns one result per channel."""
        return self._fan_out([("send_trigger", event, event.alert_level_id)])[0]

    def dispatch_all(self, events: list[TriggerEvent]) -> list[list[ChannelResult]]:
        """Send several triggers in parallel under a single deadline."""
        return self._fan_out([("send_trigger", event, event.alert_level_id) for event in events])

    def dispatch_notice(self, notice: dict) -> list[ChannelResult]:
        """System notice (e.g. new report); logged with no alert level."""
        return self._fan_out([("send_notice", notice, None)])[0]


def build_dispatcher(cfg=None) -> NotificationDispatcher:
    cfg = cfg or settings
    channels = []
    for name in cfg.channels:
        cls = CHANNELS.get(name.strip().lower())
        if cls is None:
            logger.warning(f"Unknown notification channel '{name}', skipping")
            continue
        channel = cls()
        if not channel.is_configured():
            logger.warning(f"Channel {name} enabled but not configured, skipping")
            continue
        channels.append(channel)
    return NotificationDispatcher(channels, timeout=cfg.channel_timeout_seconds)
