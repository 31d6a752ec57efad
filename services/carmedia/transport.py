# CarMedia Server
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Transport — optional mirror of playback status to home automation.

``transport.mode`` in config.json picks the sinks:
  none     nothing leaves the vehicle (default)
  webhook  POST each status to ``transport.webhook_url``
  mqtt     status on ``carmedia/{device}/status``, commands on ``.../in``
  both     webhook and MQTT side by side

Status mirroring is lossy: while one send is still out, newer statuses are
dropped rather than queued.

    transport = Transport()
    transport.set_command_handler(service.handle_remote)
    await transport.start()
    transport.publish(snapshot_dict)
    await transport.stop()
"""

import asyncio
import json
import logging
import os
import re

import aiohttp

from .config import cfg

logger = logging.getLogger(__name__)

TOPIC_PREFIX = "carmedia"
MODES = ("none", "webhook", "mqtt", "both")
WEBHOOK_TIMEOUT = 0.5
MAX_BACKOFF = 30


def _device_slug(name: str) -> str:
    """'Family Van' -> 'family_van', safe for MQTT topic levels."""
    slug = re.sub(r"_+", "_", re.sub(r"[^a-z0-9_]", "_", name.strip().lower()))
    return slug.strip("_") or "default"


class WebhookSink:
    """HTTP POST of status payloads, one shared client session."""

    def __init__(self, url: str):
        self.url = url
        self._session: aiohttp.ClientSession | None = None

    async def open(self):
        self._session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=2.0),
            headers={"User-Agent": "CarMedia-Transport/1.0"},
        )
        logger.info("Webhook sink -> %s", self.url)

    async def close(self):
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def send(self, payload: dict) -> bool:
        if self._session is None:
            logger.warning("Webhook sink used before open()")
            return False
        try:
            async with self._session.post(
                self.url, json=payload, raise_for_status=True,
                timeout=aiohttp.ClientTimeout(total=WEBHOOK_TIMEOUT),
            ) as resp:
                logger.debug("Webhook delivered (HTTP %d)", resp.status)
                return True
        except asyncio.TimeoutError:
            logger.warning("Webhook to %s timed out", self.url)
        except aiohttp.ClientError as e:
            logger.warning("Webhook to %s failed: %s", self.url, e)
        return False


class MqttLink:
    """Broker connection that publishes status and listens for commands.

    aiomqtt is an optional extra; without it the link logs once and stays
    down while the rest of the service carries on.
    """

    def __init__(self, broker: str, port: int, slug: str, on_command):
        self.broker = broker
        self.port = port
        self.username = os.getenv("MQTT_USER") or None
        self.password = os.getenv("MQTT_PASSWORD") or None
        base = f"{TOPIC_PREFIX}/{slug}"
        self.topic_status = f"{base}/status"
        self.topic_in = f"{base}/in"
        self.topic_availability = f"{base}/availability"
        self.on_command = on_command
        self._client = None
        self._task: asyncio.Task | None = None

    @property
    def connected(self) -> bool:
        return self._client is not None

    def open(self):
        self._task = asyncio.create_task(self._run())
        logger.info("MQTT link connecting to %s:%d", self.broker, self.port)

    async def close(self):
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except (asyncio.CancelledError, Exception):
                pass
        self._client = None

    async def _run(self):
        try:
            import aiomqtt
        except ImportError:
            logger.error("aiomqtt not installed, MQTT disabled "
                         "(pip install 'carmedia-server[mqtt]')")
            return

        delay = 1
        while True:
            will = aiomqtt.Will(topic=self.topic_availability, payload="offline",
                                qos=1, retain=True)
            try:
                async with aiomqtt.Client(hostname=self.broker, port=self.port,
                                          username=self.username, password=self.password,
                                          will=will) as client:
                    self._client = client
                    delay = 1
                    await client.publish(self.topic_availability, "online", qos=1, retain=True)
                    await client.subscribe(self.topic_in)
                    logger.info("MQTT up on %s:%d, listening on %s",
                                self.broker, self.port, self.topic_in)
                    async for message in client.messages:
                        if message.topic.matches(self.topic_in):
                            await self.on_command(message.payload)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning("MQTT link down (%s), retry in %ds", e, delay)
            self._client = None
            await asyncio.sleep(delay)
            delay = min(delay * 2, MAX_BACKOFF)

    async def send(self, payload: dict) -> bool:
        client = self._client
        if client is None:
            logger.debug("MQTT not connected, status dropped")
            return False
        try:
            await client.publish(self.topic_status, json.dumps(payload), qos=0)
            return True
        except Exception as e:
            logger.warning("MQTT publish to %s failed: %s", self.topic_status, e)
            return False


class Transport:
    """Fan-out of status payloads to the configured sinks."""

    def __init__(self):
        mode = str(cfg("transport", "mode", default="none")).lower()
        self.mode = mode if mode in MODES else "none"
        self.device_name = cfg("device", default="CarMedia")
        self.device_slug = _device_slug(self.device_name)

        self.webhook = None
        if self.mode in ("webhook", "both"):
            self.webhook = WebhookSink(cfg(
                "transport", "webhook_url",
                default="http://localhost:8123/api/webhook/carmedia"))
        self.mqtt = MqttLink(
            cfg("transport", "mqtt_broker", default="localhost"),
            int(cfg("transport", "mqtt_port", default=1883)),
            self.device_slug,
            self._handle_mqtt_command,
        )
        self.topic_status = self.mqtt.topic_status
        self.topic_in = self.mqtt.topic_in

        self._command_handler = None
        self._send_task: asyncio.Task | None = None
        self._running = False

    @property
    def enabled(self) -> bool:
        return self.mode != "none"

    @property
    def _use_mqtt(self) -> bool:
        return self.mode in ("mqtt", "both")

    def set_command_handler(self, callback):
        """``async def callback(data: dict)`` for commands arriving over MQTT."""
        self._command_handler = callback

    async def start(self):
        self._running = True
        if self.webhook is not None:
            await self.webhook.open()
        if self._use_mqtt:
            self.mqtt.open()

    async def stop(self):
        self._running = False
        task, self._send_task = self._send_task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except (asyncio.CancelledError, Exception):
                pass
        await self.mqtt.close()
        if self.webhook is not None:
            await self.webhook.close()
        logger.info("Transport stopped")

    def publish(self, payload: dict):
        """Fire-and-forget; dropped while a previous send is still running."""
        if not (self._running and self.enabled):
            return
        if self._send_task is not None and not self._send_task.done():
            logger.debug("Transport busy, status dropped")
            return
        self._send_task = asyncio.create_task(self.send_event(payload))

    async def send_event(self, payload: dict):
        sinks = []
        if self.webhook is not None:
            sinks.append(self.webhook.send(payload))
        if self._use_mqtt:
            sinks.append(self.mqtt.send(payload))
        for result in await asyncio.gather(*sinks, return_exceptions=True):
            if isinstance(result, Exception):
                logger.error("Transport send error: %s", result)

    async def _handle_mqtt_command(self, payload: bytes):
        try:
            data = json.loads(payload.decode())
        except (UnicodeDecodeError, json.JSONDecodeError):
            logger.warning("Ignoring non-JSON MQTT command: %r", payload)
            return
        logger.info("MQTT command: %s", data)
        if self._command_handler is None:
            return
        try:
            await self._command_handler(data)
        except Exception:
            logger.exception("MQTT command handler failed")
