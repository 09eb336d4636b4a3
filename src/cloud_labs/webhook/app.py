"""
Flask service receiving SNS push notifications for S3 bucket events.

Endpoints:
- POST /sns     SNS HTTP(S) subscription endpoint
- GET  /health  Liveness check
- GET  /events  Most recently received S3 events
"""

import json
import threading
from collections import deque
from datetime import datetime, timezone
from typing import Any, List, Optional

import requests
from flask import Flask, jsonify, request

from ..config import WebhookConfig, config
from ..exceptions import EnvelopeError
from ..utils.logger import get_logger
from .envelope import (
    NOTIFICATION,
    SUBSCRIPTION_CONFIRMATION,
    UNSUBSCRIBE_CONFIRMATION,
    S3EventRecord,
    SNSMessage,
    is_valid_signing_cert_url,
    is_valid_subscribe_url,
    parse_s3_event,
    parse_sns_message,
)

logger = get_logger(__name__)

MESSAGE_TYPE_HEADER = "x-amz-sns-message-type"
CONFIRM_TIMEOUT_SECONDS = 10


class EventStore:
    """Bounded, thread-safe history of received S3 events."""

    def __init__(self, max_events: int = 100):
        self._events: deque = deque(maxlen=max_events)
        self._lock = threading.Lock()
        self.notifications_received = 0
        self.confirmations_received = 0

    def add(self, records: List[S3EventRecord]) -> None:
        with self._lock:
            self.notifications_received += 1
            self._events.extend(records)

    def record_confirmation(self) -> None:
        with self._lock:
            self.confirmations_received += 1

    def recent(self, limit: Optional[int] = None) -> List[S3EventRecord]:
        with self._lock:
            events = list(self._events)
        events.reverse()
        return events[:limit] if limit is not None else events

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)


def _error(message: str, status: int, **extra: Any):
    body = {"message": message}
    body.update(extra)
    return jsonify(body), status


def _log_record(record: S3EventRecord, message: SNSMessage) -> None:
    notification = {
        'event': 'S3_FILE_UPLOADED',
        'timestamp': record.event_time,
        'bucket': record.bucket,
        'key': record.key,
        'size_bytes': record.size_bytes,
        'size_mb': record.size_mb,
        'event_type': record.event_name,
        'message_id': message.message_id,
        'topic_arn': message.topic_arn
    }
    logger.info(f"S3 File Notification: {json.dumps(notification)}")
    logger.info(
        f"Processed file upload: {record.s3_uri} "
        f"(Size: {record.size_mb} MB, Time: {record.event_time})"
    )


def create_app(
    webhook_config: Optional[WebhookConfig] = None,
    http_session: Optional[requests.Session] = None
) -> Flask:
    """
    Build the webhook application.

    Args:
        webhook_config: Receiver settings. Defaults to the global config.
        http_session: Session used to confirm subscriptions.

    Returns:
        Configured Flask app.
    """
    settings = webhook_config or config.webhook
    session = http_session or requests.Session()
    store = EventStore(max_events=settings.max_events)

    app = Flask(__name__)
    app.config["WEBHOOK_SETTINGS"] = settings
    app.extensions["event_store"] = store

    def confirm_subscription(message: SNSMessage):
        store.record_confirmation()
        logger.info(f"Subscription confirmation received for {message.topic_arn}")

        if not settings.auto_confirm:
            logger.info(f"Auto-confirm disabled, visit {message.subscribe_url} to confirm")
            return jsonify({"status": "pending", "subscribe_url": message.subscribe_url}), 202

        try:
            response = session.get(message.subscribe_url, timeout=CONFIRM_TIMEOUT_SECONDS)
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error(f"Failed to confirm subscription: {e}")
            return _error("Subscription confirmation failed", 502, error=str(e))

        logger.info(f"Confirmed subscription to {message.topic_arn}")
        return jsonify({"status": "confirmed", "topic_arn": message.topic_arn}), 200

    def handle_notification(message: SNSMessage):
        try:
            records = parse_s3_event(message.message)
        except EnvelopeError as e:
            logger.error(f"Error processing S3 event: {e}", exc_info=True)
            return _error("Error processing S3 notifications", 400, error=str(e))

        if not records:
            logger.info("Received S3 test event, nothing to process")

        for record in records:
            _log_record(record, message)
        store.add(records)

        logger.info(f"Successfully processed {len(records)} file(s)")
        return jsonify({
            "message": "S3 notifications processed successfully",
            "files_processed": len(records),
            "files": [record.summary() for record in records]
        }), 200

    @app.route("/sns", methods=["POST"])
    def receive_sns():
        # SNS posts with Content-Type text/plain, so read the raw body
        body = request.get_data(as_text=True)

        try:
            message = parse_sns_message(body)
        except EnvelopeError as e:
            logger.warning(f"Rejected SNS delivery: {e}")
            return _error("Invalid SNS message", 400, error=str(e))

        header_type = request.headers.get(MESSAGE_TYPE_HEADER)
        if header_type and header_type != message.type:
            logger.warning(f"Message type header {header_type} does not match body type {message.type}")
            return _error("Message type mismatch", 400)

        if settings.allowed_topic_arns and message.topic_arn not in settings.allowed_topic_arns:
            logger.warning(f"Rejected message from unexpected topic {message.topic_arn}")
            return _error("Topic not allowed", 403)

        if message.signing_cert_url is not None and not is_valid_signing_cert_url(message.signing_cert_url):
            logger.warning(f"Rejected message with signing certificate {message.signing_cert_url}")
            return _error("Invalid signing certificate URL", 400)

        if message.type == SUBSCRIPTION_CONFIRMATION and not is_valid_subscribe_url(message.subscribe_url):
            logger.warning(f"Rejected subscription confirmation with SubscribeURL {message.subscribe_url}")
            return _error("Invalid SubscribeURL", 400)

        logger.info(f"Received SNS {message.type} {message.message_id}")

        if message.type == SUBSCRIPTION_CONFIRMATION:
            return confirm_subscription(message)
        if message.type == NOTIFICATION:
            return handle_notification(message)

        # UnsubscribeConfirmation
        logger.info(f"Unsubscribed from {message.topic_arn}")
        return jsonify({"status": "unsubscribed", "type": UNSUBSCRIBE_CONFIRMATION}), 200

    @app.route("/health", methods=["GET"])
    def health():
        return jsonify({
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "events_received": len(store),
            "notifications_received": store.notifications_received
        })

    @app.route("/events", methods=["GET"])
    def events():
        limit = request.args.get("limit", type=int)
        if limit is not None and limit < 0:
            return _error("limit must be non-negative", 400)
        recent = store.recent(limit)
        return jsonify({
            "count": len(recent),
            "events": [
                dict(record.model_dump(), size_mb=record.size_mb) for record in recent
            ]
        })

    return app


def run_server(webhook_config: Optional[WebhookConfig] = None) -> None:
    """Run the webhook with Flask's built-in server."""
    settings = webhook_config or config.webhook
    app = create_app(settings)
    logger.info(f"Starting SNS webhook receiver on {settings.host}:{settings.port}")
    app.run(host=settings.host, port=settings.port, threaded=True)
