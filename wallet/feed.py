"""
Change feed: publish/subscribe for live dashboard and admin views.

Writers queue events on the SQLAlchemy session while they work; the events are
published only after the session commits, and dropped on rollback, so a
subscriber never hears about a write that did not happen.

Subscriptions are scoped:

    with feed.subscribe("user:42") as subscription:
        for event in subscription.events(timeout=15):
            ...

and are removed from the broker when the block exits, including when the
consuming generator is closed by the server.
"""
import json
import logging
import queue
import threading
from contextlib import contextmanager

from flask import current_app, has_app_context
from redis import Redis
from sqlalchemy import event
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

PENDING_KEY = "pending_feed_events"
CHANNEL_PREFIX = "saldoya:"


def user_topic(user_id):
    return f"user:{user_id}"


# ==========================================================
#                  SUBSCRIPTIONS
# ==========================================================
class Subscription:
    """Handle returned by a broker; `get` blocks up to `timeout` seconds."""

    def __init__(self, getter, closer):
        self._get = getter
        self._close = closer
        self.closed = False

    def get(self, timeout=None):
        return self._get(timeout)

    def events(self, timeout=None):
        """Yield events forever; yields None whenever `timeout` passes without one."""
        while not self.closed:
            yield self.get(timeout)

    def close(self):
        if not self.closed:
            self.closed = True
            self._close()


# ==========================================================
#                  BROKERS
# ==========================================================
class LocalBroker:
    """In-process fan-out; enough for a single worker and for tests."""

    def __init__(self):
        self._subscribers = {}
        self._lock = threading.Lock()

    def publish(self, topic, message):
        with self._lock:
            targets = list(self._subscribers.get(topic, ()))
        for target in targets:
            target.put(message)

    def subscribe(self, topics):
        inbox = queue.Queue()
        with self._lock:
            for topic in topics:
                self._subscribers.setdefault(topic, set()).add(inbox)

        def get(timeout):
            try:
                return inbox.get(timeout=timeout)
            except queue.Empty:
                return None

        def close():
            with self._lock:
                for topic in topics:
                    listeners = self._subscribers.get(topic)
                    if listeners is None:
                        continue
                    listeners.discard(inbox)
                    if not listeners:
                        del self._subscribers[topic]

        return Subscription(get, close)

    def subscriber_count(self, topic):
        with self._lock:
            return len(self._subscribers.get(topic, ()))


class RedisBroker:
    """Redis pub/sub so every gunicorn worker sees every event."""

    def __init__(self, url):
        self.redis = Redis.from_url(url, decode_responses=True)

    def publish(self, topic, message):
        self.redis.publish(CHANNEL_PREFIX + topic, json.dumps(message))

    def subscribe(self, topics):
        pubsub = self.redis.pubsub(ignore_subscribe_messages=True)
        pubsub.subscribe(*[CHANNEL_PREFIX + topic for topic in topics])

        def get(timeout):
            message = pubsub.get_message(timeout=timeout or 0)
            if not message or message.get("type") != "message":
                return None
            return json.loads(message["data"])

        return Subscription(get, pubsub.close)


# ==========================================================
#                  FEED
# ==========================================================
class ChangeFeed:

    def __init__(self, broker=None):
        self.broker = broker or LocalBroker()

    @classmethod
    def from_config(cls, config):
        url = config.get("REDIS_URL")
        if url:
            logger.info("Change feed using Redis broker")
            return cls(RedisBroker(url))
        return cls(LocalBroker())

    def publish(self, topic, event_type, payload=None):
        message = {"topic": topic, "type": event_type, "data": payload or {}}
        try:
            self.broker.publish(topic, message)
        except Exception:
            # A lost notification only delays a UI refresh; the write is already committed.
            logger.exception(f"Failed to publish {event_type} on {topic}")

    @contextmanager
    def subscribe(self, *topics):
        subscription = self.broker.subscribe(topics)
        try:
            yield subscription
        finally:
            subscription.close()


def notify(topic, event_type, **payload):
    """Queue an event on the current session; it is published after commit."""
    from extensions import db
    db.session.info.setdefault(PENDING_KEY, []).append((topic, event_type, payload))


def notify_user(user, event_type="user.updated"):
    notify(user_topic(user.id), event_type, balance=float(user.balance))


def _publish_pending(session):
    pending = session.info.pop(PENDING_KEY, None)
    if not pending or not has_app_context():
        return
    feed = current_app.extensions.get("change_feed")
    if feed is None:
        return
    for topic, event_type, payload in pending:
        feed.publish(topic, event_type, payload)


def _drop_pending(session):
    session.info.pop(PENDING_KEY, None)


def init_feed(app):
    app.extensions["change_feed"] = ChangeFeed.from_config(app.config)
    if not event.contains(Session, "after_commit", _publish_pending):
        event.listen(Session, "after_commit", _publish_pending)
        event.listen(Session, "after_rollback", _drop_pending)
    return app.extensions["change_feed"]
