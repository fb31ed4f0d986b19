"""
Server-sent events over the change feed.

Each open stream holds one feed subscription; it is released when the client
disconnects and the server closes the generator. Under gunicorn's gevent
worker an idle stream costs a greenlet, not a thread.
"""
import json
from flask import Blueprint, Response, current_app, stream_with_context
from flask_login import current_user, login_required
from wallet.feed import user_topic
import logging

logger = logging.getLogger(__name__)

bp = Blueprint("stream", __name__, url_prefix="")

ADMIN_TOPICS = ("recharge-requests", "withdrawal-requests", "products", "config")


def format_event(message) -> str:
    return f"event: {message['type']}\ndata: {json.dumps(message)}\n\n"


def event_stream(*topics):
    """
    Generator of SSE chunks for `topics`. A comment line is sent every
    STREAM_KEEPALIVE_SECONDS so proxies keep the connection open.
    """
    feed = current_app.extensions["change_feed"]
    keepalive = current_app.config.get("STREAM_KEEPALIVE_SECONDS", 15)

    def generate():
        with feed.subscribe(*topics) as subscription:
            yield ": connected\n\n"
            for message in subscription.events(timeout=keepalive):
                if message is None:
                    yield ": keepalive\n\n"
                    continue
                yield format_event(message)

    return Response(
        stream_with_context(generate()),
        mimetype="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@bp.route("/api/stream", methods=["GET"])
@login_required
def user_stream():
    topics = [user_topic(current_user.id), "products", "config"]
    logger.info(f"User {current_user.id} opened change stream")
    return event_stream(*topics)


def admin_stream():
    return event_stream(*ADMIN_TOPICS)
