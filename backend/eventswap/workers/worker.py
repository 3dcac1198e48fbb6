"""
RQ Worker bootstrap
"""

from redis import Redis
from rq import Queue, Worker

from eventswap.infrastructure.settings import get_settings
from eventswap.workers.jobs import QUEUE_NAME

listen = [QUEUE_NAME, "default"]


def get_queue_connection() -> Redis:
    """RQ stores pickled payloads, so it needs a connection without response decoding"""
    return Redis.from_url(get_settings().REDIS_URL)


if __name__ == "__main__":
    redis_conn = get_queue_connection()
    worker = Worker([Queue(name, connection=redis_conn) for name in listen], connection=redis_conn)
    worker.work()
