import logging
import signal
import time
from datetime import datetime, tzinfo
from threading import Event, Thread
from typing import List, Optional

from alarms.matcher import AlarmMatcher, Moment
from alarms.storage import AlarmStore, open_store
from broadcast import Broadcaster, SubscriberServer
from command_server import CommandDispatcher, CommandServer
from config import Config, ensure_database_path, load_config, setup_logging
from messages import AlarmRing, ClockTick, Message
from sampler import sample_instant
from time_utils import now_in_tz, resolve_timezone, seconds_until_next_period

logger = logging.getLogger("clockd")

# Wake slightly after the period boundary so a tick never lands at x.999
TICK_ALIGN_SLACK = 0.005


def graceful_exit(signum, frame) -> None:  # pragma: no cover - signal handler
    logger.info("Shutting down (signal %s)", signum)
    raise KeyboardInterrupt()


class ClockDaemon:
    def __init__(
        self,
        store: AlarmStore,
        broadcaster: Broadcaster,
        tick_period: float = 1.0,
        timezone: Optional[tzinfo] = None,
    ):
        self.store = store
        self.broadcaster = broadcaster
        self.matcher = AlarmMatcher(store)
        self.tick_period = tick_period
        self.tzinfo = timezone
        self._stop_event = Event()
        self._thread: Optional[Thread] = None

    def tick(self, now: Optional[datetime] = None) -> List[Message]:
        """Run one sample/match pass and return what was published, in order."""
        if now is None:
            now = now_in_tz(self.tzinfo)
        published: List[Message] = [ClockTick(sample_instant(now))]
        self.broadcaster.publish(published[0])
        for alarm_id in self.matcher.match(Moment.from_datetime(now)):
            ring = AlarmRing(alarm_id)
            self.broadcaster.publish(ring)
            published.append(ring)
        logger.debug("Tick %s (%s rings)", now.strftime("%a %H:%M:%S"), len(published) - 1)
        return published

    def start(self) -> None:
        self._stop_event.clear()
        self._thread = Thread(target=self._loop, name="clock-tick", daemon=True)
        self._thread.start()
        logger.info("Tick driver started (period %.3fs)", self.tick_period)

    def shutdown(self) -> None:
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=2)
        self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception:
                logger.error("Tick failed, continuing on next period", exc_info=True)
            delay = seconds_until_next_period(time.time(), self.tick_period) + TICK_ALIGN_SLACK
            self._stop_event.wait(delay)


class DaemonRuntime:
    """Everything the daemon process runs, wired from a Config."""

    def __init__(self, config: Config, store: AlarmStore):
        self.config = config
        self.store = store
        self.broadcaster = Broadcaster(buffer_size=config.subscriber_buffer)
        self.daemon = ClockDaemon(
            store=store,
            broadcaster=self.broadcaster,
            tick_period=config.tick_duration_ms / 1000.0,
            timezone=resolve_timezone(config.timezone_name),
        )
        self.subscriber_server = SubscriberServer(
            self.broadcaster, host=config.queue_host, port=config.queue_port
        )
        self.command_server = CommandServer(
            CommandDispatcher(store), host=config.command_host, port=config.command_port
        )

    def start(self) -> None:
        self.subscriber_server.start()
        self.command_server.start()
        self.daemon.start()

    def shutdown(self) -> None:
        self.daemon.shutdown()
        self.command_server.shutdown()
        self.subscriber_server.shutdown()
        self.broadcaster.close()
        self.store.close()


def main() -> None:
    config = load_config()
    setup_logging(config)
    signal.signal(signal.SIGINT, graceful_exit)
    signal.signal(signal.SIGTERM, graceful_exit)

    db_path = ensure_database_path(config.database_path)
    store = open_store(db_path)
    logger.info("Alarm database: %s (%s alarms)", db_path, len(store.list()))

    runtime = DaemonRuntime(config, store)
    runtime.start()
    try:
        while runtime.daemon.running:
            time.sleep(0.5)
    except KeyboardInterrupt:
        pass
    finally:
        runtime.shutdown()
        logger.info("Stopped")


if __name__ == "__main__":
    main()
