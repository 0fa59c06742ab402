from threading import Event

from client import listen
from config import load_config, setup_logging
from messages import AlarmRing, ClockTick


def show(message) -> None:
    if isinstance(message, ClockTick):
        s = message.sample
        print(
            f"{s.hour:02d}:{s.minute:02d}:{s.second:02d} "
            f"hands h={s.hour_angle:.3f} m={s.minute_angle:.3f} s={s.second_angle:.3f}"
        )
    elif isinstance(message, AlarmRing):
        print(f"*** alarm {message.alarm_id} ringing ***")


def main():
    cfg = load_config()
    setup_logging(cfg)
    stop = Event()
    try:
        listen(stop, show, cfg.queue_host, cfg.queue_port)
    except KeyboardInterrupt:
        stop.set()


if __name__ == "__main__":
    main()
