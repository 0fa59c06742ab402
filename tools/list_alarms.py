from client import CommandClient
from config import load_config


def main():
    cfg = load_config()
    with CommandClient(cfg.command_host, cfg.command_port) as client:
        alarms = client.get_alarms()
    if not alarms:
        print("No alarms")
        return
    print("Alarms:")
    for alarm in alarms:
        days = ", ".join(alarm.to_dict()["activeDays"]) or "never"
        print(f"[{alarm.id}] {alarm.hour:02d}:{alarm.minute:02d}:{alarm.second:02d} on {days}")


if __name__ == "__main__":
    main()
