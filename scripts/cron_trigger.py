"""
Hit the sync cron endpoint; meant to be called from a system crontab:

    */5 * * * * python scripts/cron_trigger.py https://sync.example.com SECRET
"""
import sys

import requests


def trigger(base_url: str, key: str) -> int:
    try:
        response = requests.get(f"{base_url.rstrip('/')}/cron", params={"key": key}, timeout=300)
    except requests.exceptions.RequestException as e:
        print(f"❌ Cron trigger failed: {e}")
        return 1

    if response.status_code != 200:
        print(f"❌ Cron trigger returned {response.status_code}: {response.text}")
        return 1

    status = response.json()
    print(f"✅ {status.get('message') or 'Sync invocation done'} "
          f"({status.get('completed', 0)}/{status.get('total', 0)}, failed {status.get('failed', 0)})")
    return 0


if __name__ == "__main__":
    if len(sys.argv) != 3:
        print("Usage: cron_trigger.py BASE_URL SECRET_KEY")
        sys.exit(2)
    sys.exit(trigger(sys.argv[1], sys.argv[2]))
