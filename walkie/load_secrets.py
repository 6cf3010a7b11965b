import os
from dotenv import load_dotenv

load_dotenv()

database_url = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./walkie.sqlite3")
redis_host = os.getenv("REDIS_HOST", "redis")
redis_port = int(os.getenv("REDIS_PORT", "6379"))
log_level = os.getenv("LOG_LEVEL", "INFO")

# Fee taken from the collected reward on a win, in basis points (500 = 5%)
house_fee_bps = int(os.getenv("HOUSE_FEE_BPS", "500"))
min_bet = int(os.getenv("MIN_BET", str(10**17)))
max_bet = int(os.getenv("MAX_BET", str(10 * 10**18)))
vrf_fee = int(os.getenv("VRF_FEE", "0"))
# Seconds before the local VRF answers its own request; empty waits for /vrf/callback
_local_delay = os.getenv("VRF_LOCAL_DELAY_SECONDS", "2")
vrf_local_delay_seconds = float(_local_delay) if _local_delay else None

commitment_ttl_seconds = int(os.getenv("COMMITMENT_TTL_SECONDS", "600"))
vrf_timeout_seconds = int(os.getenv("VRF_TIMEOUT_SECONDS", "900"))

if __name__ == "__main__":
    print(database_url, redis_host, redis_port, house_fee_bps, min_bet, max_bet)
